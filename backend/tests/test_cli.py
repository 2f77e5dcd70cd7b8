"""
Flask CLI command tests.

Verifies:
- system init is idempotent once users exist
- users / perms inspection and maintenance output
- storage backup/restore through a file and integrity verification
- audit list filtering
"""

import pytest

from tareeqa.errors import InvalidCredentialError
from tareeqa.services.bootstrap_service import EXTENSION_KEY


def security_core(app):
    return app.extensions[EXTENSION_KEY]


# =============================================================================
# SYSTEM
# =============================================================================


def test_system_init_is_idempotent(runner):
    result = runner.invoke(args=["system", "init"])

    assert result.exit_code == 0
    assert "PASS Migrated 0 legacy item(s)" in result.output
    assert "PASS Users already exist, skipping defaults" in result.output
    assert "DONE" in result.output


# =============================================================================
# USERS
# =============================================================================


class TestUsersCommands:
    def test_list(self, runner):
        result = runner.invoke(args=["users", "list"])

        assert result.exit_code == 0
        assert "admin" in result.output
        assert "cashier" in result.output
        assert "passwordHash" not in result.output

    def test_create(self, runner, app):
        result = runner.invoke(args=[
            "users", "create",
            "--username", "sara",
            "--password", "secret1",
            "--role", "manager",
        ])

        assert result.exit_code == 0, result.output
        assert "PASS Created user: sara" in result.output
        assert security_core(app).credentials.find_by_username("sara").role == "manager"

    def test_create_duplicate_fails(self, runner):
        result = runner.invoke(args=["users", "create", "--username", "admin", "--password", "secret1"])

        assert result.exit_code == 1
        assert result.output.startswith("FAIL")

    def test_create_rejects_unknown_role(self, runner):
        result = runner.invoke(args=[
            "users", "create", "--username", "sara", "--password", "secret1", "--role", "owner",
        ])
        assert result.exit_code == 2

    def test_unlock(self, runner, app):
        credentials = security_core(app).credentials
        for _ in range(3):
            with pytest.raises(InvalidCredentialError):
                credentials.authenticate("cashier", "wrong")

        result = runner.invoke(args=["users", "unlock", "cashier"])

        assert result.exit_code == 0
        assert "PASS Lockout cleared for 'cashier'" in result.output
        assert credentials.find_by_username("cashier").login_attempts == 0

    def test_unlock_unknown_user(self, runner):
        result = runner.invoke(args=["users", "unlock", "ghost"])

        assert result.exit_code == 1
        assert "FAIL User 'ghost' not found" in result.output

    def test_set_active(self, runner, app):
        result = runner.invoke(args=["users", "set-active", "cashier", "--inactive"])

        assert result.exit_code == 0
        assert security_core(app).credentials.find_by_username("cashier").is_active is False

    def test_last_admin_cannot_be_deactivated(self, runner):
        result = runner.invoke(args=["users", "set-active", "admin", "--inactive"])

        assert result.exit_code == 1
        assert "FAIL Cannot deactivate the last active administrator" in result.output


# =============================================================================
# PERMISSIONS
# =============================================================================


class TestPermsCommands:
    def test_check_granted(self, runner):
        result = runner.invoke(args=["perms", "check", "cashier", "pos.use"])

        assert "PASS Role 'cashier' HAS permission 'pos.use'" in result.output
        assert "Use Point of Sale:" in result.output

    def test_check_denied(self, runner):
        result = runner.invoke(args=["perms", "check", "cashier", "users.delete"])
        assert "FAIL Role 'cashier' DOES NOT HAVE permission 'users.delete'" in result.output

    def test_check_unknown_code(self, runner):
        result = runner.invoke(args=["perms", "check", "admin", "plugins.install"])

        assert "WARN  'plugins.install' is not in the permission catalogue" in result.output
        assert "PASS Role 'admin' HAS permission 'plugins.install'" in result.output

    def test_check_unknown_role(self, runner):
        result = runner.invoke(args=["perms", "check", "owner", "pos.use"])
        assert "FAIL Role 'owner' not found" in result.output

    def test_list_by_role(self, runner):
        result = runner.invoke(args=["perms", "list", "--role", "viewer"])

        assert "Permissions for role: VIEWER" in result.output
        assert "Total: 5 permissions" in result.output

    def test_list_all(self, runner):
        result = runner.invoke(args=["perms", "list"])
        assert "Total: 36 permissions" in result.output


# =============================================================================
# STORAGE
# =============================================================================


class TestStorageCommands:
    def test_backup_and_restore_through_file(self, runner, app, tmp_path):
        records = security_core(app).records
        records.put("products", [{"id": 1}])
        backup_file = tmp_path / "backup.txt"

        result = runner.invoke(args=["storage", "backup", str(backup_file), "--password", "pw"])
        assert result.exit_code == 0
        assert backup_file.read_text(encoding="utf-8").startswith("TAREEQA_ENCRYPTED_V1:")

        records.remove("products")

        result = runner.invoke(args=["storage", "restore", str(backup_file), "--password", "pw"])
        assert result.exit_code == 0
        assert "PASS Restored 1 item(s)" in result.output
        assert records.get("products") == [{"id": 1}]

    def test_restore_wrong_password(self, runner, tmp_path):
        backup_file = tmp_path / "backup.txt"
        runner.invoke(args=["storage", "backup", str(backup_file), "--password", "pw"])

        result = runner.invoke(args=["storage", "restore", str(backup_file), "--password", "nope"])

        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_verify(self, runner, app):
        result = runner.invoke(args=["storage", "verify"])
        assert result.exit_code == 0
        assert "Corrupted: 0" in result.output

        security_core(app).backend.set("tareeqa_secure_broken", "TAREEQA_ENCRYPTED_V1:not-base64!")

        result = runner.invoke(args=["storage", "verify"])
        assert result.exit_code == 1
        assert "FAIL broken:" in result.output

    def test_stats(self, runner):
        result = runner.invoke(args=["storage", "stats"])

        assert result.exit_code == 0
        assert "Items:" in result.output
        assert "users" in result.output

    def test_migrate_legacy_entries(self, runner, app):
        security_core(app).backend.set("tareeqa_customers", '[{"name": "Ali"}]')

        result = runner.invoke(args=["storage", "migrate"])

        assert "PASS tareeqa_customers -> customers" in result.output
        assert "Migrated 1 item(s)" in result.output
        assert security_core(app).records.get("customers") == [{"name": "Ali"}]


# =============================================================================
# AUDIT
# =============================================================================


class TestAuditCommands:
    def test_list_filtered(self, runner):
        result = runner.invoke(args=["audit", "list", "--event", "user_created"])

        assert result.exit_code == 0
        assert result.output.count("user_created") == 2
        assert "Total: 2 events" in result.output

    def test_list_no_match(self, runner):
        result = runner.invoke(args=["audit", "list", "--event", "nothing_happened"])
        assert "No events found." in result.output
