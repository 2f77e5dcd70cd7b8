"""
API route tests.

Verifies:
- Login responses: attempts remaining, warning, lockout (429), missing fields
- Session gating: 401 without a session, 423 when locked or idle
- Permission gating: 403 with an access_denied audit event
- User administration, secure data, backup/restore and audit endpoints
"""

import json

import pytest
from conftest import login

from tareeqa.errors import AuthenticationError
from tareeqa.services.bootstrap_service import EXTENSION_KEY


def security_core(app):
    return app.extensions[EXTENSION_KEY]


@pytest.fixture
def manager_client(client, app):
    security_core(app).credentials.create("mgr1", "secret1", full_name="Manager", role="manager")
    resp = login(client, "mgr1", "secret1")
    assert resp.status_code == 200
    return client


# =============================================================================
# SYSTEM
# =============================================================================


def test_health(client):
    resp = client.get("/api/system/health")

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "healthy"
    assert data["checks"]["storage"]["details"]["backend"] == "DatabaseStorage"
    assert data["checks"]["security_core"]["details"]["active_admins"] == 1


# =============================================================================
# LOGIN / LOCKOUT
# =============================================================================


class TestLogin:
    def test_success_returns_session_and_permissions(self, client):
        resp = login(client, "admin", "admin123")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["state"] == "active"
        assert data["session"]["user"]["username"] == "admin"
        assert "password_hash" not in data["session"]["user"]
        assert len(data["permissions"]) == 36

    def test_missing_fields(self, client):
        resp = client.post("/api/auth/login", json={"username": "admin"})
        assert resp.status_code == 400

    def test_unknown_user(self, client):
        resp = login(client, "ghost", "whatever")

        assert resp.status_code == 401
        assert resp.get_json()["code"] == "unknown_user"

    def test_wrong_password_reports_attempts(self, client):
        resp = login(client, "cashier", "wrong")

        assert resp.status_code == 401
        data = resp.get_json()
        assert data["attempts_remaining"] == 4
        assert "warning" not in data

        data = login(client, "cashier", "wrong").get_json()
        assert data["attempts_remaining"] == 3
        assert data["warning"] == "3 attempts remaining before account lockout"

    def test_lockout_after_five_failures(self, client):
        for _ in range(4):
            assert login(client, "cashier", "wrong").status_code == 401

        resp = login(client, "cashier", "wrong")
        assert resp.status_code == 429
        data = resp.get_json()
        assert data["locked"] is True
        assert data["retry_after_seconds"] == 1800
        assert data["locked_until"] == "2026-01-15T09:30:00.000Z"

        # Correct password is refused while locked
        assert login(client, "cashier", "cashier123").status_code == 429

    def test_lockout_expires(self, client, clock):
        for _ in range(5):
            login(client, "cashier", "wrong")

        clock.advance(minutes=31)
        assert login(client, "cashier", "cashier123").status_code == 200

    def test_lockout_status(self, client):
        login(client, "cashier", "wrong")

        resp = client.get("/api/auth/lockout-status/cashier")
        assert resp.status_code == 200
        assert resp.get_json()["failed_attempts"] == 1
        assert resp.get_json()["attempts_remaining"] == 4

        assert client.get("/api/auth/lockout-status/ghost").status_code == 404

    def test_inactive_account(self, admin_client, app):
        core = security_core(app)
        cashier = core.credentials.find_by_username("cashier")
        core.credentials.set_active(cashier.id, False)

        resp = login(admin_client, "cashier", "cashier123")
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "inactive_account"

    def test_unknown_stored_role_logs_in_without_permissions(self, client, app):
        records = security_core(app).records
        users = records.get("users")
        for record in users:
            if record["username"] == "cashier":
                record["role"] = "owner"
        records.put("users", users)

        resp = login(client, "cashier", "cashier123")

        assert resp.status_code == 200
        assert resp.get_json()["permissions"] == []


# =============================================================================
# SESSION STATE
# =============================================================================


class TestSessionState:
    def test_logged_out_session(self, client):
        data = client.get("/api/auth/session").get_json()

        assert data["state"] == "logged_out"
        assert data["session"] is None
        assert data["permissions"] == []

    def test_requires_session(self, client):
        assert client.get("/api/admin/users").status_code == 401
        assert client.get("/api/secure-data/keys").status_code == 401

    def test_lock_and_unlock(self, cashier_client):
        assert cashier_client.post("/api/auth/lock").status_code == 200

        resp = cashier_client.get("/api/secure-data/keys")
        assert resp.status_code == 423
        assert resp.get_json()["locked"] is True

        resp = cashier_client.post("/api/auth/unlock", json={"password": "wrong"})
        assert resp.status_code == 401
        assert resp.get_json()["locked"] is True

        resp = cashier_client.post("/api/auth/unlock", json={"password": "cashier123"})
        assert resp.status_code == 200
        assert resp.get_json()["state"] == "active"

        assert cashier_client.get("/api/secure-data/keys").status_code == 200

    def test_lock_without_session(self, client):
        assert client.post("/api/auth/lock").status_code == 401
        assert client.post("/api/auth/unlock", json={"password": "x"}).status_code == 401

    def test_idle_timeout_locks(self, cashier_client, clock):
        clock.advance(minutes=16)

        assert cashier_client.get("/api/secure-data/keys").status_code == 423
        assert cashier_client.get("/api/auth/session").get_json()["state"] == "locked"

    def test_touch_keeps_session_alive(self, cashier_client, clock):
        clock.advance(minutes=10)
        assert cashier_client.post("/api/auth/touch").get_json() == {"active": True, "state": "active"}

        clock.advance(minutes=10)
        assert cashier_client.get("/api/secure-data/keys").status_code == 200

    def test_logout(self, cashier_client):
        assert cashier_client.post("/api/auth/logout").status_code == 200
        assert cashier_client.get("/api/secure-data/keys").status_code == 401

    def test_change_password(self, cashier_client):
        resp = cashier_client.post("/api/auth/change-password", json={
            "current_password": "wrong",
            "new_password": "better-secret",
        })
        assert resp.status_code == 400

        resp = cashier_client.post("/api/auth/change-password", json={
            "current_password": "cashier123",
            "new_password": "better-secret",
        })
        assert resp.status_code == 200

        cashier_client.post("/api/auth/logout")
        assert login(cashier_client, "cashier", "better-secret").status_code == 200


# =============================================================================
# PERMISSIONS & USER ADMINISTRATION
# =============================================================================


class TestUserAdministration:
    def test_cashier_denied_and_audited(self, cashier_client, app):
        resp = cashier_client.get("/api/admin/users")

        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "users.view"

        (event,) = security_core(app).audit.query(event="access_denied")
        assert event.username == "cashier"
        assert event.details["resource"] == "/api/admin/users"
        assert event.details["permissions"] == ["users.view"]

    def test_list_users_hides_credentials(self, admin_client):
        data = admin_client.get("/api/admin/users").get_json()

        assert data["count"] == 2
        assert [u["username"] for u in data["users"]] == ["admin", "cashier"]
        assert all("password_hash" not in u for u in data["users"])

    def test_create_user(self, admin_client):
        resp = admin_client.post("/api/admin/users", json={
            "username": "sara",
            "password": "secret1",
            "role": "manager",
            "full_name": "Sara",
        })
        assert resp.status_code == 201
        assert resp.get_json()["user"]["role"] == "manager"

        resp = admin_client.post("/api/admin/users", json={"username": "sara", "password": "secret1"})
        assert resp.status_code == 409

        resp = admin_client.post("/api/admin/users", json={
            "username": "omar", "password": "secret1", "role": "owner",
        })
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "invalid_role"

        resp = admin_client.post("/api/admin/users", json={"username": "omar", "password": "123"})
        assert resp.status_code == 400

    def test_last_admin_cannot_be_deactivated(self, admin_client, app):
        admin = security_core(app).credentials.find_by_username("admin")

        resp = admin_client.post(f"/api/admin/users/{admin.id}/status", json={"is_active": False})

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "last_admin"

    def test_clear_lockout(self, admin_client, app):
        credentials = security_core(app).credentials
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                credentials.authenticate("cashier", "wrong")
        cashier = credentials.find_by_username("cashier")
        assert cashier.locked_until is not None

        resp = admin_client.post(f"/api/admin/users/{cashier.id}/unlock")

        assert resp.status_code == 200
        assert resp.get_json()["user"]["login_attempts"] == 0
        assert resp.get_json()["user"]["locked_until"] is None

    def test_manager_creates_cashier(self, manager_client):
        resp = manager_client.post("/api/admin/users", json={"username": "layla", "password": "secret1"})

        assert resp.status_code == 201
        assert resp.get_json()["user"]["role"] == "cashier"

    def test_manager_cannot_create_admin(self, manager_client, app):
        resp = manager_client.post("/api/admin/users", json={
            "username": "mallory", "password": "secret1", "role": "admin",
        })

        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "users.permissions"
        assert security_core(app).credentials.find_by_username("mallory") is None

        (event,) = security_core(app).audit.query(event="access_denied")
        assert event.username == "mgr1"
        assert event.details["permissions"] == ["users.permissions"]

    def test_manager_cannot_change_roles(self, manager_client, app):
        credentials = security_core(app).credentials
        manager = credentials.find_by_username("mgr1")
        cashier = credentials.find_by_username("cashier")

        resp = manager_client.patch(f"/api/admin/users/{manager.id}", json={"role": "admin"})
        assert resp.status_code == 403
        assert credentials.find_by_username("mgr1").role == "manager"

        resp = manager_client.patch(f"/api/admin/users/{cashier.id}", json={"role": "manager"})
        assert resp.status_code == 403
        assert credentials.find_by_username("cashier").role == "cashier"

        resp = manager_client.patch(f"/api/admin/users/{cashier.id}", json={"full_name": "Front Desk"})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["full_name"] == "Front Desk"

    def test_manager_cannot_touch_admin_account(self, manager_client, app):
        admin = security_core(app).credentials.find_by_username("admin")

        resp = manager_client.post(f"/api/admin/users/{admin.id}/reset-password", json={"new_password": "taken1"})
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "users.permissions"

        resp = manager_client.post(f"/api/admin/users/{admin.id}/status", json={"is_active": False})
        assert resp.status_code == 403

        resp = manager_client.post(f"/api/admin/users/{admin.id}/unlock")
        assert resp.status_code == 403

        resp = manager_client.patch(f"/api/admin/users/{admin.id}", json={"full_name": "Someone"})
        assert resp.status_code == 403

        assert security_core(app).credentials.find_by_username("admin").is_active is True
        assert login(manager_client, "admin", "admin123").status_code == 200

    def test_manager_manages_cashier(self, manager_client, app):
        cashier = security_core(app).credentials.find_by_username("cashier")

        resp = manager_client.post(f"/api/admin/users/{cashier.id}/reset-password", json={"new_password": "fresh1"})
        assert resp.status_code == 200

        resp = manager_client.post(f"/api/admin/users/{cashier.id}/unlock")
        assert resp.status_code == 200

    def test_admin_assigns_roles(self, admin_client, app):
        cashier = security_core(app).credentials.find_by_username("cashier")

        resp = admin_client.patch(f"/api/admin/users/{cashier.id}", json={"role": "manager"})

        assert resp.status_code == 200
        assert resp.get_json()["user"]["role"] == "manager"

    def test_unknown_user_id(self, admin_client):
        resp = admin_client.post("/api/admin/users/nope/unlock")
        assert resp.status_code == 404

    def test_roles_and_matrix(self, admin_client):
        roles = admin_client.get("/api/admin/roles").get_json()
        assert roles["count"] == 5

        perms = admin_client.get("/api/admin/permissions?category=security").get_json()
        assert {p["code"] for p in perms["permissions"]} == {"security.logs", "security.manage"}

        matrix = admin_client.get("/api/admin/permissions/matrix").get_json()
        assert len(matrix["roles"]) == 5


# =============================================================================
# SECURE DATA
# =============================================================================


class TestSecureData:
    def test_crud(self, cashier_client):
        resp = cashier_client.put("/api/secure-data/items/products", json={"value": [{"id": 1, "name": "Tea"}]})
        assert resp.status_code == 200

        resp = cashier_client.get("/api/secure-data/items/products")
        assert resp.get_json()["value"] == [{"id": 1, "name": "Tea"}]

        assert cashier_client.get("/api/secure-data/keys").get_json()["keys"] == ["products"]

        assert cashier_client.delete("/api/secure-data/items/products").status_code == 200
        assert cashier_client.get("/api/secure-data/items/products").status_code == 404
        assert cashier_client.delete("/api/secure-data/items/products").status_code == 404

    def test_protected_keys(self, admin_client):
        for key in ("security_log", "session", "users"):
            assert admin_client.get(f"/api/secure-data/items/{key}").status_code == 403
            assert admin_client.put(f"/api/secure-data/items/{key}", json={"value": 1}).status_code == 403

    def test_value_required(self, cashier_client):
        resp = cashier_client.put("/api/secure-data/items/products", json={"data": 1})
        assert resp.status_code == 400

    def test_stored_encrypted(self, cashier_client, app):
        cashier_client.put("/api/secure-data/items/settings", json={"value": {"currency": "SAR"}})

        raw = security_core(app).backend.get("tareeqa_secure_settings")
        assert raw.startswith("TAREEQA_ENCRYPTED_V1:")
        assert "SAR" not in raw

    def test_backup_and_restore(self, admin_client):
        admin_client.put("/api/secure-data/items/products", json={"value": ["a", "b"]})

        resp = admin_client.post("/api/secure-data/backup", json={"password": "backup-pass"})
        assert resp.status_code == 200
        backup = resp.get_json()["backup"]
        assert resp.get_json()["encrypted"] is True

        admin_client.delete("/api/secure-data/items/products")

        resp = admin_client.post("/api/secure-data/restore", json={"backup": backup})
        assert resp.status_code == 400

        resp = admin_client.post("/api/secure-data/restore", json={"backup": backup, "password": "backup-pass"})
        assert resp.status_code == 200
        assert resp.get_json()["restored_count"] == 1
        assert admin_client.get("/api/secure-data/items/products").get_json()["value"] == ["a", "b"]

    def test_manager_backup_leaves_out_users(self, manager_client):
        manager_client.put("/api/secure-data/items/products", json={"value": ["a"]})

        resp = manager_client.post("/api/secure-data/backup", json={})

        assert resp.status_code == 200
        assert json.loads(resp.get_json()["backup"])["data"] == {"products": ["a"]}

    def test_manager_cannot_restore_users(self, manager_client, app):
        records = security_core(app).records
        users = records.get("users")
        for record in users:
            if record["username"] == "mgr1":
                record["role"] = "admin"
        tampered = json.dumps({"version": "1.0", "timestamp": None, "data": {"users": users}})

        resp = manager_client.post("/api/secure-data/restore", json={"backup": tampered, "overwrite": True})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["restored_count"] == 0
        assert data["errors"] == [{"key": "users", "error": "Protected key cannot be restored"}]
        assert security_core(app).credentials.find_by_username("mgr1").role == "manager"

    def test_backup_requires_permission(self, cashier_client):
        assert cashier_client.post("/api/secure-data/backup", json={}).status_code == 403

    def test_verify(self, admin_client):
        data = admin_client.post("/api/secure-data/verify").get_json()
        assert data["corrupted"] == 0


# =============================================================================
# AUDIT
# =============================================================================


class TestAuditEvents:
    def test_admin_reads_events(self, admin_client):
        login(admin_client, "cashier", "wrong")
        login(admin_client, "admin", "admin123")

        data = admin_client.get("/api/audit/events?event=login_failed").get_json()

        assert data["count"] == 1
        assert data["events"][0]["details"] == {"username": "cashier", "reason": "invalid_credentials"}

    def test_limit(self, admin_client):
        data = admin_client.get("/api/audit/events?limit=2").get_json()
        assert data["count"] == 2

    def test_cashier_denied(self, cashier_client):
        assert cashier_client.get("/api/audit/events").status_code == 403
