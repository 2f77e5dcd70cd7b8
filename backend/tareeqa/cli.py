# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tareeqa/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app tareeqa <group> <command> [options]
#
# System bootstrap:
# - python -m flask --app tareeqa system init
#   Idempotent bootstrap: migrates legacy data and seeds the default users.
#
# User inspection/maintenance:
# - python -m flask --app tareeqa users list
# - python -m flask --app tareeqa users create --username sara --password "secret1" --role cashier
# - python -m flask --app tareeqa users unlock sara
# - python -m flask --app tareeqa users set-active sara --inactive
#
# Permission inspection:
# - python -m flask --app tareeqa perms list [--role cashier] [--category pos]
# - python -m flask --app tareeqa perms check cashier pos.discount
#
# Secure storage:
# - python -m flask --app tareeqa storage backup backup.txt [--password ...]
# - python -m flask --app tareeqa storage restore backup.txt [--password ...] [--overwrite]
# - python -m flask --app tareeqa storage verify | stats | migrate
#
# Audit log:
# - python -m flask --app tareeqa audit list --limit 50 --event login_failed

import click
from flask.cli import with_appcontext

from .errors import BackupError, SecurityCoreError
from .permissions import (
    PERMISSION_DEFINITIONS,
    ROLES,
    PermissionCategory,
    get_permission_definition,
    validate_permission_code,
)
from .services.bootstrap_service import get_security_core


def _find_user_or_fail(username):
    user = get_security_core().credentials.find_by_username(username)
    if not user:
        click.echo(f"FAIL User '{username}' not found")
    return user


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the security core: legacy migration and default users.

    Creates (only when no users exist):
    - admin   / admin123   (role admin)
    - cashier / cashier123 (role cashier)

    SECURITY: Change passwords immediately after first login!
    """
    core = get_security_core()
    click.echo("START Initializing Tareeqa security core...")

    report = core.records.migrate_legacy()
    click.echo(f"PASS Migrated {report.migrated_count} legacy item(s)")
    for error in report.failed:
        click.echo(f"WARN  {error.message}")

    created = core.credentials.ensure_default_users()
    if created:
        for user in created:
            click.echo(f"PASS Created user: {user.username} with role '{user.role}'")
        click.echo("\nDefault Credentials (CHANGE IMMEDIATELY!):")
        click.echo("   admin   -> admin123")
        click.echo("   cashier -> cashier123")
    else:
        click.echo("PASS Users already exist, skipping defaults")

    click.echo("DONE Tareeqa security core initialized")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and maintenance commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with role, status and lockout state."""
    users = get_security_core().credentials.list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<10} {'Username':<20} {'Role':<12} {'Active':<8} {'Attempts':<9} {'Locked until'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        data = user.to_public_dict()
        click.echo(
            f"{user.id:<10} {user.username:<20} {user.role:<12} {active_str:<8} "
            f"{user.login_attempts:<9} {data['locked_until'] or '-'}"
        )
    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username (3+ characters)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password (6+ characters)')
@click.option('--role', type=click.Choice(sorted(ROLES.keys())), default='cashier', show_default=True)
@click.option('--full-name', default=None, help='Display name')
@click.option('--email', default=None, help='Email (defaults to <username>@tareeqa.pos)')
@with_appcontext
def create_user_cli(username, password, role, full_name, email):
    """Create a user."""
    try:
        user = get_security_core().credentials.create(
            username, password, full_name=full_name, role=role, email=email,
        )
    except SecurityCoreError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@users_group.command('unlock')
@click.argument('username')
@with_appcontext
def unlock_user_cli(username):
    """Clear failed login attempts and lockout for a user."""
    user = _find_user_or_fail(username)
    if not user:
        raise SystemExit(1)
    get_security_core().credentials.clear_lockout(user.id)
    click.echo(f"PASS Lockout cleared for '{username}'")


@users_group.command('set-active')
@click.argument('username')
@click.option('--active/--inactive', default=True, help='Activate or deactivate the account')
@with_appcontext
def set_active_cli(username, active):
    """Activate or deactivate a user."""
    user = _find_user_or_fail(username)
    if not user:
        raise SystemExit(1)
    try:
        get_security_core().credentials.set_active(user.id, active)
    except SecurityCoreError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS User '{username}' is now {'active' if active else 'inactive'}")


# =============================================================================
# PERMISSIONS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', help='Filter by role name')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_permissions_cli(role, category):
    """List all permissions, optionally filtered by role or category."""
    evaluator = get_security_core().permissions

    if role:
        if role not in evaluator.roles:
            click.echo(f"FAIL Role '{role}' not found")
            return
        perms = [p for p in PERMISSION_DEFINITIONS if evaluator.role_allows(role, p[0])]
        title = f"Permissions for role: {role.upper()}"
    elif category:
        perms = [p for p in PERMISSION_DEFINITIONS if p[3] == category]
        title = f"Permissions in category: {PermissionCategory.LABELS.get(category, category)}"
    else:
        perms = list(PERMISSION_DEFINITIONS)
        title = "All Permissions"

    click.echo(f"\n{'='*80}")
    click.echo(title)
    click.echo(f"{'='*80}\n")

    click.echo(f"{'Code':<25} {'Name':<30} {'Category'}")
    click.echo("-"*80)
    for code, name, _description, cat in perms:
        click.echo(f"{code:<25} {name:<30} {cat}")

    click.echo(f"\n Total: {len(perms)} permissions\n")


@perms_group.command('check')
@click.argument('role')
@click.argument('permission_code')
@with_appcontext
def check_permission_cli(role, permission_code):
    """Check if a role grants a specific permission."""
    evaluator = get_security_core().permissions
    if role not in evaluator.roles:
        click.echo(f"FAIL Role '{role}' not found")
        return

    if not validate_permission_code(permission_code):
        click.echo(f"WARN  '{permission_code}' is not in the permission catalogue")

    if evaluator.role_allows(role, permission_code):
        click.echo(f"PASS Role '{role}' HAS permission '{permission_code}'")
    else:
        click.echo(f"FAIL Role '{role}' DOES NOT HAVE permission '{permission_code}'")

    definition = get_permission_definition(permission_code)
    if definition:
        click.echo(f"\n{definition['name']}: {definition['description']}")


# =============================================================================
# STORAGE
# =============================================================================

@click.group('storage')
def storage_group():
    """Secure storage maintenance commands."""


@storage_group.command('backup')
@click.argument('output', type=click.File('w', encoding='utf-8'))
@click.option('--password', default=None, help='Encrypt the backup with this password')
@with_appcontext
def backup_cli(output, password):
    """Write a backup of all secure data to OUTPUT ('-' for stdout)."""
    try:
        artifact = get_security_core().records.backup(password)
    except BackupError as e:
        click.echo(f"FAIL {e.message}", err=True)
        raise SystemExit(1)
    output.write(artifact)
    click.echo(f"PASS Backup written ({'encrypted' if password else 'plain'})", err=True)


@storage_group.command('restore')
@click.argument('source', type=click.File('r', encoding='utf-8'))
@click.option('--password', default=None, help='Password the backup was encrypted with')
@click.option('--overwrite', is_flag=True, help='Replace keys that already exist')
@with_appcontext
def restore_cli(source, password, overwrite):
    """Restore secure data from a backup file."""
    try:
        result = get_security_core().records.restore(source.read(), password=password, overwrite=overwrite)
    except BackupError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Restored {result.restored_count} item(s)")
    for error in result.errors:
        click.echo(f"WARN  {error['key']}: {error['error']}")


@storage_group.command('verify')
@with_appcontext
def verify_cli():
    """Decode every record and report corrupted ones."""
    results = get_security_core().records.verify_integrity()
    click.echo(f"Total: {results['total']}  Valid: {results['valid']}  Corrupted: {results['corrupted']}")
    for error in results['errors']:
        click.echo(f"FAIL {error['key']}: {error['error']}")
    if results['corrupted']:
        raise SystemExit(1)


@storage_group.command('stats')
@with_appcontext
def stats_cli():
    """Show storage size statistics by category."""
    records = get_security_core().records
    stats = records.stats()
    usage = records.usage_by_category()

    click.echo(f"Items: {stats['item_count']}  Total: {stats['total_size']} chars  "
               f"Average: {stats['average_size']} chars")
    largest = stats['largest_item']
    if largest['key']:
        click.echo(f"Largest: {largest['key']} ({largest['size']} chars)")
    click.echo("-"*60)
    for category, bucket in sorted(usage.items()):
        click.echo(f"{category:<20} {bucket['count']:>5} items {bucket['size']:>10} chars {bucket['percentage']:>4}%")


@storage_group.command('migrate')
@with_appcontext
def migrate_cli():
    """Move legacy plaintext entries into encrypted storage."""
    report = get_security_core().records.migrate_legacy()
    for item in report.migrated:
        click.echo(f"PASS {item['legacy_key']} -> {item['key']}")
    for error in report.failed:
        click.echo(f"FAIL {error.message}")
    click.echo(f"Migrated {report.migrated_count} item(s)")


# =============================================================================
# AUDIT
# =============================================================================

@click.group('audit')
def audit_group():
    """Security audit log commands."""


@audit_group.command('list')
@click.option('--limit', default=50, show_default=True, help='Most recent N events (0 for all)')
@click.option('--event', default=None, help='Filter by event kind')
@with_appcontext
def list_audit_cli(limit, event):
    """List recent security events."""
    events = get_security_core().audit.query(event=event, limit=limit or None)
    if not events:
        click.echo("No events found.")
        return
    for entry in events:
        click.echo(f"{entry.timestamp}  {entry.event:<28} {entry.username:<15} {entry.details}")
    click.echo(f"\n Total: {len(events)} events\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(storage_group)
    app.cli.add_command(audit_group)
