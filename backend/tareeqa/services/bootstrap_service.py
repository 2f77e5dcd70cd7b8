# Overview: Builds and wires the security core components over a storage backend.

"""
Security Core Bootstrap

Wiring order matters:
1. Installation key (configured, stored, or generated and stored)
2. SecureRecordStore, then the AuditLog that persists through it
3. Legacy migration, before anything else writes records
4. CredentialStore (+ default users), PermissionEvaluator, SessionManager
5. Audit actor bound to the session, then optional session restore
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from ..identifiers import generate_random_string
from ..time_utils import utcnow
from .audit_service import DEFAULT_CAPACITY, AuditLog
from .credential_service import (
    DEFAULT_BCRYPT_ROUNDS,
    DEFAULT_LOCKOUT_MINUTES,
    DEFAULT_MAX_FAILED_ATTEMPTS,
    CredentialStore,
)
from .permission_service import PermissionEvaluator
from .secure_storage_service import MigrationReport, SecureRecordStore
from .session_service import DEFAULT_IDLE_TIMEOUT_MINUTES, IdleTimer, SessionManager
from .storage_backend import StorageBackend


logger = logging.getLogger(__name__)

EXTENSION_KEY = "tareeqa.security"
INSTALLATION_KEY_STORAGE_KEY = "tareeqa_encryption_key"
INSTALLATION_KEY_LENGTH = 32


@dataclass
class SecurityCore:
    backend: StorageBackend
    records: SecureRecordStore
    audit: AuditLog
    credentials: CredentialStore
    permissions: PermissionEvaluator
    sessions: SessionManager
    migration: MigrationReport | None = None

    def shutdown(self) -> None:
        self.sessions.shutdown()


def resolve_installation_key(backend: StorageBackend, configured: str | None = None) -> str:
    """
    Installation secret used for the codec and secret hashing.

    A configured key wins. Otherwise the key stored by a previous start (or
    by the legacy runtime) is reused; on first start one is generated.
    """
    if configured:
        return configured
    stored = backend.get(INSTALLATION_KEY_STORAGE_KEY)
    if stored:
        return stored
    key = generate_random_string(INSTALLATION_KEY_LENGTH)
    backend.set(INSTALLATION_KEY_STORAGE_KEY, key)
    logger.info("Generated new installation key")
    return key


def build_security_core(
    backend: StorageBackend,
    *,
    installation_key: str | None = None,
    idle_timeout_minutes: float = DEFAULT_IDLE_TIMEOUT_MINUTES,
    max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
    lockout_minutes: int = DEFAULT_LOCKOUT_MINUTES,
    audit_capacity: int = DEFAULT_CAPACITY,
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    clock=utcnow,
    timer_factory=IdleTimer,
    migrate_legacy: bool = True,
    create_default_users: bool = True,
    restore_session: bool = True,
) -> SecurityCore:
    key = resolve_installation_key(backend, installation_key)

    records = SecureRecordStore(backend, key, clock=clock)
    audit = AuditLog(records, capacity=audit_capacity, clock=clock)
    records.attach_audit(audit)

    migration = records.migrate_legacy() if migrate_legacy else None

    credentials = CredentialStore(
        records,
        key,
        audit=audit,
        clock=clock,
        max_failed_attempts=max_failed_attempts,
        lockout_minutes=lockout_minutes,
        bcrypt_rounds=bcrypt_rounds,
    )
    if create_default_users:
        credentials.ensure_default_users()

    permissions = PermissionEvaluator()
    sessions = SessionManager(
        credentials,
        permissions,
        audit,
        records,
        idle_timeout_minutes=idle_timeout_minutes,
        clock=clock,
        timer_factory=timer_factory,
    )
    audit.bind_actor(sessions.current_actor)

    if restore_session:
        sessions.restore()

    logger.info("Security core initialized")
    return SecurityCore(
        backend=backend,
        records=records,
        audit=audit,
        credentials=credentials,
        permissions=permissions,
        sessions=sessions,
        migration=migration,
    )


def build_from_config(backend: StorageBackend, config) -> SecurityCore:
    """build_security_core() driven by a Flask config mapping."""
    return build_security_core(
        backend,
        installation_key=config.get("INSTALLATION_KEY"),
        idle_timeout_minutes=config.get("SESSION_IDLE_TIMEOUT_MINUTES", DEFAULT_IDLE_TIMEOUT_MINUTES),
        max_failed_attempts=config.get("MAX_FAILED_ATTEMPTS", DEFAULT_MAX_FAILED_ATTEMPTS),
        lockout_minutes=config.get("LOCKOUT_DURATION_MINUTES", DEFAULT_LOCKOUT_MINUTES),
        audit_capacity=config.get("AUDIT_LOG_CAPACITY", DEFAULT_CAPACITY),
        bcrypt_rounds=config.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS),
        clock=config.get("CLOCK") or utcnow,
        timer_factory=config.get("TIMER_FACTORY") or IdleTimer,
        migrate_legacy=config.get("MIGRATE_LEGACY_ON_STARTUP", True),
        create_default_users=config.get("CREATE_DEFAULT_USERS", True),
        restore_session=config.get("RESTORE_SESSION_ON_STARTUP", True),
    )


def get_security_core() -> SecurityCore:
    """The core built for the current Flask app."""
    return current_app.extensions[EXTENSION_KEY]
