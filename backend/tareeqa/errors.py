# Overview: Typed error hierarchy for the local security core.

"""
Security Core Exception Hierarchy

Authentication and session errors gate access, so they always reach the
caller with a message that can be shown to the operator as-is.

Storage errors (encoding, integrity, migration, backup) are normally
recovered inside the storage layer, which falls back to a safe default and
records an audit event instead of crashing the till.

Categories:
    - AuthenticationError: login and credential verification failures
    - UserManagementError: user record maintenance failures
    - SessionError: session lifecycle misuse
    - StorageError: codec and secure storage failures
"""

from datetime import datetime
from typing import Any, Dict, Optional


class SecurityCoreError(Exception):
    """
    Base exception for all security core errors.

    Attributes:
        message: Human-readable, user-displayable description
        code: Stable error code for programmatic handling
        details: Additional context (never contains secrets)
    """

    default_message = "Security error"
    default_code = "security_error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


# =============================================================================
# AUTHENTICATION
# =============================================================================


class AuthenticationError(SecurityCoreError):
    default_message = "Authentication failed"
    default_code = "authentication_failed"


class UnknownUserError(AuthenticationError):
    default_message = "Unknown username"
    default_code = "unknown_user"


class InactiveAccountError(AuthenticationError):
    default_message = "This account is deactivated"
    default_code = "inactive_account"


class AccountLockedError(AuthenticationError):
    """Raised while an account sits inside its lockout window."""

    default_message = "Account temporarily locked due to too many failed login attempts"
    default_code = "account_locked"

    def __init__(
        self,
        message: Optional[str] = None,
        locked_until: Optional[datetime] = None,
        seconds_remaining: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.locked_until = locked_until
        self.seconds_remaining = seconds_remaining


class InvalidCredentialError(AuthenticationError):
    default_message = "Invalid credentials"
    default_code = "invalid_credentials"

    def __init__(self, message: Optional[str] = None, attempts_remaining: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts_remaining = attempts_remaining


# =============================================================================
# USER MANAGEMENT
# =============================================================================


class UserManagementError(SecurityCoreError):
    default_message = "User management error"
    default_code = "user_management_error"


class DuplicateUsernameError(UserManagementError):
    default_message = "Username already exists"
    default_code = "duplicate_username"


class UserNotFoundError(UserManagementError):
    default_message = "User not found"
    default_code = "user_not_found"


class PasswordValidationError(UserManagementError):
    """Raised when a username or password doesn't meet the minimum requirements."""

    default_message = "Password does not meet requirements"
    default_code = "invalid_password"


class InvalidRoleError(UserManagementError):
    default_message = "Unknown role"
    default_code = "invalid_role"


# =============================================================================
# SESSION
# =============================================================================


class SessionError(SecurityCoreError):
    default_message = "Session error"
    default_code = "session_error"


class NoActiveSessionError(SessionError):
    default_message = "No active session"
    default_code = "no_active_session"


# =============================================================================
# STORAGE
# =============================================================================


class StorageError(SecurityCoreError):
    default_message = "Secure storage error"
    default_code = "storage_error"


class EncodingError(StorageError):
    default_message = "Failed to encode data"
    default_code = "encoding_failed"


class IntegrityError(StorageError):
    """Checksum mismatch or unreadable artifact: possible tampering or corruption."""

    default_message = "Data integrity check failed"
    default_code = "integrity_failed"


class MigrationError(StorageError):
    default_message = "Failed to migrate legacy data"
    default_code = "migration_failed"


class BackupError(StorageError):
    default_message = "Invalid backup"
    default_code = "backup_invalid"


class PersistenceError(StorageError):
    default_message = "Failed to persist data"
    default_code = "persistence_failed"


# =============================================================================
# HTTP MAPPING
# =============================================================================

# Checked in order; subclasses come before their parents
_HTTP_STATUS = (
    (AccountLockedError, 429),
    (InactiveAccountError, 403),
    (AuthenticationError, 401),
    (DuplicateUsernameError, 409),
    (UserNotFoundError, 404),
    (UserManagementError, 400),
    (NoActiveSessionError, 401),
    (SessionError, 423),
    (BackupError, 400),
    (StorageError, 500),
)


def http_status(exc: SecurityCoreError) -> int:
    for error_type, status in _HTTP_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500
