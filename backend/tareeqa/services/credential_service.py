# Overview: User records, secret hashing and the per-user lockout state machine.

"""
Credential Store

WHY: Every action at the till must be attributable to a user. Users live as
one encrypted list under the namespace key "users" in secure storage.

HASHING: H(secret || salt || installationSecret), salted per user.
- New hashes: bcrypt over base64(SHA-256(combined)). The SHA-256 pre-hash
  keeps the bcrypt input under its 72-byte limit.
- Legacy hashes: plain SHA-256 hex, or the 32-bit rolling fallback when the
  old runtime had no digest primitive. Verified as-is and upgraded to bcrypt
  on the next successful login.

LOCKOUT (per user):
    Active(attempts < 5) --failure--> attempts += 1
    attempts == 5        ----------> Locked(until = now + 30 min)
    Locked, now < until  ----------> AccountLockedError, attempts untouched
    Locked, now >= until ----------> Active(attempts = 0)
    success from any state --------> Active(attempts = 0, until = None)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import math
import re
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

import bcrypt

from ..errors import (
    AccountLockedError,
    DuplicateUsernameError,
    InactiveAccountError,
    InvalidCredentialError,
    InvalidRoleError,
    PasswordValidationError,
    PersistenceError,
    UnknownUserError,
    UserManagementError,
    UserNotFoundError,
)
from ..identifiers import generate_random_string
from ..permissions import ROLES, validate_role
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from . import codec


logger = logging.getLogger(__name__)


USERS_KEY = "users"

HASH_BCRYPT = "bcrypt"
HASH_SHA256 = "sha256"
HASH_ROLLING = "rolling32"

ID_LENGTH = 8
SALT_LENGTH = 16
MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
DEFAULT_EMAIL_DOMAIN = "tareeqa.pos"

DEFAULT_MAX_FAILED_ATTEMPTS = 5
DEFAULT_LOCKOUT_MINUTES = 30
DEFAULT_BCRYPT_ROUNDS = 12

# (username, password, full name, role) seeded on an empty installation
DEFAULT_USERS = (
    ("admin", "admin123", "System Administrator", "admin"),
    ("cashier", "cashier123", "Cashier", "cashier"),
)

_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")


# =============================================================================
# HASHING
# =============================================================================

def _combined(secret: str, salt: str, installation_secret: str) -> bytes:
    return (secret + salt + installation_secret).encode("utf-8")


def legacy_digest(secret: str, salt: str, installation_secret: str) -> str:
    """SHA-256 hex of secret+salt+installation secret (legacy scheme)."""
    return hashlib.sha256(_combined(secret, salt, installation_secret)).hexdigest()


def fallback_digest(secret: str, salt: str, installation_secret: str) -> str:
    """32-bit rolling hash used by the legacy runtime when no digest primitive was available."""
    return codec.checksum(secret + salt + installation_secret)


def _bcrypt_input(secret: str, salt: str, installation_secret: str) -> bytes:
    digest = hashlib.sha256(_combined(secret, salt, installation_secret)).digest()
    return base64.b64encode(digest)


def hash_secret(secret: str, salt: str, installation_secret: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """
    Hash a secret with bcrypt.

    WHY: bcrypt's cost factor slows brute force; the per-user salt and the
    installation secret are folded into the input so hashes don't transfer
    between installations.
    """
    hashed = bcrypt.hashpw(_bcrypt_input(secret, salt, installation_secret), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def detect_scheme(stored_hash: str) -> str:
    if stored_hash.startswith("$2"):
        return HASH_BCRYPT
    if _SHA256_HEX.match(stored_hash):
        return HASH_SHA256
    return HASH_ROLLING


def verify_hash(secret: str, stored_hash: str, salt: str, installation_secret: str) -> bool:
    """
    Check a candidate secret against a stored hash of any supported scheme.

    Returns False (never raises) for malformed hashes.
    """
    if not stored_hash:
        return False

    scheme = detect_scheme(stored_hash)
    if scheme == HASH_BCRYPT:
        try:
            return bcrypt.checkpw(
                _bcrypt_input(secret, salt, installation_secret),
                stored_hash.encode("utf-8"),
            )
        except ValueError:
            return False

    if scheme == HASH_SHA256:
        candidate = legacy_digest(secret, salt, installation_secret)
    else:
        candidate = fallback_digest(secret, salt, installation_secret)
    return hmac.compare_digest(candidate, stored_hash)


def validate_password_strength(password: str) -> None:
    """
    Minimum requirements for a new secret.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def validate_username(username: str) -> str:
    cleaned = (username or "").strip()
    if len(cleaned) < MIN_USERNAME_LENGTH:
        raise UserManagementError(
            f"Username must be at least {MIN_USERNAME_LENGTH} characters long",
            code="invalid_username",
        )
    return cleaned


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class Identity:
    """A user with every credential-bearing field stripped."""
    id: str
    username: str
    full_name: str
    role: str
    email: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    last_login: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login": to_utc_z(self.last_login),
        }


@dataclass
class User:
    id: str
    username: str
    password_hash: str
    password_salt: str
    full_name: str
    role: str
    email: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    last_login: datetime | None = None
    login_attempts: int = 0
    locked_until: datetime | None = None
    last_password_change: datetime | None = None
    extra: dict = field(default_factory=dict)

    # Record keys written by the legacy runtime; unknown keys round-trip via `extra`
    _RECORD_FIELDS = (
        "id", "username", "passwordHash", "passwordSalt", "fullName", "role", "email",
        "isActive", "createdAt", "lastLogin", "loginAttempts", "lockedUntil", "lastPasswordChange",
    )

    @classmethod
    def from_record(cls, record: dict) -> "User":
        return cls(
            id=str(record.get("id") or ""),
            username=str(record.get("username") or ""),
            password_hash=record.get("passwordHash") or "",
            password_salt=record.get("passwordSalt") or "",
            full_name=record.get("fullName") or record.get("username") or "",
            role=record.get("role") or "viewer",
            email=record.get("email"),
            is_active=record.get("isActive") is not False,
            created_at=parse_iso_datetime(record.get("createdAt")),
            last_login=parse_iso_datetime(record.get("lastLogin")),
            login_attempts=int(record.get("loginAttempts") or 0),
            locked_until=parse_iso_datetime(record.get("lockedUntil")),
            last_password_change=parse_iso_datetime(record.get("lastPasswordChange")),
            extra={k: v for k, v in record.items() if k not in cls._RECORD_FIELDS},
        )

    def to_record(self) -> dict:
        record = dict(self.extra)
        record.update({
            "id": self.id,
            "username": self.username,
            "passwordHash": self.password_hash,
            "passwordSalt": self.password_salt,
            "fullName": self.full_name,
            "role": self.role,
            "email": self.email,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
            "lastLogin": to_utc_z(self.last_login),
            "loginAttempts": self.login_attempts,
            "lockedUntil": to_utc_z(self.locked_until),
            "lastPasswordChange": to_utc_z(self.last_password_change),
        })
        return record

    def identity(self) -> Identity:
        return Identity(
            id=self.id,
            username=self.username,
            full_name=self.full_name,
            role=self.role,
            email=self.email,
            is_active=self.is_active,
            created_at=self.created_at,
            last_login=self.last_login,
        )

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until

    def to_public_dict(self) -> dict:
        data = self.identity().to_dict()
        data.update({
            "login_attempts": self.login_attempts,
            "locked_until": to_utc_z(self.locked_until),
            "last_password_change": to_utc_z(self.last_password_change),
        })
        return data


# =============================================================================
# STORE
# =============================================================================

class CredentialStore:
    def __init__(
        self,
        records,
        installation_secret: str,
        *,
        audit=None,
        clock=utcnow,
        max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
        lockout_minutes: int = DEFAULT_LOCKOUT_MINUTES,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ):
        self._records = records
        self._installation_secret = installation_secret
        self._audit = audit
        self._clock = clock
        self.max_failed_attempts = max_failed_attempts
        self.lockout_duration = timedelta(minutes=lockout_minutes)
        self._bcrypt_rounds = bcrypt_rounds
        self._lock = threading.RLock()

    def _log(self, event: str, details: dict) -> None:
        if self._audit is not None:
            self._audit.append(event, details)

    def _load(self) -> list[User]:
        raw = self._records.get(USERS_KEY, [])
        if not isinstance(raw, list):
            logger.warning("User records are not a list; ignoring")
            return []
        return [User.from_record(record) for record in raw if isinstance(record, dict)]

    def _save(self, users: list[User]) -> None:
        if not self._records.put(USERS_KEY, [user.to_record() for user in users]):
            raise PersistenceError("Failed to save user records")

    @staticmethod
    def _find(users: list[User], *, username: str | None = None, user_id: str | None = None) -> User | None:
        for user in users:
            if username is not None and user.username == username:
                return user
            if user_id is not None and user.id == user_id:
                return user
        return None

    def _require(self, users: list[User], user_id: str) -> User:
        user = self._find(users, user_id=user_id)
        if user is None:
            raise UserNotFoundError(details={"user_id": user_id})
        return user

    def _new_hash(self, secret: str) -> tuple[str, str]:
        salt = generate_random_string(SALT_LENGTH)
        return hash_secret(secret, salt, self._installation_secret, self._bcrypt_rounds), salt

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def find_by_username(self, username: str) -> User | None:
        return self._find(self._load(), username=username)

    def find_by_id(self, user_id: str) -> User | None:
        return self._find(self._load(), user_id=user_id)

    def list_users(self) -> list[User]:
        """Users sorted by role priority, then username."""
        def sort_key(user: User):
            role = ROLES.get(user.role)
            return (role.priority if role else len(ROLES) + 1, user.username)
        return sorted(self._load(), key=sort_key)

    def has_users(self) -> bool:
        return bool(self._load())

    # =========================================================================
    # CREATE
    # =========================================================================

    def create(
        self,
        username: str,
        password: str,
        *,
        full_name: str | None = None,
        role: str = "cashier",
        email: str | None = None,
        is_active: bool = True,
    ) -> User:
        """
        Create a user with a freshly salted secret hash.

        Raises:
            DuplicateUsernameError: If the username is taken
            PasswordValidationError: If the password is too short
            InvalidRoleError: If the role isn't in the role table
            UserManagementError: If the username is too short
        """
        username = validate_username(username)
        validate_password_strength(password)
        if not validate_role(role):
            raise InvalidRoleError(f"Unknown role: {role}")

        with self._lock:
            users = self._load()
            if self._find(users, username=username):
                raise DuplicateUsernameError(details={"username": username})

            password_hash, salt = self._new_hash(password)
            now = self._clock()
            existing_ids = {u.id for u in users}
            user_id = generate_random_string(ID_LENGTH)
            while user_id in existing_ids:
                user_id = generate_random_string(ID_LENGTH)

            user = User(
                id=user_id,
                username=username,
                password_hash=password_hash,
                password_salt=salt,
                full_name=(full_name or "").strip() or username,
                role=role,
                email=email or f"{username}@{DEFAULT_EMAIL_DOMAIN}",
                is_active=is_active,
                created_at=now,
                last_password_change=now,
            )
            users.append(user)
            self._save(users)

        logger.info("User created: %s (%s)", username, role)
        self._log("user_created", {"userId": user.id, "username": username, "role": role})
        return user

    def ensure_default_users(self) -> list[User]:
        """Seed the default accounts, only when no users exist at all."""
        with self._lock:
            if self.has_users():
                return []
            created = [
                self.create(username, password, full_name=full_name, role=role)
                for username, password, full_name, role in DEFAULT_USERS
            ]
        logger.info("Default users created")
        return created

    # =========================================================================
    # VERIFY / AUTHENTICATE
    # =========================================================================

    def verify_secret(self, user: User, candidate: str) -> bool:
        return verify_hash(candidate, user.password_hash, user.password_salt, self._installation_secret)

    def _seconds_until(self, until: datetime, now: datetime) -> int:
        return max(1, math.ceil((until - now).total_seconds()))

    def _locked_error(self, user: User, now: datetime, message: str | None = None) -> AccountLockedError:
        remaining = self._seconds_until(user.locked_until, now)
        return AccountLockedError(
            message,
            locked_until=user.locked_until,
            seconds_remaining=remaining,
            details={"locked_until": to_utc_z(user.locked_until), "retry_after_seconds": remaining},
        )

    def authenticate(self, username: str, secret: str) -> Identity:
        """
        Verify a username/secret pair and drive the lockout state machine.

        Returns the credential-free identity on success.

        Raises:
            UnknownUserError, InactiveAccountError, AccountLockedError,
            InvalidCredentialError (carries attempts_remaining)
        """
        with self._lock:
            users = self._load()
            user = self._find(users, username=username)
            if user is None:
                raise UnknownUserError()
            if not user.is_active:
                raise InactiveAccountError()

            now = self._clock()
            if user.locked_until is not None and not user.is_locked(now):
                # Window elapsed: lockout self-clears
                user.locked_until = None
                user.login_attempts = 0

            if user.is_locked(now):
                raise self._locked_error(user, now)

            if not self.verify_secret(user, secret):
                user.login_attempts += 1
                if user.login_attempts >= self.max_failed_attempts:
                    user.locked_until = now + self.lockout_duration
                    self._save(users)
                    logger.warning("Account locked after %d failed attempts: %s", user.login_attempts, username)
                    self._log("account_locked", {
                        "username": username,
                        "attempts": user.login_attempts,
                        "lockedUntil": to_utc_z(user.locked_until),
                    })
                    minutes = int(self.lockout_duration.total_seconds() // 60)
                    raise self._locked_error(
                        user, now,
                        f"Account locked for {minutes} minutes due to too many failed login attempts",
                    )
                self._save(users)
                raise InvalidCredentialError(
                    "Incorrect password",
                    attempts_remaining=self.max_failed_attempts - user.login_attempts,
                    details={"attempts_remaining": self.max_failed_attempts - user.login_attempts},
                )

            user.login_attempts = 0
            user.locked_until = None
            user.last_login = now
            if detect_scheme(user.password_hash) != HASH_BCRYPT:
                user.password_hash, user.password_salt = self._new_hash(secret)
                logger.info("Upgraded legacy password hash for %s", username)
            self._save(users)
            return user.identity()

    def lockout_status(self, username: str) -> dict:
        """Current lockout state for a username (for the login screen)."""
        user = self.find_by_username(username)
        if user is None:
            raise UserNotFoundError(details={"username": username})
        now = self._clock()
        locked = user.is_locked(now)
        attempts = user.login_attempts if (locked or user.locked_until is None) else 0
        return {
            "username": username,
            "locked": locked,
            "failed_attempts": attempts,
            "attempts_remaining": 0 if locked else max(0, self.max_failed_attempts - attempts),
            "locked_until": to_utc_z(user.locked_until) if locked else None,
            "seconds_remaining": self._seconds_until(user.locked_until, now) if locked else None,
        }

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def _mutate(self, user_id: str, apply) -> User:
        with self._lock:
            users = self._load()
            user = self._require(users, user_id)
            apply(user, users)
            self._save(users)
            return replace(user)

    def update_user(self, user_id: str, *, full_name: str | None = None, email: str | None = None,
                    role: str | None = None) -> User:
        if role is not None and not validate_role(role):
            raise InvalidRoleError(f"Unknown role: {role}")

        changed = []

        def apply(user: User, users: list[User]) -> None:
            if full_name is not None and full_name.strip() and full_name.strip() != user.full_name:
                user.full_name = full_name.strip()
                changed.append("full_name")
            if email is not None and email != user.email:
                user.email = email
                changed.append("email")
            if role is not None and role != user.role:
                if user.role == "admin" and self._is_last_active_admin(user, users):
                    raise UserManagementError(
                        "Cannot change the role of the last active administrator", code="last_admin"
                    )
                user.role = role
                changed.append("role")

        user = self._mutate(user_id, apply)
        if changed:
            self._log("user_updated", {"userId": user_id, "username": user.username, "fields": changed})
        return user

    @staticmethod
    def _is_last_active_admin(user: User, users: list[User]) -> bool:
        return not any(u.id != user.id and u.is_active and u.role == "admin" for u in users)

    def set_active(self, user_id: str, active: bool) -> User:
        def apply(user: User, users: list[User]) -> None:
            if not active and user.role == "admin" and user.is_active and self._is_last_active_admin(user, users):
                raise UserManagementError(
                    "Cannot deactivate the last active administrator", code="last_admin"
                )
            user.is_active = bool(active)

        user = self._mutate(user_id, apply)
        self._log("user_status_changed", {"userId": user_id, "username": user.username, "isActive": user.is_active})
        return user

    def change_password(self, user_id: str, current: str, new: str) -> User:
        """Change a user's own secret after re-verifying the current one."""
        validate_password_strength(new)

        def apply(user: User, users: list[User]) -> None:
            if not self.verify_secret(user, current):
                raise InvalidCredentialError("Current password is incorrect")
            user.password_hash, user.password_salt = self._new_hash(new)
            user.last_password_change = self._clock()

        user = self._mutate(user_id, apply)
        self._log("password_changed", {"userId": user_id, "username": user.username})
        return user

    def reset_password(self, user_id: str, new: str) -> User:
        """Administrative reset; also clears any lockout."""
        validate_password_strength(new)

        def apply(user: User, users: list[User]) -> None:
            user.password_hash, user.password_salt = self._new_hash(new)
            user.last_password_change = self._clock()
            user.login_attempts = 0
            user.locked_until = None

        user = self._mutate(user_id, apply)
        self._log("password_reset", {"userId": user_id, "username": user.username})
        return user

    def clear_lockout(self, user_id: str) -> User:
        def apply(user: User, users: list[User]) -> None:
            user.login_attempts = 0
            user.locked_until = None

        user = self._mutate(user_id, apply)
        self._log("lockout_cleared", {"userId": user_id, "username": user.username})
        return user
