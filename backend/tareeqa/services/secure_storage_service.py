# Overview: Namespaced encrypted key/value storage with backup, restore and legacy migration.

"""
Secure Record Store

Every value the core persists (users, session snapshot, audit ledger and
arbitrary application data) goes through here:

    namespace key "products"  ->  storage key "tareeqa_secure_products"
    value                     ->  codec artifact under the installation key

AVAILABILITY FIRST: put/get never raise for storage problems. A failed
write returns False; an unreadable record returns the caller's default and
leaves a secure_data_access_failed audit event. Corruption of one record
must not take the till down.

RESERVED KEYS: the audit ledger and the session snapshot live under the
same prefix but are excluded from backups and can't be restored from one.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import BackupError, EncodingError, IntegrityError, MigrationError, StorageError
from ..time_utils import to_utc_z, utcnow
from . import codec
from .storage_backend import StorageBackend


logger = logging.getLogger(__name__)


STORAGE_PREFIX = "tareeqa_secure_"
LEGACY_PREFIX = "tareeqa_"

# Plain JSON entries written before encryption existed
LEGACY_KEYS = (
    "tareeqa_products",
    "tareeqa_settings",
    "tareeqa_customers",
    "tareeqa_transactions",
    "tareeqa_inventory",
)

# Entries the legacy runtime masked with a single-key XOR
LEGACY_MASKED_KEYS = {
    "tareeqa_users": "users",
    "tareeqa_security_log": "security_log",
}

AUDIT_LOG_KEY = "security_log"
SESSION_KEY = "session"
RESERVED_KEYS = frozenset({AUDIT_LOG_KEY, SESSION_KEY})

BACKUP_VERSION = "1.0"

_MISSING = object()

RecordListener = Callable[[str, Optional[str], Optional[str]], None]


@dataclass
class MigrationReport:
    migrated: list[dict] = field(default_factory=list)
    failed: list[MigrationError] = field(default_factory=list)

    @property
    def migrated_count(self) -> int:
        return len(self.migrated)

    def to_dict(self) -> dict:
        return {
            "migrated": list(self.migrated),
            "migrated_count": self.migrated_count,
            "failed": [
                {"legacy_key": err.details.get("legacy_key"), "error": err.message}
                for err in self.failed
            ],
        }


@dataclass
class RestoreResult:
    restored_count: int
    errors: list[dict]
    backup_info: dict

    def to_dict(self) -> dict:
        return {
            "success": True,
            "restored_count": self.restored_count,
            "errors": list(self.errors),
            "backup_info": dict(self.backup_info),
        }


class SecureRecordStore:
    def __init__(self, backend: StorageBackend, encryption_key: str, *, audit=None, clock=utcnow):
        self._backend = backend
        self._key = encryption_key
        self._audit = audit
        self._clock = clock
        self._listeners: list[RecordListener] = []
        backend.add_change_listener(self._on_backend_change)

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def attach_audit(self, audit) -> None:
        """The audit log persists through this store, so it is attached after construction."""
        self._audit = audit

    def _log(self, event: str, details: dict) -> None:
        if self._audit is not None:
            self._audit.append(event, details)

    @staticmethod
    def storage_key(key: str) -> str:
        return STORAGE_PREFIX + key

    # =========================================================================
    # BASIC ACCESS
    # =========================================================================

    def put(self, key: str, value: Any, *, audit: bool = True, encryption_key: str | None = None) -> bool:
        """
        Encode and persist a value. Returns False instead of raising.

        audit=False is used by the audit ledger and session snapshot, which
        must not generate events about themselves.
        """
        try:
            artifact = codec.encode(value, encryption_key or self._key)
            self._backend.set(self.storage_key(key), artifact)
        except (StorageError, SQLAlchemyError) as exc:
            logger.warning("Failed to store secure key %s", key, exc_info=True)
            if audit:
                self._log("secure_storage_error", {"key": key, "error": str(exc)})
            return False

        if audit:
            self._log("secure_data_stored", {"key": key, "dataSize": len(artifact), "encrypted": True})
        return True

    def _load(self, key: str, encryption_key: str | None = None) -> Any:
        """Read and decode; raises IntegrityError/SQLAlchemyError, returns _MISSING if absent."""
        artifact = self._backend.get(self.storage_key(key))
        if artifact is None:
            return _MISSING
        return codec.decode(artifact, encryption_key or self._key)

    def _access_failed(self, key: str, exc: Exception, audit: bool) -> None:
        logger.warning("Failed to read secure key %s: %s", key, exc)
        if audit:
            self._log("secure_data_access_failed", {"key": key, "error": str(exc)})

    def get(self, key: str, default: Any = None, *, audit: bool = True, encryption_key: str | None = None) -> Any:
        """Decode a stored value; returns default when absent, corrupted or tampered with."""
        try:
            value = self._load(key, encryption_key)
        except (IntegrityError, SQLAlchemyError) as exc:
            self._access_failed(key, exc, audit)
            return default
        return default if value is _MISSING else value

    def remove(self, key: str, *, audit: bool = True) -> bool:
        try:
            self._backend.remove(self.storage_key(key))
        except SQLAlchemyError:
            logger.warning("Failed to remove secure key %s", key, exc_info=True)
            return False
        if audit:
            self._log("secure_data_removed", {"key": key})
        return True

    def has(self, key: str) -> bool:
        return self._backend.get(self.storage_key(key)) is not None

    def list_keys(self, include_reserved: bool = True) -> list[str]:
        keys = [
            storage_key[len(STORAGE_PREFIX):]
            for storage_key in self._backend.list_keys()
            if storage_key.startswith(STORAGE_PREFIX)
        ]
        if not include_reserved:
            keys = [key for key in keys if key not in RESERVED_KEYS]
        return keys

    def clear_all(self, confirm: bool = False) -> int:
        """Remove every namespaced record. Requires explicit confirmation."""
        if not confirm:
            raise ValueError("Confirmation required to clear all secure storage")
        cleared = 0
        for key in self.list_keys():
            if self.remove(key, audit=False):
                cleared += 1
        self._log("secure_storage_cleared", {"itemCount": cleared})
        return cleared

    # =========================================================================
    # CHANGE NOTIFICATION
    # =========================================================================

    def add_change_listener(self, listener: RecordListener) -> None:
        self._listeners.append(listener)

    def _on_backend_change(self, storage_key: str, old_value: str | None, new_value: str | None) -> None:
        if not storage_key or not storage_key.startswith(STORAGE_PREFIX):
            return
        key = storage_key[len(STORAGE_PREFIX):]
        self._log("external_storage_change", {
            "key": key,
            "oldValue": "exists" if old_value else "null",
            "newValue": "exists" if new_value else "null",
        })
        for listener in list(self._listeners):
            try:
                listener(key, old_value, new_value)
            except Exception:
                logger.warning("Secure storage listener failed for key %s", key, exc_info=True)

    # =========================================================================
    # LEGACY MIGRATION
    # =========================================================================

    def _migration_failed(self, report: MigrationReport, legacy_key: str, reason: str) -> None:
        error = MigrationError(f"Failed to migrate {legacy_key}: {reason}", details={"legacy_key": legacy_key})
        logger.warning(error.message)
        report.failed.append(error)

    def _migrate_value(self, report: MigrationReport, legacy_key: str, key: str, value: Any) -> None:
        if not self.put(key, value):
            self._migration_failed(report, legacy_key, "could not store encrypted copy")
            return
        try:
            self._backend.remove(legacy_key)
        except SQLAlchemyError as exc:
            self._migration_failed(report, legacy_key, f"legacy entry not removed: {exc}")
            return
        report.migrated.append({"legacy_key": legacy_key, "key": key})
        logger.info("Migrated %s -> %s", legacy_key, key)

    def migrate_legacy(self) -> MigrationReport:
        """
        One-time sweep of known unencrypted keys into encrypted storage.

        Each legacy entry is re-stored under its new namespace key and then
        deleted. A failure on one key is recorded and the sweep moves on.
        """
        report = MigrationReport()

        for legacy_key, key in LEGACY_MASKED_KEYS.items():
            raw = self._backend.get(legacy_key)
            if not raw:
                continue
            if self.has(key):
                self._migration_failed(report, legacy_key, f"'{key}' already exists")
                continue
            try:
                value = codec.deserialize(codec.legacy_unmask(raw, self._key))
            except (ValueError, EncodingError) as exc:
                self._migration_failed(report, legacy_key, str(exc))
                continue
            self._migrate_value(report, legacy_key, key, value)

        for legacy_key in LEGACY_KEYS:
            raw = self._backend.get(legacy_key)
            if not raw or codec.is_encoded(raw):
                continue
            try:
                value = codec.deserialize(raw)
            except ValueError as exc:
                self._migration_failed(report, legacy_key, str(exc))
                continue
            self._migrate_value(report, legacy_key, legacy_key[len(LEGACY_PREFIX):], value)

        if report.migrated_count:
            logger.info("Migrated %d data items to encrypted storage", report.migrated_count)
            self._log("data_migration_completed", {"migratedItems": report.migrated_count})
        return report

    # =========================================================================
    # BACKUP / RESTORE
    # =========================================================================

    def _snapshot(self, keys: list[str]) -> dict:
        data = {}
        for key in keys:
            value = self.get(key, _MISSING)
            if value is not _MISSING:
                data[key] = value
        return data

    def _seal(self, envelope: dict, password: str | None) -> str:
        try:
            return codec.encode(envelope, password) if password else codec.serialize(envelope)
        except (EncodingError, TypeError, ValueError) as exc:
            self._log("backup_creation_failed", {"error": str(exc)})
            raise BackupError("Failed to create backup") from exc

    def backup(self, password: str | None = None, *, protected_keys: Iterable[str] = ()) -> str:
        """
        Snapshot every non-reserved record into one backup artifact.

        With a password the whole backup is itself codec-encoded under it;
        otherwise it is returned as plain JSON text. `protected_keys` are
        left out as well.
        """
        protected = set(protected_keys)
        data = self._snapshot([
            key for key in self.list_keys(include_reserved=False) if key not in protected
        ])
        envelope = {
            "version": BACKUP_VERSION,
            "timestamp": to_utc_z(self._clock()),
            "data": data,
        }
        artifact = self._seal(envelope, password)
        self._log("backup_created", {"itemCount": len(data), "encrypted": bool(password)})
        return artifact

    def export(self, keys: list[str], password: str | None = None) -> str:
        """Backup-format export of selected keys."""
        envelope = {
            "version": BACKUP_VERSION,
            "timestamp": to_utc_z(self._clock()),
            "keys": list(keys),
            "data": self._snapshot([key for key in keys if key not in RESERVED_KEYS]),
        }
        return self._seal(envelope, password)

    def _open_backup(self, artifact: str, password: str | None) -> dict:
        if password:
            parsed = codec.decode(artifact, password)
            # Older backups encoded the JSON text rather than the object
            if isinstance(parsed, str):
                parsed = json.loads(parsed)
        else:
            if codec.is_encoded(artifact):
                raise BackupError("Backup is encrypted; a password is required")
            parsed = json.loads(artifact)
        if not isinstance(parsed, dict) or not isinstance(parsed.get("data"), dict):
            raise BackupError("Invalid backup format")
        return parsed

    def restore(self, artifact: str, password: str | None = None, overwrite: bool = False, *,
                protected_keys: Iterable[str] = ()) -> RestoreResult:
        """
        Write backup entries back through put().

        Existing keys are only replaced when overwrite is True. Reserved keys
        and `protected_keys` are skipped and reported in errors. Per-key
        failures are collected; an unreadable backup raises BackupError.
        """
        protected = set(protected_keys)
        try:
            parsed = self._open_backup(artifact, password)
        except (BackupError, IntegrityError, ValueError, TypeError) as exc:
            logger.warning("Backup restoration failed: %s", exc)
            self._log("backup_restoration_failed", {"error": str(exc)})
            if isinstance(exc, BackupError):
                raise
            raise BackupError("Backup could not be read") from exc

        restored = 0
        errors: list[dict] = []
        for key, value in parsed["data"].items():
            if key in RESERVED_KEYS:
                errors.append({"key": key, "error": "Reserved key cannot be restored"})
                continue
            if key in protected:
                errors.append({"key": key, "error": "Protected key cannot be restored"})
                continue
            if not overwrite and self.has(key):
                continue
            if self.put(key, value):
                restored += 1
            else:
                errors.append({"key": key, "error": "Failed to store value"})

        self._log("backup_restored", {
            "itemCount": restored,
            "errors": len(errors),
            "backupTimestamp": parsed.get("timestamp"),
        })
        return RestoreResult(
            restored_count=restored,
            errors=errors,
            backup_info={"version": parsed.get("version"), "timestamp": parsed.get("timestamp")},
        )

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def stats(self) -> dict:
        """Artifact sizes per key, grouped by the key's first '_' segment."""
        keys = self.list_keys()
        total_size = 0
        largest = {"key": None, "size": 0}
        categories: dict[str, dict] = {}

        for key in keys:
            artifact = self._backend.get(self.storage_key(key))
            size = len(artifact) if artifact else 0
            total_size += size
            if size > largest["size"]:
                largest = {"key": key, "size": size}
            category = key.split("_")[0] or "other"
            bucket = categories.setdefault(category, {"count": 0, "size": 0})
            bucket["count"] += 1
            bucket["size"] += size

        return {
            "item_count": len(keys),
            "total_size": total_size,
            "average_size": int(total_size / len(keys) + 0.5) if keys else 0,
            "largest_item": largest,
            "categories": categories,
        }

    def usage_by_category(self) -> dict:
        stats = self.stats()
        total = stats["total_size"]
        return {
            category: {
                "count": bucket["count"],
                "size": bucket["size"],
                "percentage": int(bucket["size"] * 100 / total + 0.5) if total else 0,
            }
            for category, bucket in stats["categories"].items()
        }

    def verify_integrity(self) -> dict:
        """Decode every record and tally the ones that no longer read back."""
        keys = self.list_keys()
        results = {"total": len(keys), "valid": 0, "corrupted": 0, "errors": []}

        for key in keys:
            try:
                value = self._load(key)
            except (IntegrityError, SQLAlchemyError) as exc:
                self._access_failed(key, exc, audit=True)
                results["corrupted"] += 1
                results["errors"].append({"key": key, "error": str(exc)})
                continue
            if value is _MISSING:
                # Removed between listing and reading
                results["total"] -= 1
            else:
                results["valid"] += 1

        self._log("storage_integrity_check", {
            "total": results["total"],
            "valid": results["valid"],
            "corrupted": results["corrupted"],
        })
        return results
