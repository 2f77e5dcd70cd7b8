# Overview: Bounded, append-only security event ledger persisted through secure storage.

"""
Audit Log

WHY: Every security-relevant action (logins, lockouts, storage failures,
backups) leaves a trace the owner can review from the security screen.

BOUNDED: The ledger keeps the most recent `capacity` events (default 1000).
Oldest events are evicted first.

BEST-EFFORT: append() never raises. A failed write is logged at WARNING and
the calling operation carries on; auditing must not take the till down.

NO RECURSION: The ledger is written with put(..., audit=False) so storing
an audit event never produces another audit event.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..identifiers import generate_random_string
from ..time_utils import to_utc_z, utcnow
from .secure_storage_service import AUDIT_LOG_KEY


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000
ENVIRONMENT_TAG = "local"
ANONYMOUS = "anonymous"

# Returns (user_id, username) of the acting user, or None
ActorProvider = Callable[[], Optional[tuple]]


@dataclass(frozen=True)
class AuditEvent:
    id: str
    timestamp: str
    event: str
    user_id: str | None = None
    username: str = ANONYMOUS
    details: dict = field(default_factory=dict)
    environment: str = ENVIRONMENT_TAG

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "event": self.event,
            "userId": self.user_id,
            "username": self.username,
            "details": self.details,
            "environment": self.environment,
        }

    @classmethod
    def from_record(cls, record: dict) -> "AuditEvent":
        # Legacy entries carry ipAddress/userAgent instead of an environment tag
        return cls(
            id=str(record.get("id") or ""),
            timestamp=str(record.get("timestamp") or ""),
            event=str(record.get("event") or ""),
            user_id=record.get("userId"),
            username=record.get("username") or ANONYMOUS,
            details=record.get("details") or {},
            environment=record.get("environment") or ENVIRONMENT_TAG,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "event": self.event,
            "user_id": self.user_id,
            "username": self.username,
            "details": self.details,
            "environment": self.environment,
        }


class AuditLog:
    def __init__(self, records, *, capacity: int = DEFAULT_CAPACITY, clock=utcnow,
                 actor_provider: ActorProvider | None = None):
        if capacity < 1:
            raise ValueError("Audit log capacity must be positive")
        self._records = records
        self._capacity = capacity
        self._clock = clock
        self._actor_provider = actor_provider
        self._lock = threading.RLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def bind_actor(self, provider: ActorProvider | None) -> None:
        self._actor_provider = provider

    def _current_actor(self) -> tuple:
        if self._actor_provider is None:
            return None, ANONYMOUS
        actor = self._actor_provider()
        if not actor:
            return None, ANONYMOUS
        return actor

    def _load_records(self) -> list:
        records = self._records.get(AUDIT_LOG_KEY, [], audit=False)
        return records if isinstance(records, list) else []

    def append(self, event: str, details: dict | None = None, *, actor: tuple | None = None) -> AuditEvent | None:
        """
        Record an event. Returns the stored event, or None if it couldn't be persisted.

        `actor` overrides the bound actor provider, e.g. for a failed login
        where nobody is logged in yet but the attempted username matters.
        """
        try:
            with self._lock:
                user_id, username = actor or self._current_actor()
                entry = AuditEvent(
                    id=generate_random_string(8),
                    timestamp=to_utc_z(self._clock()),
                    event=event,
                    user_id=user_id,
                    username=username or ANONYMOUS,
                    details=dict(details or {}),
                )
                records = self._load_records()
                records.append(entry.to_record())
                overflow = len(records) - self._capacity
                if overflow > 0:
                    del records[:overflow]
                if not self._records.put(AUDIT_LOG_KEY, records, audit=False):
                    logger.warning("Audit event %s could not be persisted", event)
                    return None
        except Exception:
            logger.warning("Failed to record audit event %s", event, exc_info=True)
            return None

        logger.debug("Security event logged: %s", event)
        return entry

    def query(self, event: str | None = None, user_id: str | None = None,
              limit: int | None = None) -> list[AuditEvent]:
        """Snapshot of the ledger, oldest first. `limit` keeps the most recent N matches."""
        with self._lock:
            records = self._load_records()

        events = []
        for record in records:
            if not isinstance(record, dict):
                continue
            entry = AuditEvent.from_record(record)
            if event is not None and entry.event != event:
                continue
            if user_id is not None and entry.user_id != user_id:
                continue
            events.append(entry)

        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def count(self) -> int:
        return len(self.query())
