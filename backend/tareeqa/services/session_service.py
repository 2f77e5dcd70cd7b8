# Overview: Single-session lifecycle: login, idle auto-lock, unlock, logout and restore.

"""
Session Manager

WHY: The till is shared. One operator is logged in at a time, the screen
locks itself after inactivity, and only the same operator can unlock it.

STATE MACHINE:
    LOGGED_OUT --login--> AUTHENTICATING --ok--> ACTIVE
    ACTIVE --lock / idle timeout--> LOCKED --unlock(secret)--> ACTIVE
    any --logout--> LOGGED_OUT

IDLE TIMER: one cancellable timer per session. Every touch() or state
transition cancels and reschedules it. A generation counter makes callbacks
from superseded timers no-ops, so at most one timer can ever act.
check_idle() applies the same timeout from the clock, so state is correct
even before the timer thread gets to run.

SNAPSHOT: {userId, username, role, loginTime, lastActivity, locked} under
the reserved key "session", so a restarted process can resume the session.
Written on every transition and at most every 30 seconds on touch().
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable

from ..errors import AuthenticationError, NoActiveSessionError, SecurityCoreError, SessionError
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from .credential_service import Identity
from .secure_storage_service import SESSION_KEY


logger = logging.getLogger(__name__)


DEFAULT_IDLE_TIMEOUT_MINUTES = 15
SNAPSHOT_INTERVAL = timedelta(seconds=30)


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    LOCKED = "locked"


@dataclass
class Session:
    user: Identity
    login_time: datetime
    last_activity: datetime
    locked: bool = False

    def duration(self, now: datetime) -> timedelta:
        return now - self.login_time

    def to_snapshot(self) -> dict:
        return {
            "userId": self.user.id,
            "username": self.user.username,
            "role": self.user.role,
            "loginTime": to_utc_z(self.login_time),
            "lastActivity": to_utc_z(self.last_activity),
            "locked": self.locked,
        }

    def to_dict(self, now: datetime | None = None) -> dict:
        data = {
            "user": self.user.to_dict(),
            "login_time": to_utc_z(self.login_time),
            "last_activity": to_utc_z(self.last_activity),
            "locked": self.locked,
        }
        if now is not None:
            data["duration_seconds"] = int(self.duration(now).total_seconds())
        return data


class IdleTimer:
    """One-shot timer on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self._timer = threading.Timer(interval, callback)
        self._timer.daemon = True

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        self._timer.cancel()


class SessionManager:
    def __init__(
        self,
        credentials,
        permissions,
        audit,
        records,
        *,
        idle_timeout_minutes: float = DEFAULT_IDLE_TIMEOUT_MINUTES,
        clock=utcnow,
        timer_factory: Callable[[float, Callable[[], None]], IdleTimer] = IdleTimer,
    ):
        self._credentials = credentials
        self._permissions = permissions
        self._audit = audit
        self._records = records
        self.idle_timeout = timedelta(minutes=idle_timeout_minutes)
        self._clock = clock
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._state = SessionState.LOGGED_OUT
        self._session: Session | None = None
        self._timer = None
        self._timer_generation = 0
        self._last_persisted: datetime | None = None

    # =========================================================================
    # READ-ONLY VIEWS
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def is_locked(self) -> bool:
        return self._state == SessionState.LOCKED

    def current_actor(self) -> tuple | None:
        """(user_id, username) for audit events. Lock-free: called from inside the audit log."""
        session = self._session
        if session is None:
            return None
        return session.user.id, session.user.username

    def session_info(self) -> dict:
        with self._lock:
            state = self.check_idle()
            now = self._clock()
            info = {
                "state": state.value,
                "session": self._session.to_dict(now) if self._session else None,
                "idle_timeout_seconds": int(self.idle_timeout.total_seconds()),
                "idle_seconds_remaining": None,
            }
            if state == SessionState.ACTIVE:
                remaining = self.idle_timeout - (now - self._session.last_activity)
                info["idle_seconds_remaining"] = max(0, int(remaining.total_seconds()))
            return info

    # =========================================================================
    # TIMER
    # =========================================================================

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _start_timer(self, interval: timedelta | None = None) -> None:
        self._cancel_timer()
        self._timer_generation += 1
        generation = self._timer_generation
        seconds = max(0.0, (interval if interval is not None else self.idle_timeout).total_seconds())
        self._timer = self._timer_factory(seconds, lambda: self._on_idle_timeout(generation))
        self._timer.start()

    def _on_idle_timeout(self, generation: int) -> None:
        with self._lock:
            if generation != self._timer_generation or self._state != SessionState.ACTIVE:
                return
            self._timer = None
            self._lock_session("idle_timeout")

    def check_idle(self) -> SessionState:
        """Apply the idle timeout from the clock and return the resulting state."""
        with self._lock:
            if self._state == SessionState.ACTIVE and self._clock() - self._session.last_activity > self.idle_timeout:
                self._lock_session("idle_timeout")
            return self._state

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _persist(self) -> None:
        if self._session is None:
            return
        if self._records.put(SESSION_KEY, self._session.to_snapshot(), audit=False):
            self._last_persisted = self._clock()

    def _discard_snapshot(self) -> None:
        self._records.remove(SESSION_KEY, audit=False)
        self._last_persisted = None

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def login(self, username: str, secret: str) -> Session:
        """
        Authenticate and open the session.

        An existing session is logged out first. Authentication errors are
        audited as login_failed and re-raised unchanged.
        """
        with self._lock:
            if self._session is not None:
                self.logout()

            self._state = SessionState.AUTHENTICATING
            try:
                identity = self._credentials.authenticate(username, secret)
            except AuthenticationError as exc:
                self._state = SessionState.LOGGED_OUT
                logger.info("Login failed for %s: %s", username, exc.code)
                self._audit.append("login_failed", {"username": username, "reason": exc.code})
                raise
            except SecurityCoreError:
                self._state = SessionState.LOGGED_OUT
                raise

            now = self._clock()
            self._session = Session(user=identity, login_time=now, last_activity=now)
            self._state = SessionState.ACTIVE
            self._start_timer()
            self._persist()

        logger.info("User authenticated: %s", username)
        self._audit.append("authentication_succeeded", {"username": identity.username, "role": identity.role})
        return self._session

    def touch(self) -> bool:
        """Record user activity. Returns False (no-op) unless the session is active."""
        with self._lock:
            if self.check_idle() != SessionState.ACTIVE:
                return False
            now = self._clock()
            self._session.last_activity = now
            self._start_timer()
            if self._last_persisted is None or now - self._last_persisted >= SNAPSHOT_INTERVAL:
                self._persist()
            return True

    def _lock_session(self, reason: str) -> None:
        self._cancel_timer()
        self._session.locked = True
        self._state = SessionState.LOCKED
        self._persist()
        logger.info("Session locked (%s): %s", reason, self._session.user.username)
        self._audit.append("session_locked", {"reason": reason})

    def lock(self) -> Session:
        with self._lock:
            if self._session is None:
                raise NoActiveSessionError()
            if self.check_idle() == SessionState.ACTIVE:
                self._lock_session("manual")
            return self._session

    def unlock(self, secret: str) -> bool:
        """
        Re-verify the session user's secret and reopen a locked session.

        Failures leave the session locked, are audited as unlock_failed and
        don't count towards the account lockout.
        """
        with self._lock:
            if self._session is None:
                raise NoActiveSessionError()
            if self.check_idle() == SessionState.ACTIVE:
                return True

            user = self._credentials.find_by_id(self._session.user.id)
            if user is None or not user.is_active:
                reason = "user_unavailable"
            elif not self._credentials.verify_secret(user, secret):
                reason = "invalid_credentials"
            else:
                reason = None

            if reason is not None:
                logger.info("Unlock failed for %s: %s", self._session.user.username, reason)
                self._audit.append("unlock_failed", {"reason": reason})
                return False

            self._session.locked = False
            self._session.last_activity = self._clock()
            self._state = SessionState.ACTIVE
            self._start_timer()
            self._persist()

        self._audit.append("session_unlocked", {})
        return True

    def logout(self) -> None:
        with self._lock:
            if self._session is None:
                self._state = SessionState.LOGGED_OUT
                return
            self._cancel_timer()
            self._timer_generation += 1
            duration = self._session.duration(self._clock())
            username = self._session.user.username
            self._audit.append("logout", {"sessionDuration": int(duration.total_seconds())})
            self._discard_snapshot()
            self._session = None
            self._state = SessionState.LOGGED_OUT
        logger.info("User logged out: %s", username)

    def restore(self, snapshot: dict | None = None) -> Session | None:
        """
        Resume a session from a persisted snapshot (the stored one by default).

        Fails, leaving the state LOGGED_OUT and the snapshot discarded, if the
        idle time already exceeds the timeout or the user is gone or inactive.
        A snapshot taken while locked restores as locked.
        """
        with self._lock:
            if self._session is not None:
                return self._session
            if snapshot is None:
                snapshot = self._records.get(SESSION_KEY)
            if not isinstance(snapshot, dict):
                return None

            reason = None
            user = None
            try:
                login_time = parse_iso_datetime(snapshot.get("loginTime"))
                last_activity = parse_iso_datetime(snapshot.get("lastActivity"))
            except (TypeError, ValueError):
                login_time = last_activity = None

            now = self._clock()
            if last_activity is None:
                reason = "invalid_snapshot"
            elif now - last_activity > self.idle_timeout:
                reason = "expired"
            else:
                user = self._credentials.find_by_id(snapshot.get("userId"))
                if user is None or not user.is_active:
                    reason = "user_unavailable"

            if reason is not None:
                logger.info("Session restore failed: %s", reason)
                self._discard_snapshot()
                self._state = SessionState.LOGGED_OUT
                self._audit.append("session_restore_failed", {"reason": reason})
                return None

            locked = bool(snapshot.get("locked"))
            self._session = Session(
                user=user.identity(),
                login_time=login_time or last_activity,
                last_activity=last_activity,
                locked=locked,
            )
            if locked:
                self._state = SessionState.LOCKED
            else:
                self._state = SessionState.ACTIVE
                self._start_timer(self.idle_timeout - (now - last_activity))
            self._persist()

        logger.info("Session restored for: %s", user.username)
        self._audit.append("session_restored", {"locked": locked})
        return self._session

    def change_password(self, current: str, new: str) -> None:
        """Change the logged-in user's own secret."""
        with self._lock:
            state = self.check_idle()
            if self._session is None:
                raise NoActiveSessionError()
            if state != SessionState.ACTIVE:
                raise SessionError("Session is locked", code="session_locked")
            self._credentials.change_password(self._session.user.id, current, new)
            self.touch()

    def shutdown(self) -> None:
        """Stop the idle timer without ending the session (process exit)."""
        with self._lock:
            self._cancel_timer()
            self._timer_generation += 1

    # =========================================================================
    # PERMISSION QUERIES
    # =========================================================================

    def _evaluate(self, check: Callable[[Session | None], bool]) -> bool:
        with self._lock:
            self.check_idle()
            allowed = check(self._session)
            if self._state == SessionState.ACTIVE:
                self.touch()
            return allowed

    def has_permission(self, permission_key: str) -> bool:
        return self._evaluate(lambda session: self._permissions.has_permission(session, permission_key))

    def has_any(self, keys: Iterable[str]) -> bool:
        keys = list(keys)
        return self._evaluate(lambda session: self._permissions.has_any(session, keys))

    def has_all(self, keys: Iterable[str]) -> bool:
        keys = list(keys)
        return self._evaluate(lambda session: self._permissions.has_all(session, keys))

    def can_perform_bulk_operation(self, operation: str) -> bool:
        return self._evaluate(lambda session: self._permissions.can_perform_bulk_operation(session, operation))

    def effective_permissions(self) -> list[str]:
        with self._lock:
            self.check_idle()
            return self._permissions.effective_permissions(self._session)
