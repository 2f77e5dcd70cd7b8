# Overview: Persistence medium adapters (string key/value stores) used by secure storage.

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Optional

from flask import has_app_context
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import StorageEntry


logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, Optional[str], Optional[str]], None]


class StorageBackend:
    """
    Opaque string store: get / set / remove / list_keys.

    Change notification: the host calls notify_change(key, old, new) when
    another process or window wrote a key. Listeners are called in
    registration order; a failing listener is logged and skipped.
    """

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def list_keys(self) -> list[str]:
        raise NotImplementedError

    def add_change_listener(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_change(self, key: str, old_value: str | None, new_value: str | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, old_value, new_value)
            except Exception:
                logger.warning("Storage change listener failed for key %s", key, exc_info=True)


class MemoryStorage(StorageBackend):
    """Process-local store; used for tests and TAREEQA_STORAGE_BACKEND=memory."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__()
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def list_keys(self) -> list[str]:
        return list(self._data.keys())


class DatabaseStorage(StorageBackend):
    """
    Store backed by the storage_entries table.

    Calls made outside a request (idle-timer thread, CLI) push an app
    context of the app the backend was created for.
    """

    def __init__(self, app=None) -> None:
        super().__init__()
        self._app = app

    @contextmanager
    def _context(self):
        if has_app_context() or self._app is None:
            yield
        else:
            with self._app.app_context():
                yield

    def get(self, key: str) -> str | None:
        with self._context():
            entry = db.session.get(StorageEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        with self._context():
            try:
                entry = db.session.get(StorageEntry, key)
                if entry is None:
                    db.session.add(StorageEntry(key=key, value=value))
                else:
                    entry.value = value
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                raise

    def remove(self, key: str) -> None:
        with self._context():
            try:
                db.session.query(StorageEntry).filter_by(key=key).delete()
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                raise

    def list_keys(self) -> list[str]:
        with self._context():
            rows = db.session.query(StorageEntry.key).order_by(StorageEntry.key).all()
            return [row[0] for row in rows]
