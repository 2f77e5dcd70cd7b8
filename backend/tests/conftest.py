"""
Pytest fixtures for Tareeqa security core tests.

Provides a controllable clock and idle timer, an in-memory security core,
and a Flask app/test client over in-memory SQLite.
"""

from datetime import datetime, timedelta

import pytest

from tareeqa import create_app
from tareeqa.services.bootstrap_service import build_security_core, get_security_core
from tareeqa.services.storage_backend import MemoryStorage


INSTALLATION_KEY = "test-installation-key-0123456789"

ADMIN = ("admin", "admin123")
CASHIER = ("cashier", "cashier123")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 15, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class FakeTimer:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.callback()


class FakeTimerFactory:
    """Records every timer the session manager schedules."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, callback):
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def latest(self):
        return self.timers[-1] if self.timers else None

    @property
    def pending(self):
        return [t for t in self.timers if t.started and not t.cancelled]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def backend():
    return MemoryStorage()


@pytest.fixture
def core(backend, clock, timers):
    """Security core over MemoryStorage with default users seeded."""
    core = build_security_core(
        backend,
        installation_key=INSTALLATION_KEY,
        bcrypt_rounds=4,
        clock=clock,
        timer_factory=timers,
        restore_session=False,
    )
    yield core
    core.shutdown()


@pytest.fixture
def app(clock, timers):
    """Create application for testing (fresh in-memory database per test)."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'STORAGE_BACKEND': 'database',
        'INSTALLATION_KEY': INSTALLATION_KEY,
        'BCRYPT_ROUNDS': 4,
        'CLOCK': clock,
        'TIMER_FACTORY': timers,
    })
    yield app
    with app.app_context():
        get_security_core().shutdown()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def login(client, username: str, password: str):
    """Helper to open the session through the API."""
    return client.post('/api/auth/login', json={
        'username': username,
        'password': password,
    })


@pytest.fixture
def admin_client(client):
    resp = login(client, *ADMIN)
    assert resp.status_code == 200
    return client


@pytest.fixture
def cashier_client(client):
    resp = login(client, *CASHIER)
    assert resp.status_code == 200
    return client
