# backend/tareeqa/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tareeqa.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tareeqa.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "database" keeps records in the storage_entries table, "memory" in a process-local dict
    STORAGE_BACKEND = os.environ.get("TAREEQA_STORAGE_BACKEND", "database")

    # Installation secret; generated and persisted on first start when unset
    INSTALLATION_KEY = os.environ.get("TAREEQA_INSTALLATION_KEY")

    SESSION_IDLE_TIMEOUT_MINUTES = int(os.environ.get("TAREEQA_IDLE_TIMEOUT_MINUTES", "15"))
    MAX_FAILED_ATTEMPTS = int(os.environ.get("TAREEQA_MAX_FAILED_ATTEMPTS", "5"))
    LOCKOUT_DURATION_MINUTES = int(os.environ.get("TAREEQA_LOCKOUT_MINUTES", "30"))
    AUDIT_LOG_CAPACITY = int(os.environ.get("TAREEQA_AUDIT_CAPACITY", "1000"))
    BCRYPT_ROUNDS = int(os.environ.get("TAREEQA_BCRYPT_ROUNDS", "12"))

    MIGRATE_LEGACY_ON_STARTUP = _env_bool("TAREEQA_MIGRATE_LEGACY", True)
    CREATE_DEFAULT_USERS = _env_bool("TAREEQA_CREATE_DEFAULT_USERS", True)
    RESTORE_SESSION_ON_STARTUP = _env_bool("TAREEQA_RESTORE_SESSION", True)

    LOG_LEVEL = os.environ.get("TAREEQA_LOG_LEVEL", "INFO")
