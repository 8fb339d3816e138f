import os
import secrets

from dotenv import load_dotenv

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

load_dotenv(os.path.join(BASE_DIR, ".env"))


def env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name, default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", secrets.token_hex(32))

    DB_PATH = os.path.join(BASE_DIR, "orders.db")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", f"sqlite:///{DB_PATH}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seconds a bearer token stays valid unless revoked first.
    TOKEN_MAX_AGE = env_int("TOKEN_MAX_AGE", 3600)

    ENFORCE_RESTAURANT_OWNERSHIP = env_bool("ENFORCE_RESTAURANT_OWNERSHIP", True)

    # allow | reject | replace
    FEEDBACK_DUPLICATE_POLICY = os.environ.get("FEEDBACK_DUPLICATE_POLICY", "allow")

    AUDIT_ASYNC = env_bool("AUDIT_ASYNC", False)
    AUDIT_WORKERS = env_int("AUDIT_WORKERS", 2)

    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@local")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "Admin@12345")

    # Admin login attempts per client address (Flask-Limiter syntax).
    ADMIN_LOGIN_RATE_LIMIT = os.environ.get("ADMIN_LOGIN_RATE_LIMIT", "5 per 15 minutes")
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
