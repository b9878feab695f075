"""Test settings: in-memory SQLite for both databases and cheap PIN hashing."""
import os

# Provide test defaults BEFORE importing base (which calls require_env).
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")
os.environ.setdefault("AUDIT_DATABASE_URL", "sqlite://:memory:")
# Test-only key, never used outside the test run
os.environ.setdefault("PORTAL_HMAC_KEY", "test-portal-hmac-key-not-for-production")

from .base import *  # noqa: F401, F403, E402

DEBUG = True
ALLOWED_HOSTS = ["*"]
SECURE_SSL_REDIRECT = False
PORTAL_SESSION_COOKIE_SECURE = False

for _db in DATABASES.values():  # noqa: F405
    _db["CONN_MAX_AGE"] = 0

# Production uses 600k iterations
PORTAL_PIN_HASH_ITERATIONS = 1000

# Per-IP request throttle off by default; RequestThrottleTests turn it back on
RATELIMIT_ENABLE = False
