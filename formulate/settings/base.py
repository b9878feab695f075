"""Base settings shared by every environment.

Environment-specific modules (development.py, test.py) set their defaults in
os.environ and then star-import this module. Required values are read with
require_env() so a missing secret stops the process at startup instead of
silently falling back to a known value.
"""
import os
from pathlib import Path

import dj_database_url
from django.core.exceptions import ImproperlyConfigured

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def require_env(name):
    """Return an environment variable or refuse to start."""
    value = os.environ.get(name, "")
    if not value:
        raise ImproperlyConfigured(
            f"{name} is not set. Add it to your environment or .env file."
        )
    return value


SECRET_KEY = require_env("SECRET_KEY")
DEBUG = False
ALLOWED_HOSTS = [h.strip() for h in os.environ.get("ALLOWED_HOSTS", "").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "apps.audit",
    "apps.portal",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "formulate.urls"
WSGI_APPLICATION = "formulate.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {"context_processors": ["django.template.context_processors.request"]},
    },
]

# Two databases: the application store and the append-only audit store.
DATABASES = {
    "default": dj_database_url.parse(require_env("DATABASE_URL"), conn_max_age=600),
    "audit": dj_database_url.parse(require_env("AUDIT_DATABASE_URL"), conn_max_age=600),
}
DATABASE_ROUTERS = ["formulate.db_router.AuditRouter"]
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# django-ratelimit needs a shared cache in production; LocMem is per-process.
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    },
}
RATELIMIT_ENABLE = True
RATELIMIT_USE_CACHE = "default"

LANGUAGE_CODE = "en-gb"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
CSRF_COOKIE_SECURE = True
SECURE_SSL_REDIRECT = os.environ.get("SECURE_SSL_REDIRECT", "true").lower() == "true"

# ---------------------------------------------------------------------------
# Client portal access control
# ---------------------------------------------------------------------------

# Keys the IP hasher and the session token signature. No fallback value.
PORTAL_HMAC_KEY = require_env("PORTAL_HMAC_KEY")

# PBKDF2-SHA256 work factor for 4-digit PINs (OWASP 2023 guidance).
PORTAL_PIN_HASH_ITERATIONS = int(os.environ.get("PORTAL_PIN_HASH_ITERATIONS", "600000"))

PORTAL_SESSION_COOKIE_NAME = "portal_pin_session"
PORTAL_SESSION_COOKIE_PATH = "/client/"
PORTAL_SESSION_COOKIE_SECURE = True


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.environ.get("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
    },
}
