"""Development settings — local use only."""
import os

from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv

# Load .env FIRST so its values take priority over the dev defaults below.
# (python-dotenv won't overwrite vars already in the environment, so .env
# values only apply when the shell hasn't already set them.)
load_dotenv()

# Provide safe dev-only defaults AFTER loading .env.
# base.py requires these via require_env(); these defaults only apply
# when the developer hasn't set them in .env or the shell.
os.environ.setdefault("SECRET_KEY", "insecure-dev-key-do-not-use-in-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///dev.sqlite3")
os.environ.setdefault("AUDIT_DATABASE_URL", "sqlite:///dev-audit.sqlite3")

# PORTAL_HMAC_KEY must be set explicitly. There is no hardcoded fallback.
# A known-public key would let anyone forge portal session cookies and
# reverse hashed IPs by brute force over the IPv4 space.
# Generate a key with: python -c "import secrets; print(secrets.token_urlsafe(48))"
if not os.environ.get("PORTAL_HMAC_KEY"):
    raise ImproperlyConfigured(
        "PORTAL_HMAC_KEY is not set. Add it to your .env file.\n"
        "Generate one with: python -c \"import secrets; "
        "print(secrets.token_urlsafe(48))\""
    )

from .base import *  # noqa: F401, F403, E402

DEBUG = True
ALLOWED_HOSTS = ["*"]

# Relax security for local dev
CSRF_COOKIE_SECURE = False
SECURE_SSL_REDIRECT = False
PORTAL_SESSION_COOKIE_SECURE = False
