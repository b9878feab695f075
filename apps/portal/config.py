"""
Key material for client portal access control.

A single PortalSecurityConfig is built from settings.PORTAL_HMAC_KEY the first
time it is needed and handed to each component's constructor (IP hasher,
session token manager). Tests build their own configs with distinct keys
instead of patching module globals.

    # Normal operation:
    PORTAL_HMAC_KEY="k9W1...long random string..."

There is deliberately no default key. A missing key raises
ImproperlyConfigured, and the system check below reports it at boot.
"""
import logging
import secrets
from dataclasses import dataclass

from django.conf import settings
from django.core.checks import Error, register
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

MIN_KEY_BYTES = 16

_config = None


@dataclass(frozen=True)
class PortalSecurityConfig:
    """Secret used to key IP hashes and sign portal session tokens."""

    hmac_key: bytes

    def __post_init__(self):
        if not isinstance(self.hmac_key, bytes):
            raise ImproperlyConfigured("PortalSecurityConfig.hmac_key must be bytes.")
        if len(self.hmac_key) < MIN_KEY_BYTES:
            raise ImproperlyConfigured(
                f"PORTAL_HMAC_KEY must be at least {MIN_KEY_BYTES} bytes long."
            )

    def __repr__(self):
        # Never print key material in tracebacks or logs
        return "PortalSecurityConfig(hmac_key=<redacted>)"

    @classmethod
    def from_settings(cls):
        key = getattr(settings, "PORTAL_HMAC_KEY", "")
        if not key:
            raise ImproperlyConfigured(
                "PORTAL_HMAC_KEY is not set. "
                "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )
        if isinstance(key, str):
            key = key.encode("utf-8")
        return cls(hmac_key=key)


def get_security_config():
    """Return the process-wide config, building it from settings on first use."""
    global _config
    if _config is None:
        _config = PortalSecurityConfig.from_settings()
    return _config


def generate_key():
    """Generate a new random key suitable for PORTAL_HMAC_KEY."""
    return secrets.token_urlsafe(48)


@register()
def check_portal_hmac_key(app_configs, **kwargs):
    """Django system check: refuse to run without a usable PORTAL_HMAC_KEY.

    Runs on every `./manage.py check` (and on startup), so a missing key is
    discovered at boot rather than on the first PIN request.
    """
    errors = []
    try:
        PortalSecurityConfig.from_settings()
    except ImproperlyConfigured as exc:
        errors.append(
            Error(
                f"Portal security configuration is invalid: {exc}",
                hint="Generate a key with: python -c \"import secrets; print(secrets.token_urlsafe(48))\"",
                id="portal.E001",
            )
        )
    return errors
