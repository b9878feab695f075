"""One-way hashing primitives for the client portal.

IPHasher turns a client IP into a keyed, non-reversible identifier so raw IPs
are never persisted. PinHasher derives a deliberately expensive PBKDF2 hash
for a 4-digit PIN: the PIN space has only 10,000 values, so a fast hash would
fall to exhaustive search the moment it leaked.
"""
import binascii
import hashlib
import hmac
import secrets

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from django.conf import settings

UNKNOWN_IP = "unknown"

# 600k iterations follows OWASP 2023 guidance for PBKDF2-SHA256.
DEFAULT_PIN_ITERATIONS = 600_000
PIN_KEY_LENGTH = 32
PIN_SALT_BYTES = 16


class IPHasher:
    """Keyed HMAC-SHA256 of an IP address, hex encoded."""

    def __init__(self, config):
        self._key = config.hmac_key

    def hash(self, ip):
        return hmac.new(self._key, ip.encode("utf-8"), hashlib.sha256).hexdigest()


class PinHasher:
    """PBKDF2-HMAC-SHA256 with a per-relationship random salt.

    Callers validate the PIN format (exactly four digits) before calling in.
    """

    def __init__(self, iterations=None):
        if iterations is None:
            iterations = getattr(settings, "PORTAL_PIN_HASH_ITERATIONS", DEFAULT_PIN_ITERATIONS)
        if iterations < 1:
            raise ValueError("PIN hash iterations must be positive.")
        self.iterations = iterations

    @staticmethod
    def generate_salt():
        """Return a fresh 16-byte salt as 32 hex characters."""
        return secrets.token_hex(PIN_SALT_BYTES)

    def _derive(self, pin, salt):
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=PIN_KEY_LENGTH,
            salt=salt.encode("utf-8"),
            iterations=self.iterations,
        )
        return kdf.derive(pin.encode("utf-8"))

    def hash(self, pin, salt):
        return self._derive(pin, salt).hex()

    def verify(self, pin, salt, expected_hash):
        """Recompute and compare in constant time. Malformed stored hashes fail."""
        computed = self._derive(pin, salt)
        try:
            expected = binascii.unhexlify(expected_hash)
        except (binascii.Error, ValueError, TypeError):
            return False
        if len(computed) != len(expected):
            return False
        return hmac.compare_digest(computed, expected)
