"""Signed, stateless tokens proving a portal PIN was verified.

Wire format::

    base64url(json({"rid": <relationship id>, "vat": <verified-at, epoch ms>}))
    + "." + base64url(HMAC-SHA256(key, <first segment>))

Both segments are unpadded base64url. Nothing is stored server-side, so a
token cannot be revoked; it stops verifying 24 hours after it was issued.
Removing a PIN clears the client's cookie instead.
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
from datetime import timedelta

from django.utils import timezone

logger = logging.getLogger(__name__)

SESSION_MAX_AGE = timedelta(hours=24)
SESSION_MAX_AGE_SECONDS = int(SESSION_MAX_AGE.total_seconds())


def _b64encode(raw):
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text):
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _to_millis(moment):
    return int(moment.timestamp() * 1000)


class SessionTokenManager:
    """Issue and verify portal PIN session tokens."""

    def __init__(self, config, *, max_age=SESSION_MAX_AGE, clock=timezone.now):
        self._key = config.hmac_key
        self.max_age = max_age
        self._clock = clock

    def _sign(self, encoded_payload):
        digest = hmac.new(self._key, encoded_payload.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def issue(self, relationship_id):
        payload = {"rid": str(relationship_id), "vat": _to_millis(self._clock())}
        encoded = _b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        return f"{encoded}.{self._sign(encoded)}"

    def verify(self, token, relationship_id):
        """Return True only for an intact, unexpired token for this relationship.

        Fails closed: any structural, signature, identity or age problem
        yields False rather than an exception.
        """
        if not token or not isinstance(token, str):
            return False
        parts = token.split(".")
        if len(parts) != 2:
            return False
        encoded, signature = parts
        if not encoded or not signature:
            return False

        try:
            expected = self._sign(encoded)
        except UnicodeEncodeError:
            return False
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            return False

        try:
            payload = json.loads(_b64decode(encoded).decode("utf-8"))
            token_rid = payload["rid"]
            verified_at = int(payload["vat"])
        except (binascii.Error, ValueError, UnicodeError, KeyError, TypeError):
            logger.warning("Portal session token with valid signature but unreadable payload")
            return False

        if token_rid != str(relationship_id):
            return False

        age_ms = _to_millis(self._clock()) - verified_at
        if age_ms < 0 or age_ms > self.max_age.total_seconds() * 1000:
            return False
        return True
