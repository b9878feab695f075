"""Portal access service: consent, the PIN lifecycle and the page gate.

Per relationship the portal moves through these states:

    consent_required -> open (consented, no PIN)
                     -> pin_required (PIN set, no valid session token)
                     -> verified (PIN set, valid session token)

Every operation resolves the relationship by portal token first. An unknown
and a soft-deleted token are indistinguishable: both raise PortalNotFound
before any other state is looked at. Ordering rules ("consent before PIN",
"no PIN over an existing PIN") are enforced by reading the row immediately
before each mutation and by guarding each UPDATE on the state it expects.
No locks are taken; the only transaction pairs consent with its event.

Store failures (django.db.DatabaseError) are logged here and re-raised as
PortalInternalError so no driver error text reaches a client.
"""
import logging
import re
from dataclasses import dataclass
from functools import wraps

from django.db import DatabaseError, transaction
from django.utils import timezone

from apps.portal.config import get_security_config
from apps.portal.exceptions import (
    ConsentRequired,
    IncorrectPin,
    InvalidPortalRequest,
    NoPinSet,
    PinAlreadySet,
    PortalInternalError,
    PortalNotFound,
    TooManyAttempts,
)
from apps.portal.hashing import UNKNOWN_IP, IPHasher, PinHasher
from apps.portal.models import RelationshipEvent, TherapeuticRelationship
from apps.portal.rate_limit import PinRateLimiter
from apps.portal.session_tokens import SessionTokenManager
from apps.portal.utils import token_prefix

logger = logging.getLogger(__name__)

# ASCII digits only; \d would also accept other scripts
PIN_PATTERN = re.compile(r"[0-9]{4}")

STATE_CONSENT_REQUIRED = "consent_required"
STATE_OPEN = "open"
STATE_PIN_REQUIRED = "pin_required"
STATE_VERIFIED = "verified"


@dataclass(frozen=True)
class ConsentResult:
    already_consented: bool


@dataclass(frozen=True)
class PortalAccess:
    relationship_id: object
    state: str
    pin_set: bool

    @property
    def can_view(self):
        return self.state in (STATE_OPEN, STATE_VERIFIED)


def _store_boundary(operation):
    """Convert store failures inside `operation` into PortalInternalError."""

    def decorator(method):
        @wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except DatabaseError as exc:
                logger.exception("Portal %s failed: relationship store error", operation)
                raise PortalInternalError() from exc
        return wrapper
    return decorator


def _audit_portal_event(action, relationship_id, ip_hash=None, metadata=None):
    """Record a portal security event in the audit log."""
    try:
        from apps.audit.models import AuditLog

        AuditLog.objects.using("audit").create(
            event_timestamp=timezone.now(),
            actor_display="[portal] client",
            ip_hash=ip_hash or "",
            action=action,
            resource_type="portal_relationship",
            resource_id=str(relationship_id),
            metadata=metadata or {},
        )
    except Exception as e:
        logger.error("Portal audit log failed (%s): %s", action, e)


class PortalAccessService:
    """Orchestrates consent, PIN set/verify/remove and the access gate.

    Components are built from one PortalSecurityConfig unless supplied, and
    share one clock so tests can move time for all of them together.
    """

    def __init__(
        self,
        config=None,
        *,
        clock=timezone.now,
        ip_hasher=None,
        pin_hasher=None,
        rate_limiter=None,
        token_manager=None,
    ):
        if config is None:
            config = get_security_config()
        self._clock = clock
        self.ip_hasher = ip_hasher or IPHasher(config)
        self.pin_hasher = pin_hasher or PinHasher()
        self.rate_limiter = rate_limiter or PinRateLimiter(clock=clock)
        self.token_manager = token_manager or SessionTokenManager(config, clock=clock)

    # ------------------------------------------------------------------
    # Lookups and validation
    # ------------------------------------------------------------------

    @staticmethod
    def _require_token(portal_token):
        if not portal_token or not isinstance(portal_token, str):
            raise InvalidPortalRequest()

    @staticmethod
    def _require_pin_format(pin):
        if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
            raise InvalidPortalRequest()

    def _get_relationship(self, portal_token):
        try:
            return TherapeuticRelationship.objects.active().get(
                client_portal_token=portal_token,
            )
        except TherapeuticRelationship.DoesNotExist:
            logger.info("Portal lookup missed for token %s", token_prefix(portal_token))
            raise PortalNotFound()

    def _active_row(self, relationship):
        return TherapeuticRelationship.objects.active().filter(pk=relationship.pk)

    def _check_pin(self, relationship, pin, ip):
        """Rate-limit, compare and record one PIN attempt. Returns the IP hash.

        Blocked callers never reach the PIN hasher and are not recorded.
        """
        if not relationship.has_pin:
            raise NoPinSet()

        ip_hash = self.ip_hasher.hash(ip or UNKNOWN_IP)
        limit = self.rate_limiter.check(relationship.pk, ip_hash)
        if not limit.allowed:
            _audit_portal_event("portal_pin_rate_limited", relationship.pk, ip_hash)
            raise TooManyAttempts(retry_after_seconds=limit.retry_after_seconds)

        is_valid = self.pin_hasher.verify(
            pin, relationship.portal_pin_salt, relationship.portal_pin_hash,
        )
        self.rate_limiter.record(relationship.pk, ip_hash, is_valid)

        if not is_valid:
            attempts_remaining = max(0, limit.remaining - 1)
            _audit_portal_event("portal_pin_failed", relationship.pk, ip_hash, {
                "attempts_remaining": attempts_remaining,
            })
            raise IncorrectPin(attempts_remaining=attempts_remaining)
        return ip_hash

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @_store_boundary("consent")
    def consent(self, portal_token, ip=UNKNOWN_IP):
        """Record portal consent once. Repeat calls are a successful no-op."""
        self._require_token(portal_token)
        relationship = self._get_relationship(portal_token)

        if relationship.has_consented:
            return ConsentResult(already_consented=True)

        # Never store the raw IP; store nothing when it is unknown
        ip_hash = self.ip_hasher.hash(ip) if ip and ip != UNKNOWN_IP else None
        now = self._clock()
        # Consent and its event are written together or not at all
        with transaction.atomic():
            updated = self._active_row(relationship).filter(
                portal_consented_at__isnull=True,
            ).update(
                portal_consented_at=now,
                portal_consent_ip_hash=ip_hash,
            )
            if not updated:
                # A concurrent request consented first
                return ConsentResult(already_consented=True)

            RelationshipEvent.objects.create(
                relationship_id=relationship.pk,
                event_type="consent_granted",
                metadata={"scope": RelationshipEvent.SCOPE_PORTAL},
                created_at=now,
            )
        _audit_portal_event("portal_consent", relationship.pk, ip_hash)
        logger.info("Portal consent recorded for relationship %s", relationship.pk)
        return ConsentResult(already_consented=False)

    @_store_boundary("set PIN")
    def set_pin(self, portal_token, pin):
        """Set the first PIN and return a verified session token.

        Setting a PIN counts as proving control of the device at that moment.
        """
        self._require_token(portal_token)
        self._require_pin_format(pin)
        relationship = self._get_relationship(portal_token)

        if not relationship.has_consented:
            raise ConsentRequired()
        if relationship.portal_pin_hash or relationship.portal_pin_salt:
            raise PinAlreadySet()

        salt = self.pin_hasher.generate_salt()
        pin_hash = self.pin_hasher.hash(pin, salt)
        updated = self._active_row(relationship).filter(
            portal_consented_at__isnull=False,
            portal_pin_hash__isnull=True,
            portal_pin_salt__isnull=True,
        ).update(
            portal_pin_hash=pin_hash,
            portal_pin_salt=salt,
            portal_pin_set_at=self._clock(),
        )
        if not updated:
            raise PinAlreadySet()

        _audit_portal_event("portal_pin_set", relationship.pk)
        logger.info("Portal PIN set for relationship %s", relationship.pk)
        return self.token_manager.issue(relationship.pk)

    @_store_boundary("verify PIN")
    def verify_pin(self, portal_token, pin, ip=UNKNOWN_IP):
        """Check a PIN and return a fresh session token on success."""
        self._require_token(portal_token)
        self._require_pin_format(pin)
        relationship = self._get_relationship(portal_token)

        ip_hash = self._check_pin(relationship, pin, ip)
        _audit_portal_event("portal_pin_verified", relationship.pk, ip_hash)
        return self.token_manager.issue(relationship.pk)

    @_store_boundary("remove PIN")
    def remove_pin(self, portal_token, current_pin, ip=UNKNOWN_IP):
        """Clear the PIN after checking the current one.

        Issued session tokens cannot be revoked; callers must clear the
        client's session cookie.
        """
        self._require_token(portal_token)
        self._require_pin_format(current_pin)
        relationship = self._get_relationship(portal_token)

        ip_hash = self._check_pin(relationship, current_pin, ip)
        # Only clear the PIN that was just checked
        updated = self._active_row(relationship).filter(
            portal_pin_hash=relationship.portal_pin_hash,
            portal_pin_salt=relationship.portal_pin_salt,
        ).update(
            portal_pin_hash=None,
            portal_pin_salt=None,
            portal_pin_set_at=None,
        )
        if not updated:
            # Removed (and possibly replaced) by a concurrent request
            raise NoPinSet()
        _audit_portal_event("portal_pin_removed", relationship.pk, ip_hash)
        logger.info("Portal PIN removed for relationship %s", relationship.pk)

    @_store_boundary("access check")
    def access_state(self, portal_token, session_token=None):
        """Work out what a portal page may show for this token and cookie."""
        self._require_token(portal_token)
        relationship = self._get_relationship(portal_token)

        if not relationship.has_consented:
            state = STATE_CONSENT_REQUIRED
        elif not relationship.has_pin:
            state = STATE_OPEN
        elif session_token and self.token_manager.verify(session_token, relationship.pk):
            state = STATE_VERIFIED
        else:
            state = STATE_PIN_REQUIRED
        return PortalAccess(
            relationship_id=relationship.pk,
            state=state,
            pin_set=relationship.has_pin,
        )
