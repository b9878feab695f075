"""Brute-force protection for portal PINs.

Failed attempts are counted along two independent axes inside a 15-minute
window: per relationship (5) and per hashed origin IP (20). The PIN ledger
is the only state, so there is no separate counter to drift out of sync.

check() followed by record() is not atomic. Two simultaneous wrong guesses
for the same relationship can both be admitted before either is recorded.
With a 4-digit PIN and a 15-minute window that costs at most a few extra
guesses, so no lock is taken.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from django.utils import timezone

from apps.portal.models import PortalPinAttempt

logger = logging.getLogger(__name__)

WINDOW_MINUTES = 15
MAX_FAILURES_PER_RELATIONSHIP = 5
MAX_FAILURES_PER_IP = 20


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after_seconds: int | None = None


class PinRateLimiter:
    """Sliding-window failure counter over PortalPinAttempt rows."""

    def __init__(
        self,
        *,
        window=timedelta(minutes=WINDOW_MINUTES),
        max_per_relationship=MAX_FAILURES_PER_RELATIONSHIP,
        max_per_ip=MAX_FAILURES_PER_IP,
        clock=timezone.now,
    ):
        if max_per_relationship <= 0 or max_per_ip <= 0:
            raise ValueError("Rate limits must be > 0")
        self.window = window
        self.max_per_relationship = max_per_relationship
        self.max_per_ip = max_per_ip
        self._clock = clock

    @property
    def window_seconds(self):
        return int(self.window.total_seconds())

    def _recent_failures(self):
        window_start = self._clock() - self.window
        return PortalPinAttempt.objects.filter(
            success=False,
            attempted_at__gte=window_start,
        )

    def check(self, relationship_id, ip_hash):
        """Decide whether another PIN comparison may run.

        Must be called before the PIN hasher so blocked callers never reach it.
        """
        failures = self._recent_failures()
        relationship_failures = failures.filter(relationship_id=relationship_id).count()
        ip_failures = failures.filter(ip_hash=ip_hash).count()

        if relationship_failures >= self.max_per_relationship or ip_failures >= self.max_per_ip:
            logger.info(
                "PIN attempts blocked for relationship %s (relationship failures: %d, origin failures: %d)",
                relationship_id, relationship_failures, ip_failures,
            )
            # Advisory only: the full window rather than the exact expiry of
            # the oldest counted failure.
            return RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_seconds=self.window_seconds,
            )

        # Leave room for the attempt the caller is about to make
        remaining = max(0, self.max_per_relationship - relationship_failures - 1)
        return RateLimitResult(allowed=True, remaining=remaining)

    def record(self, relationship_id, ip_hash, success):
        """Append one attempt to the ledger, whatever its outcome."""
        PortalPinAttempt.objects.create(
            relationship_id=relationship_id,
            ip_hash=ip_hash,
            success=success,
            attempted_at=self._clock(),
        )
