"""Errors raised by the portal access service.

Each error carries the HTTP status the views should answer with and a
generic, user-safe message. Messages never say which field failed or
whether a portal exists but was deleted.
"""
from django.utils.translation import gettext_lazy as _


class PortalAccessError(Exception):
    """Base class for every failure that crosses the portal access boundary."""

    status_code = 500
    default_message = _("Internal server error")

    def __init__(self, message=None):
        self.message = message if message is not None else self.default_message
        super().__init__(str(self.message))

    def to_payload(self):
        """JSON body for the HTTP response."""
        return {"error": str(self.message)}


class InvalidPortalRequest(PortalAccessError):
    """Malformed input (missing field, PIN not four digits)."""

    status_code = 400
    default_message = _("Invalid request")


class PortalNotFound(PortalAccessError):
    """Unknown or soft-deleted portal token. Both look identical."""

    status_code = 404
    default_message = _("Portal not found")


class ConsentRequired(PortalAccessError):
    status_code = 403
    default_message = _("Portal consent required before setting a PIN")


class PinAlreadySet(PortalAccessError):
    status_code = 409
    default_message = _("A PIN is already set. Remove it before setting a new one.")


class NoPinSet(PortalAccessError):
    status_code = 400
    default_message = _("No PIN is set for this portal")


class IncorrectPin(PortalAccessError):
    status_code = 401
    default_message = _("Incorrect PIN")

    def __init__(self, attempts_remaining, message=None):
        self.attempts_remaining = attempts_remaining
        super().__init__(message)

    def to_payload(self):
        payload = super().to_payload()
        payload["attemptsRemaining"] = self.attempts_remaining
        return payload


class TooManyAttempts(PortalAccessError):
    status_code = 429
    default_message = _("Too many attempts. Please try again later.")

    def __init__(self, retry_after_seconds, message=None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)

    def to_payload(self):
        payload = super().to_payload()
        payload["retryAfterSeconds"] = self.retry_after_seconds
        return payload


class PortalInternalError(PortalAccessError):
    """Store failure or other unexpected error. Details stay in the logs."""
