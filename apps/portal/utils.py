"""Request helpers for the portal views."""
from apps.portal.hashing import UNKNOWN_IP


def get_client_ip(request):
    """Return the originating client IP, or "unknown".

    Behind the load balancer the first X-Forwarded-For entry is the client.
    """
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.META.get("REMOTE_ADDR") or UNKNOWN_IP


def token_prefix(portal_token):
    """Loggable stand-in for a portal token. Full tokens never reach the logs."""
    if not portal_token:
        return "<none>"
    return f"{portal_token[:8]}…"
