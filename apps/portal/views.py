"""Views for the client portal access API.

Clients are anonymous: they hold an unguessable portal link, and optionally
a 4-digit PIN on top of it. These endpoints do NOT use Django sessions or
auth. PIN verification persists in a signed, stateless cookie
(portal_pin_session) scoped to the /client/ URL namespace.

The POST endpoints are csrf_exempt: there is no session to ride on, and the
portal token in the request body is the compensating control, since a
cross-origin attacker cannot know it.
"""
import json
import logging
from functools import wraps

from django.conf import settings
from django.http import JsonResponse
from django.utils.translation import gettext as _
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST
from django_ratelimit.decorators import ratelimit

from apps.portal.access import PortalAccessService
from apps.portal.exceptions import InvalidPortalRequest, PortalAccessError, TooManyAttempts
from apps.portal.forms import PinForm, PortalTokenForm, RemovePinForm, has_missing_fields
from apps.portal.session_tokens import SESSION_MAX_AGE_SECONDS
from apps.portal.utils import get_client_ip

logger = logging.getLogger(__name__)

# General per-IP request throttle, separate from the PIN attempt limiter
PORTAL_API_RATE = "30/m"
PORTAL_API_RATE_SECONDS = 60


# ---------------------------------------------------------------------------
# Session cookie helpers
# ---------------------------------------------------------------------------


def _cookie_options(max_age):
    return {
        "max_age": max_age,
        "path": settings.PORTAL_SESSION_COOKIE_PATH,
        "secure": settings.PORTAL_SESSION_COOKIE_SECURE,
        "httponly": True,
        "samesite": "Lax",
    }


def set_session_cookie(response, token):
    """Attach a PIN session token. Lifetime matches the token's own expiry."""
    response.set_cookie(
        settings.PORTAL_SESSION_COOKIE_NAME, token, **_cookie_options(SESSION_MAX_AGE_SECONDS),
    )


def clear_session_cookie(response):
    """Expire the PIN session cookie with the same attributes it was set with."""
    response.set_cookie(settings.PORTAL_SESSION_COOKIE_NAME, "", **_cookie_options(0))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_service():
    return PortalAccessService()


def _read_payload(request):
    """Return the request body as a dict (JSON or form-encoded)."""
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except (ValueError, UnicodeDecodeError):
            raise InvalidPortalRequest(_("Invalid request body"))
        if not isinstance(data, dict):
            raise InvalidPortalRequest(_("Invalid request body"))
        return data
    return request.POST


def _validated(form_class, request, missing_message):
    form = form_class(_read_payload(request))
    if form.is_valid():
        return form.cleaned_data
    if has_missing_fields(form):
        raise InvalidPortalRequest(missing_message)
    raise InvalidPortalRequest(_("PIN must be exactly 4 digits"))


def portal_api(view_func):
    """Turn PortalAccessError into its JSON response; anything else is a 500.

    Unexpected errors are logged with their traceback and answered with the
    same generic body, so nothing internal reaches the client. Requests
    flagged by django-ratelimit (block=False) get the same 429 shape as the
    PIN limiter.
    """

    @wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        try:
            if getattr(request, "limited", False):
                logger.warning("Portal API throttled for %s", view_func.__name__)
                raise TooManyAttempts(retry_after_seconds=PORTAL_API_RATE_SECONDS)
            return view_func(request, *args, **kwargs)
        except PortalAccessError as exc:
            return JsonResponse(exc.to_payload(), status=exc.status_code)
        except Exception:
            logger.exception("Portal API error in %s", view_func.__name__)
            return JsonResponse({"error": _("Internal server error")}, status=500)

    return _wrapped


# ---------------------------------------------------------------------------
# Consent and PIN endpoints
# ---------------------------------------------------------------------------


@csrf_exempt
@require_POST
@ratelimit(key="ip", rate=PORTAL_API_RATE, method="POST", block=False)
@portal_api
def portal_consent(request):
    """Record portal consent. Idempotent: repeat calls report alreadyConsented."""
    data = _validated(PortalTokenForm, request, _("Missing portal token"))
    result = _get_service().consent(data["portalToken"], get_client_ip(request))

    body = {"success": True}
    if result.already_consented:
        body["alreadyConsented"] = True
    return JsonResponse(body)


@csrf_exempt
@require_POST
@ratelimit(key="ip", rate=PORTAL_API_RATE, method="POST", block=False)
@portal_api
def pin_set(request):
    """Set a first PIN; the client is verified for this device straight away."""
    data = _validated(PinForm, request, _("Missing portalToken or pin"))
    token = _get_service().set_pin(data["portalToken"], data["pin"])

    response = JsonResponse({"success": True})
    set_session_cookie(response, token)
    return response


@csrf_exempt
@require_POST
@ratelimit(key="ip", rate=PORTAL_API_RATE, method="POST", block=False)
@portal_api
def pin_verify(request):
    """Check a PIN; on success start a 24-hour PIN session."""
    data = _validated(PinForm, request, _("Missing portalToken or pin"))
    token = _get_service().verify_pin(
        data["portalToken"], data["pin"], get_client_ip(request),
    )

    response = JsonResponse({"success": True})
    set_session_cookie(response, token)
    return response


@csrf_exempt
@require_POST
@ratelimit(key="ip", rate=PORTAL_API_RATE, method="POST", block=False)
@portal_api
def pin_remove(request):
    """Remove the PIN after checking the current one, and end the PIN session."""
    data = _validated(RemovePinForm, request, _("Missing required fields"))
    _get_service().remove_pin(
        data["portalToken"], data["currentPin"], get_client_ip(request),
    )

    response = JsonResponse({"success": True})
    clear_session_cookie(response)
    return response


# ---------------------------------------------------------------------------
# Portal page gate
# ---------------------------------------------------------------------------


@require_GET
@portal_api
def portal_access(request, portal_token):
    """Tell the portal page whether to show consent, PIN entry or content.

    Lives under /client/ so the PIN session cookie is sent with it.
    """
    access = _get_service().access_state(
        portal_token, request.COOKIES.get(settings.PORTAL_SESSION_COOKIE_NAME),
    )
    return JsonResponse({"state": access.state, "pinSet": access.pin_set})
