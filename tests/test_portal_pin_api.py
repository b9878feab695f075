"""HTTP tests for the client portal consent and PIN endpoints.

Run with:
    pytest tests/test_portal_pin_api.py -v
"""
import json
from unittest.mock import patch

from django.core.cache import cache
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone

from apps.audit.models import AuditLog
from apps.portal.models import PortalPinAttempt, TherapeuticRelationship
import apps.portal.config as config_module

COOKIE = "portal_pin_session"
TEST_KEY = "portal-api-test-key-0123456789abcdef"


@override_settings(PORTAL_HMAC_KEY=TEST_KEY)
class PortalApiTestCase(TestCase):
    databases = {"default", "audit"}

    def setUp(self):
        config_module._config = None
        self.relationship = TherapeuticRelationship.objects.create(client_label="API-001")
        self.token = self.relationship.client_portal_token

    def tearDown(self):
        config_module._config = None

    def _post(self, url, payload, **extra):
        return self.client.post(
            url, data=json.dumps(payload), content_type="application/json", **extra,
        )

    def consent(self, token=None, **extra):
        return self._post("/api/client-portal/consent/", {"portalToken": token or self.token}, **extra)

    def set_pin(self, pin="4821", token=None):
        return self._post("/api/client-portal/pin/set/", {"portalToken": token or self.token, "pin": pin})

    def verify(self, pin="4821", token=None, **extra):
        return self._post(
            "/api/client-portal/pin/verify/", {"portalToken": token or self.token, "pin": pin}, **extra,
        )

    def remove(self, pin="4821", token=None):
        return self._post(
            "/api/client-portal/pin/remove/", {"portalToken": token or self.token, "currentPin": pin},
        )

    def access(self, token=None):
        return self.client.get(f"/client/{token or self.token}/access/")


class ConsentEndpointTests(PortalApiTestCase):

    def test_consent_then_repeat(self):
        resp = self.consent()
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True})

        resp = self.consent()
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True, "alreadyConsented": True})

    def test_consent_hashes_forwarded_ip(self):
        self.consent(HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1")
        self.relationship.refresh_from_db()
        self.assertIsNotNone(self.relationship.portal_consent_ip_hash)
        self.assertNotIn("203.0.113.7", self.relationship.portal_consent_ip_hash)
        self.assertEqual(len(self.relationship.portal_consent_ip_hash), 64)

    def test_missing_token(self):
        resp = self._post("/api/client-portal/consent/", {})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Missing portal token"})

    def test_form_encoded_body_is_accepted(self):
        resp = self.client.post("/api/client-portal/consent/", {"portalToken": self.token})
        self.assertEqual(resp.status_code, 200)

    def test_get_not_allowed(self):
        resp = self.client.get("/api/client-portal/consent/")
        self.assertEqual(resp.status_code, 405)


class PinSetEndpointTests(PortalApiTestCase):

    def test_set_pin_sets_scoped_session_cookie(self):
        self.consent()
        resp = self.set_pin()
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True})

        morsel = resp.cookies[COOKIE]
        self.assertTrue(morsel.value)
        self.assertTrue(morsel["httponly"])
        self.assertEqual(morsel["samesite"], "Lax")
        self.assertEqual(morsel["path"], "/client/")
        self.assertEqual(morsel["max-age"], 86400)

    def test_set_pin_before_consent(self):
        resp = self.set_pin()
        self.assertEqual(resp.status_code, 403)
        self.assertNotIn(COOKIE, resp.cookies)

    def test_set_pin_twice_is_conflict(self):
        self.consent()
        self.set_pin("4821")
        resp = self.set_pin("1111")
        self.assertEqual(resp.status_code, 409)

    def test_missing_pin(self):
        resp = self._post("/api/client-portal/pin/set/", {"portalToken": self.token})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Missing portalToken or pin"})

    def test_bad_pin_format(self):
        self.consent()
        for bad in ("123", "12345", "abcd", "12 4"):
            resp = self.set_pin(bad)
            self.assertEqual(resp.status_code, 400, bad)
            self.assertEqual(resp.json(), {"error": "PIN must be exactly 4 digits"})
        self.relationship.refresh_from_db()
        self.assertIsNone(self.relationship.portal_pin_hash)

    def test_malformed_json(self):
        resp = self.client.post(
            "/api/client-portal/pin/set/", data="{not json", content_type="application/json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Invalid request body"})

    def test_json_array_body_is_rejected(self):
        resp = self.client.post(
            "/api/client-portal/pin/set/", data="[1, 2]", content_type="application/json",
        )
        self.assertEqual(resp.status_code, 400)


class PinVerifyEndpointTests(PortalApiTestCase):

    def setUp(self):
        super().setUp()
        self.consent()
        self.set_pin("4821")
        self.client.cookies.clear()

    def test_correct_pin_sets_cookie(self):
        resp = self.verify("4821")
        self.assertEqual(resp.status_code, 200)
        self.assertIn(COOKIE, resp.cookies)
        self.assertTrue(
            AuditLog.objects.using("audit").filter(action="portal_pin_verified").exists()
        )

    def test_wrong_pin_reports_attempts_remaining(self):
        resp = self.verify("0000")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"error": "Incorrect PIN", "attemptsRemaining": 3})
        self.assertNotIn(COOKIE, resp.cookies)

    def test_lockout_after_five_failures(self):
        for _ in range(5):
            self.assertEqual(self.verify("0000").status_code, 401)
        resp = self.verify("4821")
        self.assertEqual(resp.status_code, 429)
        body = resp.json()
        self.assertEqual(body["retryAfterSeconds"], 900)
        self.assertIn("error", body)
        self.assertNotIn(COOKIE, resp.cookies)
        self.assertEqual(PortalPinAttempt.objects.count(), 5)

    def test_verify_without_pin_set(self):
        other = TherapeuticRelationship.objects.create(
            client_label="API-002", portal_consented_at=timezone.now(),
        )
        resp = self.verify("4821", token=other.client_portal_token)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "No PIN is set for this portal"})


class NotFoundEndpointTests(PortalApiTestCase):

    def test_deleted_and_unknown_tokens_look_identical(self):
        self.consent()
        self.set_pin("4821")
        TherapeuticRelationship.objects.filter(pk=self.relationship.pk).update(
            deleted_at=timezone.now(),
        )
        calls = [
            lambda token: self.consent(token=token),
            lambda token: self.set_pin(token=token),
            lambda token: self.verify(token=token),
            lambda token: self.remove(token=token),
            lambda token: self.access(token=token),
        ]
        for call in calls:
            deleted = call(self.token)
            unknown = call("no-such-portal-token")
            self.assertEqual(deleted.status_code, 404)
            self.assertEqual(unknown.status_code, 404)
            self.assertEqual(deleted.content, unknown.content)

    def test_over_long_token_is_not_found(self):
        """Token length never changes the answer for a portal that does not exist."""
        long_token = "x" * 200
        calls = [
            lambda token: self.consent(token=token),
            lambda token: self.set_pin(token=token),
            lambda token: self.verify(token=token),
            lambda token: self.remove(token=token),
            lambda token: self.access(token=token),
        ]
        for call in calls:
            over_long = call(long_token)
            short = call("no-such-portal-token")
            self.assertEqual(over_long.status_code, 404)
            self.assertEqual(over_long.content, short.content)


class PinRemoveEndpointTests(PortalApiTestCase):

    def setUp(self):
        super().setUp()
        self.consent()
        self.set_pin("4821")

    def test_remove_clears_pin_and_cookie(self):
        resp = self.remove("4821")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True})
        morsel = resp.cookies[COOKIE]
        self.assertEqual(morsel.value, "")
        self.assertEqual(morsel["max-age"], 0)
        self.assertEqual(morsel["path"], "/client/")

        self.relationship.refresh_from_db()
        self.assertFalse(self.relationship.has_pin)

    def test_remove_with_wrong_pin(self):
        resp = self.remove("9999")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["attemptsRemaining"], 3)
        self.relationship.refresh_from_db()
        self.assertTrue(self.relationship.has_pin)

    def test_missing_current_pin(self):
        resp = self._post("/api/client-portal/pin/remove/", {"portalToken": self.token})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Missing required fields"})


class AccessEndpointTests(PortalApiTestCase):

    def test_access_states(self):
        self.assertEqual(self.access().json(), {"state": "consent_required", "pinSet": False})
        self.consent()
        self.assertEqual(self.access().json(), {"state": "open", "pinSet": False})

        # set_pin's cookie lands in the test client's jar
        self.set_pin("4821")
        self.assertEqual(self.access().json(), {"state": "verified", "pinSet": True})

        self.client.cookies.clear()
        self.assertEqual(self.access().json(), {"state": "pin_required", "pinSet": True})

    def test_forged_cookie_is_not_verified(self):
        self.consent()
        self.set_pin("4821")
        self.client.cookies[COOKIE] = "eyJyaWQiOiJ4In0.forged"
        self.assertEqual(self.access().json()["state"], "pin_required")

    def test_access_after_remove_is_open(self):
        self.consent()
        self.set_pin("4821")
        self.remove("4821")
        self.assertEqual(self.access().json(), {"state": "open", "pinSet": False})


class ServerErrorTests(PortalApiTestCase):

    def test_store_error_returns_generic_500(self):
        with patch.object(
            TherapeuticRelationship.objects, "active",
            side_effect=DatabaseError("FATAL: password authentication failed"),
        ), self.assertLogs("apps.portal.access", level="ERROR"):
            resp = self.consent()
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Internal server error"})
        self.assertNotIn(b"password", resp.content)

    def test_unexpected_error_returns_generic_500(self):
        with patch("apps.portal.views._get_service", side_effect=RuntimeError("boom")), \
                self.assertLogs("apps.portal.views", level="ERROR"):
            resp = self.consent()
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Internal server error"})

    @override_settings(PORTAL_HMAC_KEY="")
    def test_missing_key_fails_closed(self):
        with self.assertLogs("apps.portal.views", level="ERROR"):
            resp = self.consent()
        self.assertEqual(resp.status_code, 500)
        self.relationship.refresh_from_db()
        self.assertIsNone(self.relationship.portal_consented_at)


@override_settings(RATELIMIT_ENABLE=True)
class RequestThrottleTests(PortalApiTestCase):

    def setUp(self):
        super().setUp()
        cache.clear()

    def tearDown(self):
        cache.clear()
        super().tearDown()

    def test_thirty_requests_per_minute_per_ip(self):
        for _ in range(30):
            self.assertEqual(self.consent().status_code, 200)
        resp = self.consent()
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.json()["retryAfterSeconds"], 60)
        self.assertIn("error", resp.json())

    def test_throttled_request_does_not_reach_the_service(self):
        # Each view keeps its own count
        for _ in range(30):
            self.assertEqual(self.verify("4821").status_code, 400)
        with patch("apps.portal.views._get_service") as mock_service:
            resp = self.verify("4821")
        self.assertEqual(resp.status_code, 429)
        mock_service.assert_not_called()


class EndToEndTests(PortalApiTestCase):

    def test_pin_lifecycle(self):
        self.assertEqual(self.consent().status_code, 200)
        self.assertEqual(self.set_pin("4821").status_code, 200)

        resp = self.verify("4821")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.cookies[COOKIE].value)

        resp = self.verify("0000")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["attemptsRemaining"], 3)

        resp = self.remove("4821")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.cookies[COOKIE]["max-age"], 0)

        resp = self.verify("4821")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "No PIN is set for this portal"})
