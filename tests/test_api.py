"""HTTP tests for the booking function endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from scooops.api import create_app
from scooops.integrations.sandbox import SandboxCrm, SandboxPayments
from scooops.services.messages import CONFIGURATION_MESSAGE
from scooops.services.webhooks import WebhookDispatcher, sign_payload
from tests.conftest import SANDBOX_PRICE_IDS, make_signup_body


def _json_body(**overrides):
    return make_signup_body(**overrides).model_dump(by_alias=True, exclude_none=True)


class TestHealthAndMiddleware:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "service": "Super Scooops"}

    def test_request_id_is_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-Id": "req-42"})
        assert resp.headers["X-Request-Id"] == "req-42"

    def test_request_id_is_generated(self, client):
        assert client.get("/health").headers["X-Request-Id"]

    def test_cors_allows_any_origin(self, client):
        resp = client.get("/functions/catalog", headers={"Origin": "https://example.test"})
        assert resp.headers["access-control-allow-origin"] == "*"


class TestCatalogAndQuote:
    def test_catalog(self, client):
        data = client.get("/functions/catalog").json()
        assert [p["id"] for p in data["plans"]] == ["sidekick", "hero", "super-scooper"]

    def test_quote(self, client):
        resp = client.get(
            "/functions/quote",
            params={"dogs": 3, "frequency": "weekly", "deodorizer": "weekly-deodorizer"},
        )
        assert resp.status_code == 200
        assert resp.json()["pricePerCleanup"] == "31.25"

    def test_quote_unknown_frequency(self, client):
        resp = client.get("/functions/quote", params={"frequency": "daily"})
        assert resp.status_code == 400
        assert "daily" in resp.json()["error"]

    def test_legacy_prefix_is_mounted(self, client):
        resp = client.get("/.netlify/functions/quote", params={"frequency": "3x-weekly"})
        assert resp.json()["periodTotal"] == "54.00"


class TestCreateSweepClient:
    def test_registration(self, client, payments, crm):
        resp = client.post("/functions/create-sweep-client", json=_json_body())
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["mode"] == "registration"
        assert data["clientId"] in crm.clients
        assert data["customerId"] in payments.customers
        assert data["subscriptionId"] in payments.subscriptions

    def test_legacy_prefix(self, client):
        resp = client.post("/.netlify/functions/create-sweep-client", json=_json_body())
        assert resp.status_code == 200

    def test_lead(self, client, payments, crm):
        resp = client.post(
            "/functions/create-sweep-client",
            json=_json_body(isLeadOnly=True, stripeToken=None, question="Side yard too?"),
        )
        assert resp.status_code == 200
        assert resp.json()["mode"] == "lead"
        assert payments.calls == []
        assert crm.calls == ["create_lead"]

    def test_missing_fields(self, client, payments):
        resp = client.post("/functions/create-sweep-client", json={"planId": "sidekick"})
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Missing required fields: name, email, phone")
        assert payments.calls == []

    def test_malformed_body(self, client):
        resp = client.post("/functions/create-sweep-client", json={**_json_body(), "dogs": "many"})
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid request: dogs")

    def test_get_not_allowed(self, client):
        assert client.get("/functions/create-sweep-client").status_code == 405

    def test_payment_failure(self, client, payments, crm):
        payments.fail("create_customer", "Your card was declined.")
        resp = client.post("/functions/create-sweep-client", json=_json_body())
        assert resp.status_code == 402
        data = resp.json()
        assert data["success"] is False
        assert data["phase"] == "payment"
        assert crm.calls == []

    def test_crm_failure(self, client, crm):
        crm.fail("create_client_with_package", "Invalid zip", 422)
        resp = client.post("/functions/create-sweep-client", json=_json_body())
        assert resp.status_code == 422
        data = resp.json()
        assert data["phase"] == "crm"
        assert "payment method was accepted" in data["error"]
        assert data["customerId"]

    def test_missing_configuration(self, config):
        app = create_app(config, payments=SandboxPayments(configured=False), crm=SandboxCrm())
        with TestClient(app) as unconfigured:
            resp = unconfigured.post("/functions/create-sweep-client", json=_json_body())
        assert resp.status_code == 500
        assert resp.json()["error"] == CONFIGURATION_MESSAGE


class TestCheckout:
    def test_checkout_url(self, client, payments):
        resp = client.post(
            "/functions/create-checkout",
            json={"planId": "hero", "dogs": 2, "deodorizer": "deodorizer-2x", "email": "a@b.example"},
        )
        assert resp.status_code == 200
        assert resp.json()["url"].startswith("https://checkout.sandbox/")
        assert payments.calls == ["create_checkout_session"]

    def test_plan_required(self, client):
        resp = client.post("/functions/create-checkout", json={"dogs": 1})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing required fields: planId"

    def test_missing_price_is_generic(self, config):
        prices = {k: v for k, v in SANDBOX_PRICE_IDS.items() if k != "hero"}
        app = create_app(config, payments=SandboxPayments(price_ids=prices), crm=SandboxCrm())
        with TestClient(app) as c:
            resp = c.post("/functions/create-checkout", json={"planId": "hero"})
        assert resp.status_code == 500
        assert resp.json()["error"] == CONFIGURATION_MESSAGE

    def test_processor_error(self, client, payments):
        payments.fail("create_checkout_session", "Invalid API Key provided", 401)
        resp = client.post("/functions/create-checkout", json={"planId": "sidekick"})
        assert resp.status_code == 500
        assert resp.json()["error"] == "Invalid API Key provided"


class TestBillingPortal:
    def test_email_required(self, client):
        resp = client.post("/functions/create-billing-portal-session", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Email is required"}

    def test_unknown_customer(self, client):
        resp = client.post(
            "/functions/create-billing-portal-session", json={"email": "nobody@example.test"}
        )
        assert resp.status_code == 404
        assert resp.json()["error"].startswith("No billing account found")

    def test_portal_url(self, client, payments):
        payments.customers["cus_123"] = {"email": "diana@themyscira.example", "metadata": {}}
        resp = client.post(
            "/functions/create-billing-portal-session", json={"email": "diana@themyscira.example"}
        )
        assert resp.status_code == 200
        assert resp.json()["url"] == "https://billing.sandbox/cus_123"


class TestSubmitBooking:
    BODY = {
        "name": "Bruce Wayne", "email": "bruce@wayne.example",
        "address": "1007 Mountain Dr", "planId": "hero", "dogs": 2, "deodorizer": False,
    }

    def test_success(self, client, crm):
        resp = client.post("/functions/submit-booking", json=self.BODY)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Booking submitted successfully!"
        assert crm.leads[0]["comment"].endswith("Deodorizer: No")

    def test_missing_fields(self, client):
        resp = client.post("/functions/submit-booking", json={"name": "Bruce"})
        assert resp.status_code == 400

    def test_string_false_deodorizer(self, client, crm):
        resp = client.post("/functions/submit-booking", json={**self.BODY, "deodorizer": "false"})
        assert resp.status_code == 200
        assert crm.leads[0]["comment"].endswith("Deodorizer: No")

    def test_unparseable_deodorizer(self, client, crm):
        resp = client.post("/functions/submit-booking", json={**self.BODY, "deodorizer": "maybe"})
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid request: deodorizer")
        assert crm.calls == []

    def test_crm_error(self, client, crm):
        crm.fail("create_lead", "Unauthorized", 401)
        resp = client.post("/functions/submit-booking", json=self.BODY)
        assert resp.status_code == 500
        assert resp.json()["error"] == "CRM ERROR: Unauthorized"


class TestWebhook:
    def test_known_alias(self, client):
        resp = client.post(
            "/functions/sweep-webhook",
            json={"event_type": "client_created", "data": {"client_id": "cl_1"}},
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "event_type": "client_created",
            "message": "Webhook processed successfully",
        }

    def test_unknown_event_acknowledged(self, client):
        resp = client.post("/functions/sweep-webhook", json={"event_type": "invoice.voided"})
        assert resp.status_code == 200
        assert resp.json()["received"] is True

    def test_missing_event_type(self, client):
        resp = client.post("/functions/sweep-webhook", json={"data": {}})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing event_type"}

    def test_invalid_json(self, client):
        resp = client.post(
            "/functions/sweep-webhook", content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid JSON"}

    def test_handler_failure(self, config, payments, crm):
        def explode(event):
            raise RuntimeError("mailer down")

        dispatcher = WebhookDispatcher()
        dispatcher.register("payment.failed", explode)
        with TestClient(create_app(config, payments=payments, crm=crm, dispatcher=dispatcher)) as c:
            resp = c.post("/functions/sweep-webhook", json={"event_type": "payment_failed"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Webhook processing failed", "message": "mailer down"}


class TestSignedWebhook:
    SECRET = "whsec_test"

    @pytest.fixture
    def signed_client(self, config, payments, crm):
        dispatcher = WebhookDispatcher(secret=self.SECRET)
        with TestClient(create_app(config, payments=payments, crm=crm, dispatcher=dispatcher)) as c:
            yield c

    def test_missing_signature(self, signed_client):
        resp = signed_client.post("/functions/sweep-webhook", json={"event_type": "client.created"})
        assert resp.status_code == 401

    def test_valid_signature(self, signed_client):
        raw = json.dumps({"event_type": "client.created"}).encode()
        resp = signed_client.post(
            "/functions/sweep-webhook", content=raw,
            headers={"X-Sweep-Signature": sign_payload(self.SECRET, raw)},
        )
        assert resp.status_code == 200

    def test_wrong_signature(self, signed_client):
        raw = b'{"event_type": "client.created"}'
        resp = signed_client.post(
            "/functions/sweep-webhook", content=raw,
            headers={"X-Webhook-Signature": sign_payload("other", raw)},
        )
        assert resp.status_code == 401
