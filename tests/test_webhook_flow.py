import hashlib
import hmac
import json
import time

import pytest
import requests
import stripe

from app import create_app
from services.registry import get_services

WEBHOOK_SECRET = "whsec_flow_secret"


class FakeStripeObject(dict):
    def to_dict(self):
        return dict(self)


class FakeStripe:
    def __init__(self):
        self.customers = {}
        self.payment_intents = {}
        self.calls = []

    def retrieve_customer(self, customer_id, **params):
        self.calls.append(("customer", customer_id))
        if customer_id not in self.customers:
            raise stripe.InvalidRequestError(f"No such customer: '{customer_id}'", "id")
        return FakeStripeObject(self.customers[customer_id])

    def retrieve_payment_intent(self, payment_intent_id, **params):
        self.calls.append(("payment_intent", payment_intent_id))
        if payment_intent_id not in self.payment_intents:
            raise stripe.InvalidRequestError(f"No such payment_intent: '{payment_intent_id}'", "id")
        return FakeStripeObject(self.payment_intents[payment_intent_id])


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body or {}
        self.text = json.dumps(self._body)

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeAirtable:
    def __init__(self):
        self.records = []
        self.status_code = 200

    def post(self, url, json=None, headers=None, timeout=None):
        if self.status_code >= 400:
            return FakeResponse(self.status_code, {"error": {"type": "SERVER_ERROR"}})
        self.records.extend(record["fields"] for record in json["records"])
        return FakeResponse(200, {"records": [{"id": "rec1"}]})


class FakeSMTP:
    outbox = []

    def __init__(self, host, port):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def login(self, user, password):
        pass

    def send_message(self, message):
        FakeSMTP.outbox.append(message)


def _sign_payload(secret, payload):
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _post_event(client, event):
    body = json.dumps(event, separators=(",", ":"))
    return client.post(
        "/webhook/stripe",
        data=body,
        headers={
            "Content-Type": "application/json",
            "Stripe-Signature": _sign_payload(WEBHOOK_SECRET, body),
        },
    )


def _event(event_type, obj, event_id="evt_1"):
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def _messages(app):
    with app.app_context():
        return [entry["message"] for entry in get_services().log_buffer.snapshot()["logs"]]


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(stripe.Customer, "retrieve", fake.retrieve_customer)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake.retrieve_payment_intent)
    return fake


@pytest.fixture
def airtable(monkeypatch):
    fake = FakeAirtable()
    monkeypatch.setattr("services.ledger.requests.post", fake.post)
    return fake


@pytest.fixture
def outbox(monkeypatch):
    FakeSMTP.outbox = []
    monkeypatch.setattr("services.alerts.smtplib.SMTP_SSL", FakeSMTP)
    return FakeSMTP.outbox


@pytest.fixture
def app(fake_stripe, airtable, outbox):
    return create_app({
        "TESTING": True,
        "RATELIMIT_ENABLED": False,
        "STRIPE_SECRET_KEY": "sk_test_flow",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "AIRTABLE_API_KEY": "key_flow",
        "AIRTABLE_BASE_ID": "appFLOW",
        "AIRTABLE_TABLE_NAME": "Failed Payments",
        "GMAIL_USER": "alerts@example.com",
        "GMAIL_APP_PASSWORD": "app-pass",
        "ALERT_EMAIL": None,
    })


@pytest.fixture
def client(app):
    return app.test_client()


def test_payment_intent_failed_is_recorded_and_alerted(client, app, fake_stripe, airtable, outbox):
    fake_stripe.customers["cus_42"] = {"id": "cus_42", "email": "jane@example.com"}

    response = _post_event(client, _event("payment_intent.payment_failed", {
        "id": "pi_42",
        "object": "payment_intent",
        "amount": 2000,
        "currency": "usd",
        "customer": "cus_42",
        "last_payment_error": {"code": "card_declined", "message": "Your card was declined."},
    }))

    assert response.status_code == 200
    assert response.get_json() == {"received": True}

    assert len(airtable.records) == 1
    record = airtable.records[0]
    assert record["Payment Intent ID"] == "pi_42"
    assert record["Amount"] == 20.0
    assert record["Currency"] == "USD"
    assert record["Customer Email"] == "jane@example.com"
    assert record["Customer ID"] == "cus_42"
    assert record["Failure Code"] == "card_declined"
    assert record["Status"] == "Failed"

    assert len(outbox) == 1
    assert outbox[0]["Subject"] == "🚨 Payment Failed - jane@example.com"
    # Recipient falls back to the sender when ALERT_EMAIL is unset
    assert outbox[0]["To"] == "alerts@example.com"

    messages = _messages(app)
    assert messages[0] == "Failed payment processed successfully"
    assert "Received Stripe webhook" in messages


def test_alert_email_setting_overrides_recipient(fake_stripe, airtable, outbox):
    app = create_app({
        "TESTING": True,
        "RATELIMIT_ENABLED": False,
        "STRIPE_SECRET_KEY": "sk_test_flow",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "AIRTABLE_API_KEY": "key_flow",
        "GMAIL_USER": "alerts@example.com",
        "GMAIL_APP_PASSWORD": "app-pass",
        "ALERT_EMAIL": "ops@example.com",
    })
    client = app.test_client()
    fake_stripe.customers["cus_7"] = {"id": "cus_7", "email": "sam@example.com"}

    response = _post_event(client, _event("payment_intent.payment_failed", {
        "id": "pi_7", "amount": 990, "currency": "usd", "customer": "cus_7",
        "last_payment_error": {"code": "insufficient_funds", "message": "Insufficient funds."},
    }))

    assert response.status_code == 200
    assert len(outbox) == 1
    assert outbox[0]["To"] == "ops@example.com"
    assert outbox[0]["From"] == "alerts@example.com"

    outbox.clear()
    data = client.post("/test").get_json()
    assert data["results"]["email"] == "success"
    assert outbox[0]["To"] == "ops@example.com"


def test_payment_intent_without_customer_uses_unknown(client, fake_stripe, airtable, outbox):
    response = _post_event(client, _event("payment_intent.payment_failed", {
        "id": "pi_anon", "amount": 1500, "currency": "EUR", "customer": None,
        "last_payment_error": None,
    }))

    assert response.status_code == 200
    assert fake_stripe.calls == []
    record = airtable.records[0]
    assert record["Customer Email"] == "unknown@example.com"
    assert record["Customer ID"] == "unknown"
    assert record["Failure Code"] == "unknown"
    assert record["Failure Message"] == "No message provided"
    assert len(outbox) == 1


def test_customer_lookup_failure_still_delivers(client, app, fake_stripe, airtable, outbox):
    response = _post_event(client, _event("payment_intent.payment_failed", {
        "id": "pi_lost", "amount": 999, "currency": "usd", "customer": "cus_gone",
    }))

    assert response.status_code == 200
    assert airtable.records[0]["Customer Email"] == "unknown@example.com"
    assert len(outbox) == 1
    assert "Could not retrieve customer details" in _messages(app)


def test_airtable_failure_does_not_block_email(client, app, airtable, outbox):
    airtable.status_code = 500

    response = _post_event(client, _event("payment_intent.payment_failed", {
        "id": "pi_partial", "amount": 2000, "currency": "usd",
    }))

    assert response.status_code == 200
    assert response.get_json() == {"received": True}
    assert airtable.records == []
    assert len(outbox) == 1

    messages = _messages(app)
    assert messages[0] == "Failed payment processed with some errors"
    assert "Error logging to Airtable" in messages


def test_invoice_failed_fetches_payment_intent(client, fake_stripe, airtable, outbox):
    fake_stripe.payment_intents["pi_inv"] = {
        "id": "pi_inv", "amount": 4550, "currency": "gbp", "customer": None,
        "last_payment_error": {"code": "insufficient_funds"},
    }

    response = _post_event(client, _event("invoice.payment_failed", {
        "id": "in_1", "object": "invoice", "payment_intent": "pi_inv",
    }))

    assert response.status_code == 200
    assert ("payment_intent", "pi_inv") in fake_stripe.calls
    record = airtable.records[0]
    assert record["Payment Intent ID"] == "pi_inv"
    assert record["Amount"] == 45.5
    assert record["Currency"] == "GBP"
    assert record["Failure Code"] == "insufficient_funds"
    assert len(outbox) == 1


def test_invoice_without_payment_intent_has_no_side_effects(client, app, fake_stripe, airtable, outbox):
    response = _post_event(client, _event("invoice.payment_failed", {
        "id": "in_2", "object": "invoice", "payment_intent": None,
    }))

    assert response.status_code == 200
    assert response.get_json() == {"received": True}
    assert fake_stripe.calls == []
    assert airtable.records == []
    assert outbox == []
    assert "Processing failed payment" not in _messages(app)


def test_invoice_payment_intent_lookup_failure_ends_run(client, app, airtable, outbox):
    response = _post_event(client, _event("invoice.payment_failed", {
        "id": "in_3", "object": "invoice", "payment_intent": "pi_missing",
    }))

    assert response.status_code == 200
    assert airtable.records == []
    assert outbox == []
    assert _messages(app)[0] == "Error retrieving payment intent from failed invoice"


def test_unhandled_event_type_is_acknowledged(client, app, fake_stripe, airtable, outbox):
    response = _post_event(client, _event("customer.created", {"id": "cus_new"}))

    assert response.status_code == 200
    assert response.get_json() == {"received": True}
    assert fake_stripe.calls == []
    assert airtable.records == []
    assert outbox == []

    with app.app_context():
        entry = get_services().log_buffer.snapshot()["logs"][0]
    assert entry["level"] == "info"
    assert entry["message"] == "Unhandled event type"
    assert entry["data"] == "customer.created"


def test_unexpected_error_returns_generic_500(client, app, monkeypatch):
    with app.app_context():
        dispatcher = get_services().dispatcher

    def explode(failure):
        raise RuntimeError("secret internal detail")

    monkeypatch.setattr(dispatcher, "deliver", explode)

    response = _post_event(client, _event("payment_intent.payment_failed", {
        "id": "pi_boom", "amount": 2000, "currency": "usd",
    }))

    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal server error"}
    assert "secret internal detail" not in response.get_data(as_text=True)
    assert _messages(app)[0] == "Webhook processing failed"


def test_payment_intent_event_missing_amount_is_rejected(client, airtable, outbox):
    response = _post_event(client, _event("payment_intent.payment_failed", {
        "id": "pi_bad", "currency": "usd",
    }))

    assert response.status_code == 400
    assert airtable.records == []
    assert outbox == []
