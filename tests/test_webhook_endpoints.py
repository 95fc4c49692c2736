"""
Integration tests for the Apple and Stripe webhook endpoints.
"""
from datetime import datetime

import pytest

from subsync.core import config
from subsync.db.models import Subscription
from helpers import apple_notification, encode_body, sign_jws, stripe_event, stripe_signature_header


WEBHOOK_SECRET = "whsec_endpoint_test"

TRANSACTION = {
    "transactionId": "2000000000000003",
    "originalTransactionId": "1000000123",
    "productId": "com.example.premium.monthly",
    "purchaseDate": 1767225600000,
    "expiresDate": 1769904000000,
}


@pytest.fixture
def stripe_secret(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return WEBHOOK_SECRET


@pytest.fixture
def no_stripe_secret(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", None)


# ============================================
# Apple
# ============================================

def test_apple_expired_end_to_end(client, db_session, make_subscription):
    subscription = make_subscription(
        original_transaction_id="1000000123",
        expires_at=datetime(2026, 2, 1),
    )

    response = client.post("/webhooks/apple", json={
        "signedPayload": apple_notification("EXPIRED", TRANSACTION),
    })

    assert response.status_code == 200
    assert response.json() == {"success": True}

    db_session.expire_all()
    stored = db_session.get(Subscription, subscription.id)
    assert stored.status == "expired"
    assert stored.is_active is False


def test_apple_did_renew_for_unknown_transaction(client, db_session, test_user):
    response = client.post("/webhooks/apple", json={
        "signedPayload": apple_notification("DID_RENEW", TRANSACTION),
    })

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert db_session.query(Subscription).count() == 0


def test_apple_test_notification(client):
    response = client.post("/webhooks/apple", json={"signedPayload": apple_notification("TEST")})

    assert response.status_code == 200
    assert response.json() == {"success": True}


@pytest.mark.parametrize("payload", [
    {"notificationType": "RENEWAL_EXTENSION", "subtype": "SUMMARY",
     "summary": {"requestIdentifier": "req-1", "succeededCount": 3, "failedCount": 0}},
    {"notificationType": "EXTERNAL_PURCHASE_TOKEN", "subtype": "UNREPORTED"},
])
def test_apple_notifications_without_transaction_acknowledged(client, payload):
    response = client.post("/webhooks/apple", json={"signedPayload": sign_jws(payload)})

    assert response.status_code == 200
    assert response.json() == {"success": True}


@pytest.mark.parametrize("body", [
    {"signedPayload": "not-a-jws"},
    {"signedPayload": "a.b"},
    {"signedPayload": "bad.segments.here"},
])
def test_apple_undecodable_payload_still_200(client, body):
    response = client.post("/webhooks/apple", json=body)

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Processing failed"}


def test_apple_missing_signed_payload(client):
    response = client.post("/webhooks/apple", json={})

    assert response.status_code == 200
    assert response.json()["success"] is False


def test_apple_non_json_body(client):
    response = client.post("/webhooks/apple", content=b"not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "Processing failed"}


# ============================================
# Stripe
# ============================================

def test_stripe_deleted_end_to_end(client, db_session, make_subscription, stripe_secret):
    subscription = make_subscription(platform="web", stripe_subscription_id="sub_123")
    payload = encode_body(stripe_event("customer.subscription.deleted", {"id": "sub_123", "status": "canceled"}))

    response = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": stripe_signature_header(payload, stripe_secret)},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}

    db_session.expire_all()
    assert db_session.get(Subscription, subscription.id).status == "expired"


def test_stripe_invalid_signature_rejected(client, db_session, make_subscription, stripe_secret):
    subscription = make_subscription(platform="web", stripe_subscription_id="sub_123")
    payload = encode_body(stripe_event("customer.subscription.deleted", {"id": "sub_123"}))

    response = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": stripe_signature_header(payload, "whsec_wrong")},
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}

    db_session.expire_all()
    assert db_session.get(Subscription, subscription.id).status == "active"


def test_stripe_missing_signature(client, stripe_secret):
    payload = encode_body(stripe_event("customer.subscription.deleted", {"id": "sub_123"}))

    response = client.post("/webhooks/stripe", content=payload)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing signature"}


def test_stripe_unverified_when_secret_unset(client, db_session, make_subscription, no_stripe_secret):
    subscription = make_subscription(platform="web", stripe_subscription_id="sub_123")
    payload = encode_body(stripe_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_123"}))

    response = client.post("/webhooks/stripe", content=payload, headers={"stripe-signature": "t=1,v1=unchecked"})

    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.get(Subscription, subscription.id).status == "pending"


def test_stripe_unhandled_event_acknowledged(client, stripe_secret):
    payload = encode_body(stripe_event("customer.created", {"id": "cus_123"}))

    response = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": stripe_signature_header(payload, stripe_secret)},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_stripe_processing_failure_is_500(client, stripe_secret):
    payload = encode_body({"id": "evt_1", "type": "customer.subscription.updated", "data": {"object": {}}})

    response = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": stripe_signature_header(payload, stripe_secret)},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Webhook processing failed"}


def test_stripe_checkout_creates_subscription(client, db_session, test_user, stripe_secret):
    payload = encode_body(stripe_event("checkout.session.completed", {
        "id": "cs_1",
        "mode": "subscription",
        "client_reference_id": test_user.id,
        "subscription": "sub_new",
        "customer": "cus_new",
    }))

    response = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": stripe_signature_header(payload, stripe_secret)},
    )

    assert response.status_code == 200
    subscription = db_session.query(Subscription).filter(Subscription.user_id == test_user.id).one()
    assert subscription.platform == "web"
    assert subscription.stripe_subscription_id == "sub_new"


def test_stripe_checkout_with_null_metadata(client, db_session, test_user, stripe_secret):
    payload = encode_body(stripe_event("checkout.session.completed", {
        "id": "cs_2",
        "mode": "subscription",
        "client_reference_id": test_user.id,
        "subscription": "sub_null_meta",
        "customer": "cus_new",
        "metadata": None,
    }))

    response = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": stripe_signature_header(payload, stripe_secret)},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    subscription = db_session.query(Subscription).filter(Subscription.user_id == test_user.id).one()
    assert subscription.stripe_subscription_id == "sub_null_meta"
