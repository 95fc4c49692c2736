"""
Unit tests for the App Store Server Notification decoder.
"""
from datetime import datetime

import pytest

from subsync.core.errors import InvalidPayload, MalformedEnvelope, NotificationDecodeError
from subsync.schemas.apple_payloads import AppleNotificationType
from subsync.services.apple_notifications import (
    decode_jws_payload,
    decode_notification,
    decode_renewal_info,
    decode_transaction_for,
    decode_transaction_info,
)
from helpers import apple_notification, sign_jws


TRANSACTION = {
    "transactionId": "2000000000000001",
    "originalTransactionId": "1000000123",
    "productId": "com.example.premium.monthly",
    "purchaseDate": 1767225600000,   # 2026-01-01T00:00:00Z
    "expiresDate": 1769904000000,    # 2026-02-01T00:00:00Z
    "type": "Auto-Renewable Subscription",
    "environment": "Sandbox",
}


def test_decode_jws_payload_returns_claims():
    assert decode_jws_payload(sign_jws({"a": 1, "b": "two"})) == {"a": 1, "b": "two"}


@pytest.mark.parametrize("signed", ["", "onlyonesegment", "two.segments", "a.b.c.d"])
def test_wrong_segment_count_is_malformed(signed):
    with pytest.raises(MalformedEnvelope):
        decode_jws_payload(signed)


def test_non_string_is_malformed():
    with pytest.raises(MalformedEnvelope):
        decode_jws_payload(None)


def test_undecodable_segments_are_invalid_payload():
    with pytest.raises(InvalidPayload):
        decode_jws_payload("not.base64!!.json")


def test_decode_errors_share_a_base_class():
    assert issubclass(MalformedEnvelope, NotificationDecodeError)
    assert issubclass(InvalidPayload, NotificationDecodeError)


def test_decode_notification():
    notification = decode_notification(apple_notification("DID_RENEW", TRANSACTION))

    assert notification.notification_type == "DID_RENEW"
    assert notification.known_type == AppleNotificationType.DID_RENEW
    assert notification.notification_uuid == "7e3fb20b-4cdb-47cc-936d-99d65f608138"
    assert notification.data.environment == "Sandbox"
    assert notification.data.signed_transaction_info


def test_unknown_notification_type_still_decodes():
    notification = decode_notification(apple_notification("SOMETHING_NEW", TRANSACTION))

    assert notification.notification_type == "SOMETHING_NEW"
    assert notification.known_type is None


def test_notification_without_type_is_invalid():
    with pytest.raises(InvalidPayload):
        decode_notification(sign_jws({"data": {}}))


def test_decode_transaction_converts_millis():
    transaction = decode_transaction_info(sign_jws(TRANSACTION))

    assert transaction.original_transaction_id == "1000000123"
    assert transaction.product_id == "com.example.premium.monthly"
    assert transaction.purchase_date == datetime(2026, 1, 1)
    assert transaction.expires_date == datetime(2026, 2, 1)


def test_transaction_without_original_id_is_invalid():
    claims = {k: v for k, v in TRANSACTION.items() if k != "originalTransactionId"}
    with pytest.raises(InvalidPayload):
        decode_transaction_info(sign_jws(claims))


def test_numeric_transaction_ids_become_strings():
    transaction = decode_transaction_info(sign_jws(dict(TRANSACTION, originalTransactionId=1000000123)))
    assert transaction.original_transaction_id == "1000000123"


def test_decode_renewal_info():
    renewal = decode_renewal_info(sign_jws({
        "autoRenewProductId": "com.example.premium.yearly",
        "autoRenewStatus": 1,
        "originalTransactionId": "1000000123",
        "renewalDate": 1769904000000,
    }))

    assert renewal.auto_renew_product_id == "com.example.premium.yearly"
    assert renewal.auto_renew_status == 1
    assert renewal.renewal_date == datetime(2026, 2, 1)


def test_decode_transaction_for_requires_signed_transaction():
    notification = decode_notification(apple_notification("DID_RENEW"))
    with pytest.raises(InvalidPayload):
        decode_transaction_for(notification)


def test_nested_malformed_transaction():
    notification = decode_notification(sign_jws({
        "notificationType": "DID_RENEW",
        "data": {"signedTransactionInfo": "garbage"},
    }))
    with pytest.raises(MalformedEnvelope):
        decode_transaction_for(notification)
