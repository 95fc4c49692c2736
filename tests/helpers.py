"""
Payload builders for Apple and Stripe webhook tests.
"""
import hashlib
import hmac
import json
import time

from jose import jwt


def sign_jws(claims: dict) -> str:
    """Compact JWS carrying `claims`; the decoder never checks the signature."""
    return jwt.encode(claims, "test-signing-key", algorithm="HS256")


def apple_notification(notification_type: str, transaction: dict = None, subtype: str = None,
                       renewal: dict = None) -> str:
    """Signed outer payload wrapping a signed transaction (and renewal info)."""
    data = {"bundleId": "com.example.app", "environment": "Sandbox"}
    if transaction is not None:
        data["signedTransactionInfo"] = sign_jws(transaction)
    if renewal is not None:
        data["signedRenewalInfo"] = sign_jws(renewal)

    payload = {
        "notificationType": notification_type,
        "notificationUUID": "7e3fb20b-4cdb-47cc-936d-99d65f608138",
        "version": "2.0",
        "signedDate": 1767225600000,
        "data": data,
    }
    if subtype:
        payload["subtype"] = subtype
    return sign_jws(payload)


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    }


def stripe_signature_header(payload: bytes, secret: str, timestamp: int = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def encode_body(body: dict) -> bytes:
    return json.dumps(body).encode("utf-8")
