"""
Decoder for App Store Server Notifications V2.

Apple wraps the notification, and inside it the transaction and renewal info,
in JWS compact strings (header.payload.signature). The payload segment is read
without verifying the x5c certificate chain; callers trust the transport.
"""
import logging
from typing import Any, Dict, Type, TypeVar

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from subsync.core.errors import MalformedEnvelope, InvalidPayload
from subsync.schemas.apple_payloads import (
    AppleNotification,
    AppleTransactionInfo,
    AppleRenewalInfo,
)

logger = logging.getLogger(__name__)

JWS_SEGMENTS = 3

ModelT = TypeVar("ModelT", bound=BaseModel)


def decode_jws_payload(signed: str) -> Dict[str, Any]:
    """
    Return the JSON object carried in the middle segment of a JWS compact string.

    Raises:
        MalformedEnvelope: not a string, or not exactly three segments
        InvalidPayload: segments are not base64url JSON objects
    """
    if not isinstance(signed, str) or not signed:
        raise MalformedEnvelope("Signed payload is missing")

    segments = signed.split(".")
    if len(segments) != JWS_SEGMENTS:
        raise MalformedEnvelope(f"Expected {JWS_SEGMENTS} JWS segments, got {len(segments)}")

    try:
        return jwt.get_unverified_claims(signed)
    except JWTError as e:
        raise InvalidPayload(f"Undecodable JWS payload: {e}") from e


def _decode_as(signed: str, model: Type[ModelT]) -> ModelT:
    claims = decode_jws_payload(signed)
    try:
        return model.model_validate(claims)
    except ValidationError as e:
        raise InvalidPayload(f"{model.__name__} payload rejected: {e.error_count()} error(s)") from e


def decode_notification(signed_payload: str) -> AppleNotification:
    """Decode the outer `signedPayload` of a notification."""
    return _decode_as(signed_payload, AppleNotification)


def decode_transaction_info(signed_transaction_info: str) -> AppleTransactionInfo:
    return _decode_as(signed_transaction_info, AppleTransactionInfo)


def decode_renewal_info(signed_renewal_info: str) -> AppleRenewalInfo:
    return _decode_as(signed_renewal_info, AppleRenewalInfo)


def decode_transaction_for(notification: AppleNotification) -> AppleTransactionInfo:
    """Decode the transaction nested in a notification; every non-TEST type carries one."""
    data = notification.data
    if data is None or not data.signed_transaction_info:
        raise InvalidPayload(
            f"{notification.notification_type} notification has no signedTransactionInfo"
        )
    return decode_transaction_info(data.signed_transaction_info)
