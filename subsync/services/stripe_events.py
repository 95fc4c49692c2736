"""
Stripe webhook verification and event decoding.
"""
import json
import logging
from typing import Optional

import stripe
from pydantic import ValidationError

from subsync.core.config import STRIPE_WEBHOOK_TOLERANCE
from subsync.core.errors import InvalidPayload, SignatureInvalid
from subsync.schemas.stripe_payloads import StripeEvent

logger = logging.getLogger(__name__)


def verify_signature(
    payload: bytes,
    signature: str,
    secret: str,
    tolerance: Optional[int] = None
) -> None:
    """
    Verify a `stripe-signature` header against the raw request body.

    The header is `t=<unix seconds>,v1=<hex>[,v1=<hex>...]`. The expected
    signature is HMAC-SHA256(secret, "<t>.<body>"); any matching v1 value is
    accepted (compared in constant time) as long as `t` is no more than
    `tolerance` seconds in the past.
    
    Args:
        payload: Raw request body bytes, exactly as received
        signature: stripe-signature header value
        secret: Webhook endpoint signing secret
        tolerance: Replay window in seconds (defaults to STRIPE_WEBHOOK_TOLERANCE)
    
    Raises:
        SignatureInvalid: header missing parts, stale, or no signature matches
    """
    if tolerance is None:
        tolerance = STRIPE_WEBHOOK_TOLERANCE

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SignatureInvalid("Webhook body is not valid UTF-8") from e

    try:
        stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise SignatureInvalid(str(e)) from e


def parse_event(payload: bytes) -> StripeEvent:
    """
    Parse a raw webhook body into a StripeEvent.

    Raises:
        InvalidPayload: body is not JSON or lacks id/type/data.object
    """
    try:
        raw = json.loads(payload)
    except ValueError as e:
        raise InvalidPayload(f"Stripe event is not valid JSON: {e}") from e

    try:
        return StripeEvent.model_validate(raw)
    except ValidationError as e:
        raise InvalidPayload(f"Stripe event rejected: {e.error_count()} error(s)") from e
