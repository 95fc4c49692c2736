"""
Stripe webhook endpoint.

Failures answer non-2xx so Stripe retries them. A missing signature header
gets 400 and a bad signature 401. Processing errors get 500.
"""
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from subsync.core import config
from subsync.core.auth_dependency import get_db
from subsync.core.errors import SignatureInvalid
from subsync.services.reconciliation import reconcile_stripe_event
from subsync.services.stripe_events import parse_event, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/stripe", tags=["Webhooks"])


@router.post("")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    if not stripe_signature:
        return JSONResponse(status_code=400, content={"error": "Missing signature"})

    payload = await request.body()

    if config.STRIPE_WEBHOOK_SECRET:
        try:
            verify_signature(payload, stripe_signature, config.STRIPE_WEBHOOK_SECRET)
        except SignatureInvalid as e:
            logger.error(f"Invalid Stripe webhook signature: {e}")
            return JSONResponse(status_code=401, content={"error": "Invalid signature"})
    else:
        logger.warning("STRIPE_WEBHOOK_SECRET not configured - skipping signature verification")

    try:
        event = parse_event(payload)
        result = reconcile_stripe_event(db, event)
    except Exception:
        db.rollback()
        logger.exception("Error processing Stripe webhook")
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    logger.info(f"Stripe webhook processed: type={result.event_type}, id={event.id}, outcome={result.outcome.value}")
    return {"received": True}
