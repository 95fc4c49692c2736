"""
App Store Server Notifications V2 endpoint.

Always answers 200; failures are logged and reported in the body only.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from subsync.core.auth_dependency import get_db
from subsync.services.apple_notifications import decode_notification
from subsync.services.reconciliation import reconcile_apple_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/apple", tags=["Webhooks"])


@router.post("")
async def apple_webhook(request: Request, db: Session = Depends(get_db)):
    try:
        body = await request.json()
        signed_payload = body.get("signedPayload") if isinstance(body, dict) else None
        if not signed_payload:
            logger.error("Apple webhook without signedPayload")
            return {"success": False, "error": "Processing failed"}

        notification = decode_notification(signed_payload)
        result = reconcile_apple_notification(db, notification)
        logger.info(f"Apple webhook processed: type={result.event_type}, outcome={result.outcome.value}")
        return {"success": True}

    except Exception:
        db.rollback()
        logger.exception("Error processing Apple webhook")
        return {"success": False, "error": "Processing failed"}
