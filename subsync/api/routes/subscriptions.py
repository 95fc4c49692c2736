"""
Subscription endpoints for the mobile and web clients.

These read and write the local store only; provider state arrives through the
webhook endpoints.
"""
import logging

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from subsync.core.auth_dependency import get_db, get_current_user
from subsync.core.errors import SubscriptionNotFound
from subsync.core.product_catalog import expiry_from_product
from subsync.core.rate_limit import limit_receipt_submissions
from subsync.core.timeutils import utcnow
from subsync.db.models.subscription import Platform, SubscriptionStatus
from subsync.db.models.user import User
from subsync.schemas.subscription import (
    SubscriptionDetails,
    SubscriptionResponse,
    VerifyReceiptRequest,
)
from subsync.services import subscription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def _details(subscription) -> Optional[SubscriptionDetails]:
    return SubscriptionDetails.model_validate(subscription) if subscription else None


@router.get("", response_model=SubscriptionResponse)
def get_subscription(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Current subscription for the authenticated user, or null."""
    subscription = subscription_service.get_subscription(db, user.id)
    return SubscriptionResponse(data=_details(subscription))


@router.post(
    "/verify-receipt",
    response_model=SubscriptionResponse,
    dependencies=[Depends(limit_receipt_submissions)],
)
def verify_receipt(
    body: VerifyReceiptRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Store a client purchase proof and activate the subscription from it.

    The receipt is trusted as submitted: no App Store Server API call is made
    here, and webhook notifications remain the authoritative path.
    """
    now = utcnow()
    expires_at = expiry_from_product(body.product_id, now)
    original_transaction_id = body.original_transaction_id or body.transaction_id

    subscription_service.store_receipt(
        db,
        user_id=user.id,
        transaction_id=body.transaction_id,
        product_id=body.product_id,
        receipt_data=body.receipt_data,
        original_transaction_id=original_transaction_id,
        environment=body.environment,
        purchase_date=now,
        expires_date=expires_at,
    )

    subscription = subscription_service.create_subscription(
        db,
        user_id=user.id,
        product_id=body.product_id,
        platform=Platform.IOS.value,
        status=SubscriptionStatus.ACTIVE.value,
        original_transaction_id=original_transaction_id,
        current_period_start=now,
        current_period_end=expires_at,
        expires_at=expires_at,
    )

    subscription_service.mark_receipt_verified(db, body.transaction_id)

    logger.info(
        f"Receipt activated subscription: user_id={user.id}, product_id={body.product_id}, "
        f"expires_at={expires_at.isoformat()}"
    )
    return SubscriptionResponse(data=_details(subscription))


@router.post("/restore", response_model=SubscriptionResponse)
def restore_purchases(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Return the stored subscription as-is; providers are not re-queried."""
    subscription = subscription_service.get_subscription(db, user.id)

    if not subscription:
        return SubscriptionResponse(data=None, message="No previous purchases found")

    message = (
        "Subscription restored successfully"
        if subscription.is_active
        else "Previous subscription found but expired"
    )
    return SubscriptionResponse(data=_details(subscription), message=message)


@router.post("/cancel", response_model=SubscriptionResponse)
def cancel_subscription(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        subscription = subscription_service.cancel_subscription(db, user.id)
    except SubscriptionNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")

    return SubscriptionResponse(
        data=_details(subscription),
        message="Subscription cancelled. Access continues until the end of the billing period.",
    )
