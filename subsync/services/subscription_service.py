"""
Subscription record store.

Read and write operations for the one-subscription-per-user table and the
receipt audit log. Writes go through `update_subscription`, which relies on the
model's version column: a concurrent writer surfaces as StaleDataError.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from subsync.core.errors import SubscriptionNotFound
from subsync.core.timeutils import utcnow
from subsync.db.models.receipt import Receipt, VerificationStatus
from subsync.db.models.subscription import Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    "product_id",
    "platform",
    "status",
    "original_transaction_id",
    "stripe_subscription_id",
    "stripe_customer_id",
    "current_period_start",
    "current_period_end",
    "expires_at",
    "cancelled_at",
})


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def get_subscription(db: Session, user_id: str) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def get_subscription_by_transaction_id(db: Session, original_transaction_id: str) -> Optional[Subscription]:
    """Look up by Apple's original transaction id (constant across renewals)."""
    if not original_transaction_id:
        return None
    return db.query(Subscription).filter(
        Subscription.original_transaction_id == original_transaction_id
    ).first()


def get_subscription_by_stripe_id(db: Session, stripe_subscription_id: str) -> Optional[Subscription]:
    if not stripe_subscription_id:
        return None
    return db.query(Subscription).filter(
        Subscription.stripe_subscription_id == stripe_subscription_id
    ).first()


def update_subscription(db: Session, subscription_id: str, changes: Dict[str, Any]) -> Subscription:
    """
    Overwrite fields on a subscription and stamp updated_at.
    
    Args:
        db: Database session
        subscription_id: Primary key
        changes: Field -> absolute value; None values are skipped
        
    Returns:
        Refreshed subscription
        
    Raises:
        SubscriptionNotFound: no row with that id
        sqlalchemy.orm.exc.StaleDataError: row changed since it was loaded
    """
    subscription = db.get(Subscription, subscription_id)
    if not subscription:
        raise SubscriptionNotFound(subscription_id)

    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update subscription fields: {sorted(unknown)}")

    for field, value in changes.items():
        if value is not None:
            setattr(subscription, field, _enum_value(value))
    subscription.updated_at = utcnow()

    db.commit()
    db.refresh(subscription)
    return subscription


def create_subscription(
    db: Session,
    user_id: str,
    product_id: str,
    platform: str,
    status: str,
    original_transaction_id: Optional[str] = None,
    stripe_subscription_id: Optional[str] = None,
    stripe_customer_id: Optional[str] = None,
    current_period_start: Optional[datetime] = None,
    current_period_end: Optional[datetime] = None,
    expires_at: Optional[datetime] = None,
) -> Subscription:
    """
    Create the user's subscription, or update it in place when one exists.

    Two concurrent first-time creates for the same user can still both insert;
    there is no unique constraint on user_id.
    """
    fields = {
        "product_id": product_id,
        "platform": platform,
        "status": status,
        "original_transaction_id": original_transaction_id,
        "stripe_subscription_id": stripe_subscription_id,
        "stripe_customer_id": stripe_customer_id,
        "current_period_start": current_period_start,
        "current_period_end": current_period_end,
        "expires_at": expires_at,
    }

    existing = get_subscription(db, user_id)
    if existing:
        subscription = update_subscription(db, existing.id, fields)
        logger.info(f"Subscription updated in place: user_id={user_id}, subscription_id={subscription.id}")
        return subscription

    now = utcnow()
    subscription = Subscription(
        user_id=user_id,
        created_at=now,
        updated_at=now,
        **{k: _enum_value(v) for k, v in fields.items()},
    )
    if subscription.current_period_start is None:
        subscription.current_period_start = now
    db.add(subscription)
    db.commit()
    db.refresh(subscription)

    logger.info(
        f"Subscription created: user_id={user_id}, subscription_id={subscription.id}, "
        f"platform={subscription.platform}, status={subscription.status}"
    )
    return subscription


def cancel_subscription(db: Session, user_id: str) -> Subscription:
    """User-initiated cancel: status=cancelled, cancelled_at=now."""
    subscription = get_subscription(db, user_id)
    if not subscription:
        raise SubscriptionNotFound(user_id)

    subscription = update_subscription(db, subscription.id, {
        "status": SubscriptionStatus.CANCELLED,
        "cancelled_at": utcnow(),
    })
    logger.info(f"Subscription cancelled by user: user_id={user_id}, subscription_id={subscription.id}")
    return subscription


def store_receipt(
    db: Session,
    user_id: str,
    transaction_id: str,
    product_id: str,
    receipt_data: Optional[str] = None,
    original_transaction_id: Optional[str] = None,
    environment: str = "production",
    purchase_date: Optional[datetime] = None,
    expires_date: Optional[datetime] = None,
) -> Receipt:
    """
    Record a client-submitted proof of purchase as pending.

    Receipts are immutable evidence: resubmitting a known transaction id
    returns the stored receipt unchanged.
    """
    existing = db.query(Receipt).filter(Receipt.transaction_id == transaction_id).first()
    if existing:
        logger.info(f"Receipt already stored: transaction_id={transaction_id}")
        return existing

    receipt = Receipt(
        user_id=user_id,
        transaction_id=transaction_id,
        original_transaction_id=original_transaction_id,
        product_id=product_id,
        purchase_date=purchase_date or utcnow(),
        expires_date=expires_date,
        environment=environment,
        verification_status=VerificationStatus.PENDING.value,
        raw_receipt=receipt_data,
    )
    db.add(receipt)
    db.commit()
    db.refresh(receipt)

    logger.info(f"Receipt stored: user_id={user_id}, transaction_id={transaction_id}, product_id={product_id}")
    return receipt


def mark_receipt_verified(db: Session, transaction_id: str) -> Optional[Receipt]:
    """pending -> verified. Already-decided receipts are left as they are."""
    receipt = db.query(Receipt).filter(Receipt.transaction_id == transaction_id).first()
    if not receipt:
        logger.warning(f"mark_receipt_verified: no receipt for transaction_id={transaction_id}")
        return None

    if receipt.verification_status == VerificationStatus.PENDING.value:
        receipt.verification_status = VerificationStatus.VERIFIED.value
        db.commit()
        db.refresh(receipt)
    return receipt
