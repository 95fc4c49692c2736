"""
Reconciliation engine.

Applies decoded Apple and Stripe notifications to the stored subscription.
Delivery is at-least-once and unordered, so every transition overwrites
absolute values taken from the event itself; replaying an event converges on
the same record. Unknown event types and unknown subscription keys are
successful no-ops, never errors. Storage errors propagate to the caller.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, NamedTuple, Optional, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from subsync.core.config import RECONCILE_MAX_ATTEMPTS
from subsync.core.errors import ConcurrentUpdateError, InvalidPayload
from subsync.core.timeutils import utcnow, from_epoch_seconds
from subsync.db.models.subscription import Subscription, SubscriptionStatus, Platform
from subsync.db.models.user import User
from subsync.schemas.apple_payloads import (
    AppleNotification,
    AppleNotificationType,
    AppleRenewalInfo,
    AppleSubtype,
    AppleTransactionInfo,
)
from subsync.schemas.stripe_payloads import (
    StripeCheckoutSession,
    StripeEvent,
    StripeEventType,
    StripeInvoice,
    StripeSubscriptionObject,
)
from subsync.services import subscription_service
from subsync.services.apple_notifications import decode_renewal_info, decode_transaction_for
from subsync.services.status_mapping import map_stripe_status

logger = logging.getLogger(__name__)

Changes = Dict[str, Any]

# Product id stored on checkout until a customer.subscription.* event names the real product
CHECKOUT_PLACEHOLDER_PRODUCT = "stripe_subscription"


class Outcome(str, enum.Enum):
    APPLIED = "applied"
    CREATED = "created"
    NOT_FOUND = "not_found"
    IGNORED = "ignored"
    ACKNOWLEDGED = "acknowledged"


@dataclass
class ReconcileResult:
    provider: str
    event_type: str
    outcome: Outcome
    subscription_id: Optional[str] = None


@dataclass
class AppleEventContext:
    notification: AppleNotification
    transaction: AppleTransactionInfo
    renewal: Optional[AppleRenewalInfo]
    now: datetime


# ============================================
# Apple transitions
# ============================================

def _apple_activate(ctx: AppleEventContext) -> Changes:
    tx = ctx.transaction
    return {
        "status": SubscriptionStatus.ACTIVE,
        "current_period_start": tx.purchase_date,
        "current_period_end": tx.expires_date,
        "expires_at": tx.expires_date,
    }


def _apple_subscribed(ctx: AppleEventContext) -> Changes:
    changes = _apple_activate(ctx)
    changes["product_id"] = ctx.transaction.product_id
    return changes


def _apple_expire(ctx: AppleEventContext) -> Changes:
    return {"status": SubscriptionStatus.EXPIRED}


def _apple_failed_to_renew(ctx: AppleEventContext) -> Optional[Changes]:
    # Entitlement holds through grace period and billing retry; EXPIRED or
    # GRACE_PERIOD_EXPIRED ends it.
    if ctx.notification.subtype == AppleSubtype.GRACE_PERIOD.value:
        logger.info(f"Subscription in grace period: original_transaction_id={ctx.transaction.original_transaction_id}")
    else:
        logger.info(f"Subscription in billing retry: original_transaction_id={ctx.transaction.original_transaction_id}")
    return None


def _apple_renewal_status(ctx: AppleEventContext) -> Optional[Changes]:
    if ctx.notification.subtype == AppleSubtype.AUTO_RENEW_DISABLED.value:
        # Still entitled until expiry; only record the opt-out
        return {"cancelled_at": ctx.now}
    return None


def _apple_renewal_pref(ctx: AppleEventContext) -> Optional[Changes]:
    if ctx.renewal and ctx.renewal.auto_renew_product_id:
        logger.info(
            f"Renewal preference changed: original_transaction_id={ctx.transaction.original_transaction_id}, "
            f"next_product_id={ctx.renewal.auto_renew_product_id}"
        )
    return None


def _apple_renewal_extended(ctx: AppleEventContext) -> Optional[Changes]:
    if ctx.transaction.expires_date is None:
        return None
    return {"expires_at": ctx.transaction.expires_date}


def _apple_informational(ctx: AppleEventContext) -> Optional[Changes]:
    logger.info(
        f"Apple {ctx.notification.notification_type} is informational: "
        f"original_transaction_id={ctx.transaction.original_transaction_id}, product_id={ctx.transaction.product_id}"
    )
    return None


APPLE_TRANSITIONS: Dict[AppleNotificationType, Callable[[AppleEventContext], Optional[Changes]]] = {
    AppleNotificationType.SUBSCRIBED: _apple_subscribed,
    AppleNotificationType.DID_RENEW: _apple_activate,
    AppleNotificationType.EXPIRED: _apple_expire,
    AppleNotificationType.GRACE_PERIOD_EXPIRED: _apple_expire,
    AppleNotificationType.REFUND: _apple_expire,
    AppleNotificationType.REVOKE: _apple_expire,
    AppleNotificationType.DID_FAIL_TO_RENEW: _apple_failed_to_renew,
    AppleNotificationType.DID_CHANGE_RENEWAL_STATUS: _apple_renewal_status,
    AppleNotificationType.DID_CHANGE_RENEWAL_PREF: _apple_renewal_pref,
    AppleNotificationType.RENEWAL_EXTENDED: _apple_renewal_extended,
    AppleNotificationType.OFFER_REDEEMED: _apple_informational,
    AppleNotificationType.PRICE_INCREASE: _apple_informational,
    AppleNotificationType.CONSUMPTION_REQUEST: _apple_informational,
    AppleNotificationType.REFUND_DECLINED: _apple_informational,
    AppleNotificationType.REFUND_REVERSED: _apple_informational,
    AppleNotificationType.RENEWAL_EXTENSION: _apple_informational,
}

# Acknowledged without decoding the transaction or touching storage
APPLE_ACKNOWLEDGE_ONLY: FrozenSet[AppleNotificationType] = frozenset({AppleNotificationType.TEST})

# Never write; a notification routed here without signedTransactionInfo
# (e.g. RENEWAL_EXTENSION with subtype SUMMARY) is ignored undecoded
APPLE_INFORMATIONAL_TRANSITIONS = frozenset({
    _apple_failed_to_renew,
    _apple_renewal_pref,
    _apple_informational,
})


# ============================================
# Stripe transitions
# ============================================

def _stripe_subscription_changed(sub: StripeSubscriptionObject, now: datetime) -> Changes:
    return {
        "status": map_stripe_status(sub.status),
        "product_id": sub.product_id,
        "current_period_start": sub.period_start,
        "current_period_end": sub.period_end,
        "expires_at": sub.period_end,
        "cancelled_at": from_epoch_seconds(sub.canceled_at),
    }


def _set_status(status: SubscriptionStatus) -> Callable[[Any, datetime], Changes]:
    def transition(obj: Any, now: datetime) -> Changes:
        return {"status": status}
    return transition


def _stripe_trial_will_end(sub: StripeSubscriptionObject, now: datetime) -> Optional[Changes]:
    logger.info(f"Trial ending soon: stripe_subscription_id={sub.id}, trial_end={sub.trial_end}")
    return None


class StripeRoute(NamedTuple):
    model: Type[BaseModel]
    lookup_key: Callable[[Any], Optional[str]]
    transition: Callable[[Any, datetime], Optional[Changes]]


def _subscription_key(sub: StripeSubscriptionObject) -> Optional[str]:
    return sub.id


def _invoice_key(invoice: StripeInvoice) -> Optional[str]:
    return invoice.subscription_id


STRIPE_TRANSITIONS: Dict[StripeEventType, StripeRoute] = {
    StripeEventType.SUBSCRIPTION_CREATED: StripeRoute(StripeSubscriptionObject, _subscription_key, _stripe_subscription_changed),
    StripeEventType.SUBSCRIPTION_UPDATED: StripeRoute(StripeSubscriptionObject, _subscription_key, _stripe_subscription_changed),
    StripeEventType.SUBSCRIPTION_DELETED: StripeRoute(StripeSubscriptionObject, _subscription_key, _set_status(SubscriptionStatus.EXPIRED)),
    StripeEventType.SUBSCRIPTION_PAUSED: StripeRoute(StripeSubscriptionObject, _subscription_key, _set_status(SubscriptionStatus.CANCELLED)),
    StripeEventType.SUBSCRIPTION_RESUMED: StripeRoute(StripeSubscriptionObject, _subscription_key, _set_status(SubscriptionStatus.ACTIVE)),
    StripeEventType.SUBSCRIPTION_TRIAL_WILL_END: StripeRoute(StripeSubscriptionObject, _subscription_key, _stripe_trial_will_end),
    StripeEventType.INVOICE_PAID: StripeRoute(StripeInvoice, _invoice_key, _set_status(SubscriptionStatus.ACTIVE)),
    StripeEventType.INVOICE_PAYMENT_FAILED: StripeRoute(StripeInvoice, _invoice_key, _set_status(SubscriptionStatus.PENDING)),
}

# The only event type allowed to create a subscription
STRIPE_CREATING: FrozenSet[StripeEventType] = frozenset({StripeEventType.CHECKOUT_SESSION_COMPLETED})


# ============================================
# Locate, then write with optimistic retry
# ============================================

def _apply_changes(
    db: Session,
    provider: str,
    event_type: str,
    key: Optional[str],
    locate: Callable[[Session, str], Optional[Subscription]],
    compute: Callable[[], Optional[Changes]],
) -> ReconcileResult:
    subscription = locate(db, key) if key else None
    if subscription is None:
        logger.info(f"{provider} {event_type}: no subscription for key={key}, ignoring")
        return ReconcileResult(provider, event_type, Outcome.NOT_FOUND)

    changes = compute()
    if not changes:
        return ReconcileResult(provider, event_type, Outcome.IGNORED, subscription.id)

    for attempt in range(1, RECONCILE_MAX_ATTEMPTS + 1):
        try:
            updated = subscription_service.update_subscription(db, subscription.id, changes)
        except StaleDataError:
            db.rollback()
            logger.warning(
                f"{provider} {event_type}: concurrent write on subscription_id={subscription.id} "
                f"(attempt {attempt}/{RECONCILE_MAX_ATTEMPTS})"
            )
            subscription = locate(db, key)
            if subscription is None:
                return ReconcileResult(provider, event_type, Outcome.NOT_FOUND)
            continue

        logger.info(
            f"{provider} {event_type} applied: subscription_id={updated.id}, user_id={updated.user_id}, "
            f"status={updated.status}"
        )
        return ReconcileResult(provider, event_type, Outcome.APPLIED, updated.id)

    raise ConcurrentUpdateError(
        f"{provider} {event_type}: gave up on subscription key={key} after {RECONCILE_MAX_ATTEMPTS} attempts"
    )


def reconcile_apple_notification(
    db: Session,
    notification: AppleNotification,
    now: Optional[datetime] = None
) -> ReconcileResult:
    """
    Apply an App Store notification to the subscription it references.

    A notification for an original transaction id with no stored subscription
    is acknowledged without creating one; the receipt submission flow owns
    creation on iOS. Unrecognized types are ignored before any nested decode.

    Raises:
        InvalidPayload / MalformedEnvelope: nested transaction or renewal info unreadable
        ConcurrentUpdateError: optimistic write retries exhausted
    """
    now = now or utcnow()
    event_type = notification.notification_type
    known_type = notification.known_type

    logger.info(
        f"Apple notification received: type={event_type}, subtype={notification.subtype}, "
        f"uuid={notification.notification_uuid}"
    )

    if known_type in APPLE_ACKNOWLEDGE_ONLY:
        logger.info(f"Apple {event_type} notification acknowledged")
        return ReconcileResult("apple", event_type, Outcome.ACKNOWLEDGED)

    transition = APPLE_TRANSITIONS.get(known_type) if known_type else None
    if transition is None:
        logger.warning(f"Unhandled Apple notification type: {event_type}")
        return ReconcileResult("apple", event_type, Outcome.IGNORED)

    has_transaction = bool(notification.data and notification.data.signed_transaction_info)
    if not has_transaction and transition in APPLE_INFORMATIONAL_TRANSITIONS:
        logger.info(f"Apple {event_type} (subtype={notification.subtype}) carries no transaction, ignoring")
        return ReconcileResult("apple", event_type, Outcome.IGNORED)

    transaction = decode_transaction_for(notification)
    renewal = None
    if notification.data and notification.data.signed_renewal_info:
        renewal = decode_renewal_info(notification.data.signed_renewal_info)

    ctx = AppleEventContext(notification=notification, transaction=transaction, renewal=renewal, now=now)

    return _apply_changes(
        db,
        provider="apple",
        event_type=event_type,
        key=transaction.original_transaction_id,
        locate=subscription_service.get_subscription_by_transaction_id,
        compute=lambda: transition(ctx),
    )


def _read_object(event: StripeEvent, model: Type[BaseModel]) -> Any:
    try:
        return model.model_validate(event.data.object)
    except ValidationError as e:
        raise InvalidPayload(f"{event.type} object is not a valid {model.__name__}: {e.error_count()} error(s)") from e


def _complete_checkout(db: Session, event: StripeEvent) -> ReconcileResult:
    session = _read_object(event, StripeCheckoutSession)

    if session.mode != "subscription":
        logger.info(f"Ignoring checkout session {session.id} with mode={session.mode}")
        return ReconcileResult("stripe", event.type, Outcome.IGNORED)

    user_id = session.user_id
    if not user_id:
        logger.error(f"No user id on checkout session {session.id}")
        return ReconcileResult("stripe", event.type, Outcome.IGNORED)

    if db.get(User, user_id) is None:
        logger.warning(f"Checkout session {session.id} references unknown user_id={user_id}")
        return ReconcileResult("stripe", event.type, Outcome.IGNORED)

    # A redelivered checkout must not clobber the product a later event filled in
    product_id = CHECKOUT_PLACEHOLDER_PRODUCT
    existing = subscription_service.get_subscription(db, user_id)
    if existing and existing.stripe_subscription_id == session.subscription_id:
        product_id = existing.product_id

    subscription = subscription_service.create_subscription(
        db,
        user_id=user_id,
        product_id=product_id,
        platform=Platform.WEB.value,
        status=SubscriptionStatus.ACTIVE.value,
        stripe_subscription_id=session.subscription_id,
        stripe_customer_id=session.customer_id,
    )
    logger.info(
        f"Checkout completed: user_id={user_id}, subscription_id={subscription.id}, "
        f"stripe_subscription_id={session.subscription_id}"
    )
    return ReconcileResult("stripe", event.type, Outcome.CREATED, subscription.id)


def reconcile_stripe_event(
    db: Session,
    event: StripeEvent,
    now: Optional[datetime] = None
) -> ReconcileResult:
    """
    Apply a Stripe event to the subscription it references.

    checkout.session.completed is the only event that creates a record; every
    other type referencing an unknown stripe_subscription_id is ignored.

    Raises:
        InvalidPayload: data.object does not match the shape its type implies
        ConcurrentUpdateError: optimistic write retries exhausted
    """
    now = now or utcnow()
    known_type = event.known_type

    logger.info(f"Stripe event received: type={event.type}, id={event.id}")

    if known_type in STRIPE_CREATING:
        return _complete_checkout(db, event)

    route = STRIPE_TRANSITIONS.get(known_type) if known_type else None
    if route is None:
        logger.info(f"Unhandled Stripe event type: {event.type}")
        return ReconcileResult("stripe", event.type, Outcome.IGNORED)

    obj = _read_object(event, route.model)

    return _apply_changes(
        db,
        provider="stripe",
        event_type=event.type,
        key=route.lookup_key(obj),
        locate=subscription_service.get_subscription_by_stripe_id,
        compute=lambda: route.transition(obj, now),
    )
