"""
Provider status vocabulary -> canonical SubscriptionStatus.

Apple has no status field on its transactions; its canonical status is derived
per notification type in the reconciliation engine instead.
"""
from typing import Dict, Optional

from subsync.db.models.subscription import SubscriptionStatus

STRIPE_STATUS_MAP: Dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIAL,
    "past_due": SubscriptionStatus.PENDING,
    "unpaid": SubscriptionStatus.PENDING,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
    "paused": SubscriptionStatus.CANCELLED,
}


def map_stripe_status(stripe_status: Optional[str]) -> SubscriptionStatus:
    """
    Map a Stripe subscription status to the canonical status.

    Unknown values map to `expired` so a status Stripe introduces later never
    grants access by accident.
    """
    if not stripe_status:
        return SubscriptionStatus.EXPIRED
    return STRIPE_STATUS_MAP.get(stripe_status, SubscriptionStatus.EXPIRED)
