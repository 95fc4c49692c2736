"""
Database models module.

Importing this package registers every table on Base.metadata before
table creation or migration autogeneration.
"""
from subsync.db.models.user import User
from subsync.db.models.subscription import Subscription, SubscriptionStatus, Platform
from subsync.db.models.receipt import Receipt, VerificationStatus

__all__ = [
    "User",
    "Subscription",
    "SubscriptionStatus",
    "Platform",
    "Receipt",
    "VerificationStatus",
]
