"""
Subscription model: one canonical entitlement record per user.
"""
import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from subsync.core.timeutils import utcnow, to_naive_utc
from subsync.db.base import Base


class SubscriptionStatus(str, enum.Enum):
    """Canonical status shared by both payment providers."""
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    TRIAL = "trial"
    PENDING = "pending"


class Platform(str, enum.Enum):
    IOS = "ios"
    WEB = "web"


def is_active(status: Optional[str], expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Entitlement check.

    True only for `active` status with no known expiry or an expiry strictly
    after `now`; a subscription expiring exactly at `now` is not active.
    """
    if status != SubscriptionStatus.ACTIVE.value:
        return False
    if expires_at is None:
        return True
    now = to_naive_utc(now) if now is not None else utcnow()
    return to_naive_utc(expires_at) > now


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: uuid.uuid4().hex)
    # At most one row per user; enforced by create-or-update, not a constraint
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    product_id = Column(String, nullable=False)
    platform = Column(String(8), nullable=False)  # ios | web
    status = Column(String(16), nullable=False, default=SubscriptionStatus.PENDING.value)

    # Provider lookup keys
    original_transaction_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    stripe_customer_id = Column(String, nullable=True)

    current_period_start = Column(DateTime, nullable=False, default=utcnow)
    current_period_end = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Optimistic concurrency: UPDATE ... WHERE version = :seen
    version = Column(Integer, nullable=False)

    user = relationship("User", backref="subscriptions")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return is_active(self.status, self.expires_at)

    def __repr__(self):
        return f"<Subscription(id={self.id}, user_id={self.user_id}, status='{self.status}')>"
