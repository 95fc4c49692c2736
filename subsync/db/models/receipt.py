"""
Receipt model - audit log of purchase proofs submitted by clients.
"""
import enum
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey

from subsync.core.timeutils import utcnow
from subsync.db.base import Base


class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class Receipt(Base):
    """
    Raw proof-of-purchase record.

    Created pending, moved to verified once trusted, otherwise never mutated.
    `original_transaction_id` links to a subscription family but is not
    enforced as a foreign key.
    """
    __tablename__ = "receipts"

    id = Column(String(36), primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_id = Column(String, unique=True, nullable=False, index=True)
    original_transaction_id = Column(String, nullable=True)
    product_id = Column(String, nullable=False)
    purchase_date = Column(DateTime, nullable=False, default=utcnow)
    expires_date = Column(DateTime, nullable=True)
    environment = Column(String(16), nullable=False, default="production")  # sandbox | production
    verification_status = Column(String(16), nullable=False, default=VerificationStatus.PENDING.value)
    raw_receipt = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Receipt(transaction_id={self.transaction_id}, status='{self.verification_status}')>"
