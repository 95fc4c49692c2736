"""
Pydantic schemas for the subscription endpoints.

Field names go over the wire in camelCase, the shape the mobile client reads.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class SubscriptionDetails(_CamelModel):
    """Current subscription as seen by the client."""
    id: str
    product_id: str
    platform: str
    status: str
    current_period_start: datetime
    current_period_end: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool

    class Config:
        json_schema_extra = {
            "example": {
                "id": "5f0c8a7e2b9d4c1e9a6b3d2f1e0c9b8a",
                "productId": "com.example.premium.monthly",
                "platform": "ios",
                "status": "active",
                "currentPeriodStart": "2026-10-01T12:00:00",
                "currentPeriodEnd": "2026-11-01T12:00:00",
                "cancelledAt": None,
                "expiresAt": "2026-11-01T12:00:00",
                "isActive": True
            }
        }


class SubscriptionResponse(_CamelModel):
    success: bool = True
    data: Optional[SubscriptionDetails] = None
    message: Optional[str] = None


class VerifyReceiptRequest(_CamelModel):
    """Proof of purchase submitted by the iOS client after a StoreKit purchase."""
    receipt_data: str = Field(..., min_length=1, description="Signed transaction or receipt blob")
    transaction_id: str = Field(..., min_length=1, description="StoreKit transaction id")
    product_id: str = Field(..., min_length=1, description="Purchased product id")
    original_transaction_id: Optional[str] = Field(
        default=None,
        description="Subscription lineage id; defaults to transactionId for a first purchase"
    )
    environment: str = Field(default="production", pattern="^(sandbox|production)$")

    class Config:
        json_schema_extra = {
            "example": {
                "receiptData": "eyJhbGciOiJFUzI1NiJ9...",
                "transactionId": "2000000123456789",
                "productId": "com.example.premium.yearly"
            }
        }
