"""
Pydantic models for App Store Server Notifications V2 payloads.

Field names follow Apple's camelCase JSON through aliases; epoch-millisecond
timestamps are converted to naive-UTC datetimes.
"""
import enum
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from subsync.core.timeutils import from_epoch_millis


class AppleNotificationType(str, enum.Enum):
    CONSUMPTION_REQUEST = "CONSUMPTION_REQUEST"
    DID_CHANGE_RENEWAL_PREF = "DID_CHANGE_RENEWAL_PREF"
    DID_CHANGE_RENEWAL_STATUS = "DID_CHANGE_RENEWAL_STATUS"
    DID_FAIL_TO_RENEW = "DID_FAIL_TO_RENEW"
    DID_RENEW = "DID_RENEW"
    EXPIRED = "EXPIRED"
    GRACE_PERIOD_EXPIRED = "GRACE_PERIOD_EXPIRED"
    OFFER_REDEEMED = "OFFER_REDEEMED"
    PRICE_INCREASE = "PRICE_INCREASE"
    REFUND = "REFUND"
    REFUND_DECLINED = "REFUND_DECLINED"
    REFUND_REVERSED = "REFUND_REVERSED"
    RENEWAL_EXTENDED = "RENEWAL_EXTENDED"
    RENEWAL_EXTENSION = "RENEWAL_EXTENSION"
    REVOKE = "REVOKE"
    SUBSCRIBED = "SUBSCRIBED"
    TEST = "TEST"


class AppleSubtype(str, enum.Enum):
    AUTO_RENEW_ENABLED = "AUTO_RENEW_ENABLED"
    AUTO_RENEW_DISABLED = "AUTO_RENEW_DISABLED"
    GRACE_PERIOD = "GRACE_PERIOD"


class _AppleModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class AppleNotificationData(_AppleModel):
    app_apple_id: Optional[int] = None
    bundle_id: Optional[str] = None
    bundle_version: Optional[str] = None
    environment: Optional[str] = None  # Sandbox | Production
    signed_transaction_info: Optional[str] = None
    signed_renewal_info: Optional[str] = None


class AppleNotification(_AppleModel):
    """Outer responseBodyV2DecodedPayload."""
    notification_type: str
    subtype: Optional[str] = None
    notification_uuid: Optional[str] = Field(default=None, alias="notificationUUID")
    data: Optional[AppleNotificationData] = None
    summary: Optional[Dict[str, Any]] = None  # RENEWAL_EXTENSION / SUMMARY instead of data
    version: Optional[str] = None
    signed_date: Optional[int] = None

    @property
    def known_type(self) -> Optional[AppleNotificationType]:
        """Enum member for the notification type, or None for types this service predates."""
        try:
            return AppleNotificationType(self.notification_type)
        except ValueError:
            return None


class AppleTransactionInfo(_AppleModel):
    """JWSTransactionDecodedPayload."""
    transaction_id: Optional[str] = None
    original_transaction_id: str
    product_id: Optional[str] = None
    purchase_date: Optional[datetime] = None
    expires_date: Optional[datetime] = None
    type: Optional[str] = None
    in_app_ownership_type: Optional[str] = None
    signed_date: Optional[datetime] = None
    environment: Optional[str] = None
    revocation_date: Optional[datetime] = None
    revocation_reason: Optional[int] = None
    is_upgraded: bool = False
    offer_type: Optional[int] = None
    offer_identifier: Optional[str] = None

    @field_validator("purchase_date", "expires_date", "signed_date", "revocation_date", mode="before")
    @classmethod
    def _millis_to_datetime(cls, v):
        if isinstance(v, (int, float)):
            return from_epoch_millis(v)
        return v

    @field_validator("transaction_id", "original_transaction_id", mode="before")
    @classmethod
    def _ids_as_str(cls, v):
        # Apple sends these as strings; tolerate numeric ids from hand-built payloads
        if isinstance(v, int):
            return str(v)
        return v


class AppleRenewalInfo(_AppleModel):
    """JWSRenewalInfoDecodedPayload."""
    auto_renew_product_id: Optional[str] = None
    auto_renew_status: Optional[int] = None  # 0 = off, 1 = on
    expiration_intent: Optional[int] = None
    grace_period_expires_date: Optional[datetime] = None
    is_in_billing_retry_period: bool = False
    original_transaction_id: Optional[str] = None
    product_id: Optional[str] = None
    renewal_date: Optional[datetime] = None
    signed_date: Optional[datetime] = None

    @field_validator("grace_period_expires_date", "renewal_date", "signed_date", mode="before")
    @classmethod
    def _millis_to_datetime(cls, v):
        if isinstance(v, (int, float)):
            return from_epoch_millis(v)
        return v
