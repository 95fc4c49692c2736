"""
Pydantic models for Stripe webhook events.

`StripeEvent.data.object` stays a raw mapping; callers reinterpret it with the
model matching the event type.
"""
import enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from subsync.core.timeutils import from_epoch_seconds


class StripeEventType(str, enum.Enum):
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    SUBSCRIPTION_PAUSED = "customer.subscription.paused"
    SUBSCRIPTION_RESUMED = "customer.subscription.resumed"
    SUBSCRIPTION_TRIAL_WILL_END = "customer.subscription.trial_will_end"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class _StripeModel(BaseModel):
    class Config:
        extra = "ignore"


def _object_id(value: Union[str, Dict[str, Any], None]) -> Optional[str]:
    """Stripe references are ids, or whole objects when expanded."""
    if isinstance(value, dict):
        return value.get("id")
    return value


class StripeEventData(_StripeModel):
    object: Dict[str, Any]
    previous_attributes: Optional[Dict[str, Any]] = None


class StripeEvent(_StripeModel):
    id: str
    type: str
    data: StripeEventData
    created: Optional[int] = None
    livemode: bool = False

    @property
    def known_type(self) -> Optional[StripeEventType]:
        try:
            return StripeEventType(self.type)
        except ValueError:
            return None


class StripePrice(_StripeModel):
    id: Optional[str] = None
    product: Union[str, Dict[str, Any], None] = None


class StripeSubscriptionItem(_StripeModel):
    id: Optional[str] = None
    price: Optional[StripePrice] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeSubscriptionItems(_StripeModel):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscriptionObject(_StripeModel):
    id: str
    customer: Union[str, Dict[str, Any], None] = None
    status: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[int] = None
    ended_at: Optional[int] = None
    trial_start: Optional[int] = None
    trial_end: Optional[int] = None
    items: StripeSubscriptionItems = Field(default_factory=StripeSubscriptionItems)
    metadata: Optional[Dict[str, str]] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_null_as_empty(cls, v):
        # Stripe sends "metadata": null on objects created without any
        return {} if v is None else v

    @property
    def first_item(self) -> Optional[StripeSubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def product_id(self) -> str:
        item = self.first_item
        product = item.price.product if item and item.price else None
        if isinstance(product, dict):
            return product.get("id") or "stripe_product"
        return product or "unknown"

    @property
    def period_start(self) -> Optional[datetime]:
        # Newer API versions only report the period on subscription items
        value = self.current_period_start
        if value is None and self.first_item:
            value = self.first_item.current_period_start
        return from_epoch_seconds(value)

    @property
    def period_end(self) -> Optional[datetime]:
        value = self.current_period_end
        if value is None and self.first_item:
            value = self.first_item.current_period_end
        return from_epoch_seconds(value)


class StripeCheckoutSession(_StripeModel):
    id: str
    mode: Optional[str] = None  # payment | setup | subscription
    customer: Union[str, Dict[str, Any], None] = None
    subscription: Union[str, Dict[str, Any], None] = None
    client_reference_id: Optional[str] = None
    metadata: Optional[Dict[str, str]] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_null_as_empty(cls, v):
        # Stripe sends "metadata": null on objects created without any
        return {} if v is None else v

    @property
    def user_id(self) -> Optional[str]:
        metadata = self.metadata or {}
        return (
            self.client_reference_id
            or metadata.get("userId")
            or metadata.get("user_id")
        )

    @property
    def subscription_id(self) -> Optional[str]:
        return _object_id(self.subscription)

    @property
    def customer_id(self) -> Optional[str]:
        return _object_id(self.customer)


class StripeInvoice(_StripeModel):
    id: Optional[str] = None
    customer: Union[str, Dict[str, Any], None] = None
    subscription: Union[str, Dict[str, Any], None] = None
    parent: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    amount_paid: Optional[int] = None
    amount_due: Optional[int] = None

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return _object_id(self.subscription)
        # Newer API versions nest the subscription under the invoice parent
        details = (self.parent or {}).get("subscription_details") or {}
        return _object_id(details.get("subscription"))
