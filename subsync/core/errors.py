"""
Error taxonomy for decoding, verification and reconciliation.
"""


class SubsyncError(Exception):
    """Base class for service errors."""


class NotificationDecodeError(SubsyncError):
    """A provider envelope could not be turned into a structured event."""


class MalformedEnvelope(NotificationDecodeError):
    """Signed string does not have the expected header.payload.signature shape."""


class InvalidPayload(NotificationDecodeError):
    """Decoded segment is not a JSON object or is missing required fields."""


class SignatureInvalid(SubsyncError):
    """Stripe-Signature header did not verify against the webhook secret."""


class SubscriptionNotFound(SubsyncError):
    def __init__(self, key: str = ""):
        self.key = key
        super().__init__(f"Subscription not found: {key}" if key else "Subscription not found")


class ConcurrentUpdateError(SubsyncError):
    """Optimistic write kept losing to concurrent writers."""
