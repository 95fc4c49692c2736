"""
Naive-UTC time helpers.

Every datetime column stores naive UTC. Provider timestamps arrive as epoch
seconds (Stripe) or epoch milliseconds (Apple) and are converted here.
"""
from datetime import datetime, timezone
from typing import Optional, Union

Number = Union[int, float]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Drop tzinfo after converting aware datetimes (e.g. from Postgres) to UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_epoch_seconds(value: Optional[Number]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def from_epoch_millis(value: Optional[Number]) -> Optional[datetime]:
    if value is None:
        return None
    return from_epoch_seconds(value / 1000)
