"""
Product duration lookup used when a client-submitted receipt activates a
subscription directly.

PRODUCT_DURATIONS (from PRODUCT_DURATIONS_JSON) is consulted first; SKUs
missing from it fall back to the naming convention.
"""
import calendar
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from subsync.core.config import PRODUCT_DURATIONS

logger = logging.getLogger(__name__)

SUPPORTED_DURATIONS = ("weekly", "monthly", "yearly")
DEFAULT_DURATION = "monthly"


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def duration_for_product(product_id: str, catalog: Optional[Dict[str, str]] = None) -> str:
    """
    Resolve a product id to weekly, monthly or yearly.
    
    Args:
        product_id: Store SKU, e.g. "com.example.premium.yearly"
        catalog: Explicit productId -> duration table (defaults to PRODUCT_DURATIONS)
        
    Returns:
        One of SUPPORTED_DURATIONS
    """
    catalog = PRODUCT_DURATIONS if catalog is None else catalog
    configured = catalog.get(product_id)
    if configured in SUPPORTED_DURATIONS:
        return configured
    if configured:
        logger.warning(f"Ignoring unsupported duration '{configured}' for product_id={product_id}")

    sku = product_id.lower()
    if "yearly" in sku or "annual" in sku:
        return "yearly"
    if "monthly" in sku:
        return "monthly"
    if "weekly" in sku:
        return "weekly"
    return DEFAULT_DURATION


def expiry_from_product(product_id: str, start: datetime, catalog: Optional[Dict[str, str]] = None) -> datetime:
    """Expiry for a subscription to `product_id` purchased at `start`."""
    duration = duration_for_product(product_id, catalog)
    if duration == "yearly":
        return add_months(start, 12)
    if duration == "weekly":
        return start + timedelta(days=7)
    return add_months(start, 1)
