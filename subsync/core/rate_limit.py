"""
Simple in-memory rate limiter for API endpoints.
"""
import logging
import time
from collections import defaultdict
from typing import Dict, List
from fastapi import Request, HTTPException, status

from subsync.core.config import RECEIPT_RATE_LIMIT, RECEIPT_RATE_WINDOW_SECONDS

logger = logging.getLogger(__name__)

# {bucket:ip: [timestamps]}
rate_limit_store: Dict[str, List[float]] = defaultdict(list)


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP in the chain
        return forwarded.split(",")[0].strip()
    
    if request.client:
        return request.client.host
    
    return "unknown"


def _prune_expired(bucket: str, cutoff: float) -> None:
    """Drop keys in `bucket` whose every timestamp is at or before `cutoff`."""
    prefix = f"{bucket}:"
    expired = [
        key for key, timestamps in rate_limit_store.items()
        if key.startswith(prefix) and (not timestamps or timestamps[-1] <= cutoff)
    ]
    for key in expired:
        del rate_limit_store[key]


def check_rate_limit(
    request: Request,
    max_requests: int = 10,
    window_seconds: int = 60,
    bucket: str = "default"
) -> None:
    """
    Check if client has exceeded rate limit.
    
    Args:
        request: FastAPI request object
        max_requests: Maximum number of requests allowed
        window_seconds: Time window in seconds
        bucket: Separate counter namespace per endpoint group
        
    Raises:
        HTTPException: 429 if rate limit exceeded
    """
    key = f"{bucket}:{get_client_ip(request)}"
    now = time.time()
    
    cutoff = now - window_seconds
    _prune_expired(bucket, cutoff)
    rate_limit_store[key] = [
        timestamp for timestamp in rate_limit_store.get(key, [])
        if timestamp > cutoff
    ]
    
    request_count = len(rate_limit_store[key])
    
    if request_count >= max_requests:
        logger.warning(f"Rate limit exceeded for {key} ({request_count} requests in {window_seconds}s)")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Maximum {max_requests} requests per {window_seconds} seconds."
        )
    
    rate_limit_store[key].append(now)


def limit_receipt_submissions(request: Request) -> None:
    """Dependency guarding the receipt submission endpoint."""
    check_rate_limit(
        request,
        max_requests=RECEIPT_RATE_LIMIT,
        window_seconds=RECEIPT_RATE_WINDOW_SECONDS,
        bucket="receipts"
    )
