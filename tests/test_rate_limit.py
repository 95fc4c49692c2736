"""
Unit tests for the in-memory rate limiter.
"""
from unittest import mock

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from subsync.core.rate_limit import check_rate_limit, rate_limit_store


def _request(ip: str) -> Request:
    return Request({"type": "http", "method": "POST", "path": "/", "headers": [], "client": (ip, 5000)})


def test_limit_enforced_within_window():
    with mock.patch("subsync.core.rate_limit.time.time", return_value=1000.0):
        check_rate_limit(_request("10.0.0.1"), max_requests=2, window_seconds=60, bucket="t")
        check_rate_limit(_request("10.0.0.1"), max_requests=2, window_seconds=60, bucket="t")
        with pytest.raises(HTTPException) as exc:
            check_rate_limit(_request("10.0.0.1"), max_requests=2, window_seconds=60, bucket="t")

    assert exc.value.status_code == 429


def test_expired_clients_are_dropped():
    with mock.patch("subsync.core.rate_limit.time.time", return_value=1000.0):
        for i in range(5):
            check_rate_limit(_request(f"10.0.0.{i}"), window_seconds=60, bucket="t")
    assert len([k for k in rate_limit_store if k.startswith("t:")]) == 5

    with mock.patch("subsync.core.rate_limit.time.time", return_value=1061.0):
        check_rate_limit(_request("10.0.1.1"), window_seconds=60, bucket="t")

    assert [k for k in rate_limit_store if k.startswith("t:")] == ["t:10.0.1.1"]


def test_pruning_leaves_other_buckets():
    with mock.patch("subsync.core.rate_limit.time.time", return_value=1000.0):
        check_rate_limit(_request("10.0.0.1"), window_seconds=3600, bucket="slow")
    with mock.patch("subsync.core.rate_limit.time.time", return_value=1100.0):
        check_rate_limit(_request("10.0.0.2"), window_seconds=60, bucket="fast")

    assert "slow:10.0.0.1" in rate_limit_store
