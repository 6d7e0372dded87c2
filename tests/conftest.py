"""Global pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from leasehold.config import LockConfiguration
from tests.doubles import FakeRedis, VirtualClock


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def lock_config() -> LockConfiguration:
    """Election settings for member ``a`` of group ``jobs``."""
    return LockConfiguration(
        group_name="jobs",
        identity="a",
        namespace="test",
        resource_name="leaders",
        member_selector="workers",
        lease_duration_seconds=15.0,
        renew_deadline_seconds=10.0,
        retry_period_seconds=2.0,
        jitter_factor=1.2,
    )
