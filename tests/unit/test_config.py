"""Tests for configuration."""

import pytest
from pydantic import ValidationError

from leasehold.config import LockConfiguration, Settings


class TestLockConfiguration:
    """Tests for LockConfiguration validation."""

    def test_defaults(self) -> None:
        config = LockConfiguration(group_name="jobs", identity="a")

        assert config.lease_duration_seconds == 15.0
        assert config.renew_deadline_seconds == 10.0
        assert config.retry_period_seconds == 2.0
        assert config.jitter_factor == 1.2
        assert config.namespace_or_default() == "default"

    def test_renew_deadline_below_lease(self) -> None:
        with pytest.raises(ValidationError, match="renew_deadline_seconds"):
            LockConfiguration(
                group_name="jobs",
                identity="a",
                lease_duration_seconds=10.0,
                renew_deadline_seconds=10.0,
            )

    def test_retry_period_below_renew_deadline(self) -> None:
        with pytest.raises(ValidationError, match="retry_period_seconds"):
            LockConfiguration(group_name="jobs", identity="a", retry_period_seconds=10.0)

    def test_polling_must_fit_renew_window(self) -> None:
        """The longest jittered poll lands before the lease expires."""
        with pytest.raises(ValidationError, match="jitter_factor"):
            LockConfiguration(
                group_name="jobs",
                identity="a",
                lease_duration_seconds=15.0,
                renew_deadline_seconds=10.0,
                retry_period_seconds=9.0,
                jitter_factor=1.2,
            )

    def test_polling_at_edge_of_renew_window(self) -> None:
        with pytest.raises(ValidationError, match="jitter_factor"):
            LockConfiguration(
                group_name="jobs",
                identity="a",
                lease_duration_seconds=15.0,
                renew_deadline_seconds=10.0,
                retry_period_seconds=4.0,
                jitter_factor=1.25,
            )

        config = LockConfiguration(
            group_name="jobs",
            identity="a",
            lease_duration_seconds=15.0,
            renew_deadline_seconds=10.0,
            retry_period_seconds=4.1,
            jitter_factor=1.2,
        )
        assert config.retry_period_seconds == 4.1

    def test_jitter_factor_above_one(self) -> None:
        with pytest.raises(ValidationError):
            LockConfiguration(group_name="jobs", identity="a", jitter_factor=1.0)

    def test_identity_required(self) -> None:
        with pytest.raises(ValidationError):
            LockConfiguration(group_name="jobs", identity="")

    def test_frozen(self) -> None:
        config = LockConfiguration(group_name="jobs", identity="a")

        with pytest.raises(ValidationError):
            config.identity = "b"  # type: ignore[misc]


class TestSettings:
    """Tests for environment-driven settings."""

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEASEHOLD_GROUP", "scheduler")
        monkeypatch.setenv("LEASEHOLD_IDENTITY", "pod-a")
        monkeypatch.setenv("LEASEHOLD_NAMESPACE", "prod")
        monkeypatch.setenv("LEASE_DURATION_SECONDS", "30")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")

        settings = Settings()

        assert settings.group_name == "scheduler"
        assert settings.identity == "pod-a"
        assert settings.redis_url == "redis://cache:6379/2"
        config = settings.lock_configuration()
        assert config.namespace_or_default() == "prod"
        assert config.lease_duration_seconds == 30.0

    def test_default_identity_is_unique(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LEASEHOLD_IDENTITY", raising=False)
        monkeypatch.setenv("HOSTNAME", "node-1")

        first, second = Settings(), Settings()

        assert first.identity.startswith("node-1-")
        assert first.identity != second.identity

    def test_invalid_timings_rejected(self) -> None:
        settings = Settings(renew_deadline_seconds=20.0)

        with pytest.raises(ValidationError):
            settings.lock_configuration()

    def test_logging_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_JSON", "true")
        monkeypatch.setenv("LEASEHOLD_LOG_LEVEL", "debug")

        settings = Settings()

        assert settings.log_json is True
        assert settings.log_level == "debug"
