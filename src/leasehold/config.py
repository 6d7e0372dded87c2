from __future__ import annotations

import os
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_identity() -> str:
    """Identity of this process among the election candidates."""
    hostname = os.environ.get("HOSTNAME", os.environ.get("POD_NAME", "unknown"))
    return f"{hostname}-{uuid4().hex[:8]}"


class LockConfiguration(BaseModel):
    """Per-group election settings consumed by a single controller.

    Durations are expressed in seconds.
    """

    model_config = ConfigDict(frozen=True)

    group_name: str = Field(min_length=1)
    identity: str = Field(min_length=1)
    namespace: str | None = None
    resource_name: str = Field(default="leaders", min_length=1)
    member_selector: str = "leasehold"

    lease_duration_seconds: float = Field(default=15.0, gt=0)
    renew_deadline_seconds: float = Field(default=10.0, gt=0)
    retry_period_seconds: float = Field(default=2.0, gt=0)
    jitter_factor: float = Field(default=1.2, gt=1.0)

    @model_validator(mode="after")
    def _check_deadlines(self) -> LockConfiguration:
        if self.renew_deadline_seconds >= self.lease_duration_seconds:
            raise ValueError("renew_deadline_seconds must be lower than lease_duration_seconds")
        if self.retry_period_seconds >= self.renew_deadline_seconds:
            raise ValueError("retry_period_seconds must be lower than renew_deadline_seconds")
        # A leader renews on its first poll past the renew deadline, which
        # must still fall inside the lease window.
        renew_window = self.lease_duration_seconds - self.renew_deadline_seconds
        if self.retry_period_seconds * self.jitter_factor >= renew_window:
            raise ValueError(
                "retry_period_seconds * jitter_factor must be lower than "
                "lease_duration_seconds - renew_deadline_seconds"
            )
        return self

    def namespace_or_default(self, default: str = "default") -> str:
        return self.namespace or default


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEASEHOLD_", env_file=".env", extra="ignore", populate_by_name=True
    )

    # Election
    group_name: str = Field(default="default", validation_alias="LEASEHOLD_GROUP")
    identity: str = Field(default_factory=_default_identity, validation_alias="LEASEHOLD_IDENTITY")
    namespace: str | None = Field(default=None, validation_alias="LEASEHOLD_NAMESPACE")
    resource_name: str = Field(default="leaders", validation_alias="LEASEHOLD_RESOURCE_NAME")
    member_selector: str = Field(default="leasehold", validation_alias="LEASEHOLD_MEMBER_SELECTOR")
    disabled: bool = Field(default=False, validation_alias="LEASEHOLD_DISABLED")

    # Timings (seconds)
    lease_duration_seconds: float = Field(default=15.0, validation_alias="LEASE_DURATION_SECONDS")
    renew_deadline_seconds: float = Field(default=10.0, validation_alias="RENEW_DEADLINE_SECONDS")
    retry_period_seconds: float = Field(default=2.0, validation_alias="RETRY_PERIOD_SECONDS")
    jitter_factor: float = Field(default=1.2, validation_alias="JITTER_FACTOR")

    # Membership heartbeats
    member_ttl_seconds: float = Field(default=10.0, validation_alias="MEMBER_TTL_SECONDS")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_json: bool = Field(default=False, validation_alias="LOG_JSON")
    log_level: str = Field(default="INFO", validation_alias="LEASEHOLD_LOG_LEVEL")

    def lock_configuration(self) -> LockConfiguration:
        """Build the validated controller configuration from these settings."""
        return LockConfiguration(
            group_name=self.group_name,
            identity=self.identity,
            namespace=self.namespace,
            resource_name=self.resource_name,
            member_selector=self.member_selector,
            lease_duration_seconds=self.lease_duration_seconds,
            renew_deadline_seconds=self.renew_deadline_seconds,
            retry_period_seconds=self.retry_period_seconds,
            jitter_factor=self.jitter_factor,
        )


settings = Settings()
