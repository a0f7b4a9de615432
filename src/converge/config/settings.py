"""Pydantic models for engine settings."""

from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class AWSSettings(BaseModel):
    """Remote API client settings for the AWS handlers."""

    region: str = Field("us-east-1", pattern="^[a-z]{2}(-[a-z]+)+-[0-9]+$")
    profile: Optional[str] = Field(None, description="AWS profile name")
    max_pool_connections: int = Field(50, ge=1, le=500)


class TimeoutSettings(BaseModel):
    """Time budgets, in seconds."""

    operation: float = Field(1800.0, gt=0, description="Deadline for a single apply call")
    wait: float = Field(600.0, gt=0, description="Budget for one wait-until-ready loop")
    poll_interval: float = Field(5.0, gt=0, description="Delay between readiness polls")

    @model_validator(mode="after")
    def validate_budgets(self):
        """A single wait can never outlast the whole operation."""
        if self.wait > self.operation:
            raise ValueError("wait timeout cannot exceed the operation timeout")
        if self.poll_interval > self.wait:
            raise ValueError("poll_interval cannot exceed the wait timeout")
        return self


class RetrySettings(BaseModel):
    """Backoff for transient remote API errors."""

    max_retries: int = Field(3, ge=0, le=10)
    base_delay: float = Field(1.0, ge=0)
    max_delay: float = Field(30.0, ge=0)

    @model_validator(mode="after")
    def validate_delays(self):
        """Validate delay ordering."""
        if self.base_delay > self.max_delay:
            raise ValueError("base_delay cannot exceed max_delay")
        return self


class EngineSettings(BaseModel):
    """Top-level settings for the reconciliation engine."""

    log_level: str = Field("info", pattern="^(debug|info|warning|error)$")
    log_dir: Optional[Path] = None
    owner: str = Field(
        "converge",
        min_length=1,
        max_length=128,
        description="Ownership marker stamped on created remote objects",
    )
    aws: AWSSettings = Field(default_factory=AWSSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    handlers: List[str] = Field(
        default_factory=list, description="Enabled handler types; empty enables all built-ins"
    )

    @field_validator("owner")
    @classmethod
    def validate_owner(cls, v: str) -> str:
        """Owner is written into remote tags, so keep it tag-safe."""
        if v.strip() != v:
            raise ValueError("owner cannot start or end with whitespace")
        return v

    @field_validator("handlers")
    @classmethod
    def validate_handlers(cls, v: List[str]) -> List[str]:
        """Reject duplicate handler names."""
        if len(set(v)) != len(v):
            raise ValueError("handler types must be unique")
        return v
