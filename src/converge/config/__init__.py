"""Settings management for the reconciliation engine."""

from .settings import (
    AWSSettings,
    EngineSettings,
    RetrySettings,
    TimeoutSettings,
)
from .loader import ConfigValidationError, load_settings

__all__ = [
    "AWSSettings",
    "EngineSettings",
    "RetrySettings",
    "TimeoutSettings",
    "ConfigValidationError",
    "load_settings",
]
