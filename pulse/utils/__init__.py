"""Utility functions and helpers."""

from pulse.utils.config import EngineConfig, get_config, load_env
from pulse.utils.errors import (
    CapabilityError,
    ConcurrencyConflict,
    ConfigurationError,
    InvalidNodeTypeError,
    NodeEvaluationError,
    NotFoundError,
    PulseError,
    ValidationError,
)
from pulse.utils.logging import configure_logging

__all__ = [
    "EngineConfig",
    "get_config",
    "load_env",
    "CapabilityError",
    "ConcurrencyConflict",
    "ConfigurationError",
    "InvalidNodeTypeError",
    "NodeEvaluationError",
    "NotFoundError",
    "PulseError",
    "ValidationError",
    "configure_logging",
]
