"""Configuration utilities for loading environment variables."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def load_env(env_file: Optional[str] = None) -> None:
    """Load environment variables from a .env file.

    Searches the current and parent directories for .env when no path
    is given. Variables already present in the environment win.

    Args:
        env_file: Optional path to .env file.

    Example:
        >>> from pulse.utils.config import load_env
        >>> load_env()
        >>> config = EngineConfig.from_env()
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()


def get_config(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get configuration value from environment.

    Args:
        key: Configuration key
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    return os.getenv(key, default)


def _get_int(key: str, default: int) -> int:
    value = get_config(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got: {value!r}")


def _get_float(key: str, default: float) -> float:
    value = get_config(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number, got: {value!r}")


@dataclass
class EngineConfig:
    """Runtime settings for the engine, scheduler and backends.

    Attributes:
        max_steps: Maximum node visits in one turn before the run is failed
        lease_seconds: How long a claim on an execution stays valid
        resume_interval: Seconds between resume sweeps
        resume_batch: Maximum due executions picked up per sweep
        conflict_retries: Reload-and-retry attempts after a ConcurrencyConflict
        db_path: SQLite database path for the durable backend
        gateway_url: Base URL of the HTTP messaging gateway
        gateway_token: Bearer token for the messaging gateway
        log_level: Logging level name
        log_format: "console" or "json"
    """

    max_steps: int = 1000
    lease_seconds: float = 30.0
    resume_interval: float = 5.0
    resume_batch: int = 100
    conflict_retries: int = 3
    db_path: str = "pulse.db"
    gateway_url: Optional[str] = None
    gateway_token: Optional[str] = None
    log_level: str = "INFO"
    log_format: str = "console"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from PULSE_* environment variables."""
        return cls(
            max_steps=_get_int("PULSE_MAX_STEPS", cls.max_steps),
            lease_seconds=_get_float("PULSE_LEASE_SECONDS", cls.lease_seconds),
            resume_interval=_get_float("PULSE_RESUME_INTERVAL", cls.resume_interval),
            resume_batch=_get_int("PULSE_RESUME_BATCH", cls.resume_batch),
            conflict_retries=_get_int("PULSE_CONFLICT_RETRIES", cls.conflict_retries),
            db_path=get_config("PULSE_DB_PATH", cls.db_path),
            gateway_url=get_config("PULSE_GATEWAY_URL"),
            gateway_token=get_config("PULSE_GATEWAY_TOKEN"),
            log_level=get_config("PULSE_LOG_LEVEL", cls.log_level).upper(),
            log_format=get_config("PULSE_LOG_FORMAT", cls.log_format).lower(),
        )

    def ensure_gateway(self) -> str:
        """Return the gateway URL.

        Raises:
            ValueError: If PULSE_GATEWAY_URL is not configured
        """
        if not self.gateway_url:
            raise ValueError(
                "PULSE_GATEWAY_URL not found in environment. "
                "Please set it in .env file or environment variables."
            )
        return self.gateway_url
