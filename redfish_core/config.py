"""
Configuration for the Redfish request engine.

Reads from environment variables with sensible defaults. The bounds declared
here are the same ones the engine re-checks at its entry points.
"""

import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from redfish_core import __version__
from redfish_core.errors import InvalidArgumentError

# Parameter bounds enforced by the engine
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 300
MIN_RETRIES = 0
MAX_RETRIES = 10
MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 50
MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 100
MIN_CONNECTION_LIFETIME_MINUTES = 1

# Backoff ceilings (milliseconds)
MAX_BACKOFF_MS = 30000
MAX_RETRY_AFTER_MS = 60000

# Session handshake retry policy
HANDSHAKE_MAX_ATTEMPTS = 3
HANDSHAKE_BASE_DELAY_MS = 1000

DEFAULT_USER_AGENT = f"redfish-core/{__version__}"


class RedfishSettings(BaseSettings):
    """Engine defaults loaded from REDFISH_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="REDFISH_")

    # Transport
    timeout_seconds: int = Field(30, ge=MIN_TIMEOUT_SECONDS, le=MAX_TIMEOUT_SECONDS)
    max_connections: int = Field(10, ge=MIN_CONNECTIONS, le=MAX_CONNECTIONS)
    connection_lifetime_minutes: int = Field(5, ge=MIN_CONNECTION_LIFETIME_MINUTES)
    skip_cert_check: bool = False
    user_agent: str = DEFAULT_USER_AGENT

    # Retry policy
    max_retries: int = Field(3, ge=MIN_RETRIES, le=MAX_RETRIES)
    retry_base_delay_ms: int = Field(1000, ge=0)

    # Batch
    max_concurrency: int = Field(10, ge=MIN_CONCURRENCY, le=MAX_CONCURRENCY)

    # Observability
    enable_metrics: bool = False
    log_level: str = "INFO"


def configure_logging(level: str = "INFO") -> None:
    """Console logging for scripts that embed the engine."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def check_range(name: str, value, minimum, maximum=None) -> None:
    """Reject values outside [minimum, maximum] with InvalidArgumentError."""
    if value is None or isinstance(value, bool) or value < minimum or (maximum is not None and value > maximum):
        bounds = f"{minimum}-{maximum}" if maximum is not None else f">= {minimum}"
        raise InvalidArgumentError(f"{name} must be {bounds}, got {value!r}")
