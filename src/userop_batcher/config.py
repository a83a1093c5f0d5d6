"""
Configuration management for the UserOperation batcher.

Supports configuration via environment variables and .env files.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from userop_batcher.core.policy import Policy


DEFAULT_ENTRYPOINT = "0x0576a174D229E3cFA37253523E645A78A0C91B57"


class BatcherConfig(BaseSettings):
    """
    Configuration settings for a batcher run.

    All settings can be configured via environment variables with the BATCHER_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="BATCHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Relay settings
    relay_url: str = Field(
        default="http://127.0.0.1:3000",
        description="JSON-RPC endpoint of the relay/bundler"
    )
    relay_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single relay request"
    )
    entrypoint: str = Field(
        default=DEFAULT_ENTRYPOINT,
        description="EntryPoint contract address passed with every bundle"
    )

    # Storage settings
    queue_path: str = Field(
        default="queue.json",
        description="Path of the JSON queue file"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///batcher.db",
        description="SQLAlchemy database URL for rate window persistence"
    )

    # Rate limiting
    max_per_target_per_window: int = Field(
        default=20,
        ge=0,
        description="Maximum operations admitted per target within one window"
    )
    rate_window_seconds: int = Field(
        default=60,
        ge=1,
        description="Length of the per-target rate window"
    )

    # Policy
    blocked_targets: List[str] = Field(
        default_factory=list,
        description="Target addresses whose operations are held back"
    )
    max_call_gas: int = Field(
        default=6_000_000,
        ge=0,
        description="Maximum callGasLimit accepted"
    )
    max_fee_gwei: int = Field(
        default=200,
        ge=0,
        description="Maximum maxFeePerGas accepted, in gwei"
    )
    max_priority_gwei: int = Field(
        default=20,
        ge=0,
        description="Maximum maxPriorityFeePerGas accepted, in gwei"
    )

    # Submission
    dry_run: bool = Field(
        default=False,
        description="Select and price operations without submitting"
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        description="Maximum bundle submission attempts"
    )
    backoff_cap_seconds: int = Field(
        default=60,
        ge=0,
        description="Upper bound for the delay between attempts"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    def policy(self) -> Policy:
        """Build the admission policy for this run."""
        return Policy.from_gwei(
            blocked_targets=self.blocked_targets,
            max_call_gas=self.max_call_gas,
            max_fee_gwei=self.max_fee_gwei,
            max_priority_gwei=self.max_priority_gwei,
        )


# Global config instance
_config: Optional[BatcherConfig] = None


def get_config() -> BatcherConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = BatcherConfig()
    return _config


def set_config(config: BatcherConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
