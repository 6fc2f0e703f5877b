"""Configuration management for the swap bot."""

from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Subgraph Configuration
    graph_api_url: str = Field(
        default="https://api.studio.thegraph.com/query/100116/contract_3e2f0/version/latest",
        description="GraphQL endpoint of the pool subgraph"
    )
    page_size: int = Field(
        default=50,
        description="Number of swaps requested per page"
    )
    request_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for every outgoing HTTP call"
    )

    # State Configuration
    state_file: str = Field(
        default="app_config.json",
        description="Path of the JSON file holding targets and checkpoint"
    )
    seed_block_number: str = Field(
        default="21612681",
        description="Block number used when no state file exists"
    )
    seed_tx_hashes: list[str] = Field(
        default_factory=lambda: [
            "0xccce6256453e517062bb4cfb74494a0bdb2fefa793f75d3d31cf041d76bf99fd"
        ],
        description="Transaction hashes treated as already notified on first start"
    )
    default_notification_targets: list[str] = Field(
        default_factory=lambda: ["https://api.day.app/your-device-key/Swap%20Alert/"],
        description="Bark base URLs written into a fresh state file"
    )
    watch_state_file: bool = Field(
        default=True,
        description="Reload the state file when it is edited on disk"
    )
    state_watch_interval: float = Field(
        default=2.0,
        description="Seconds between state file modification checks"
    )

    # Formatting Configuration
    fallback_btc_price: Decimal = Field(
        default=Decimal("100000"),
        description="USD price used when a swap carries no btcPrice"
    )
    display_utc_offset_hours: int = Field(
        default=8,
        description="Fixed UTC offset used to render swap timestamps"
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional rotating log file, e.g. logs/swap_bot.log"
    )
    log_max_bytes: int = Field(
        default=1024 * 1024,
        description="Size at which the log file is rotated"
    )
    log_backup_count: int = Field(
        default=20,
        description="Number of rotated log files to keep"
    )
    poll_interval: float = Field(
        default=1.0,
        description="Interval in seconds between reconciliation passes"
    )
    fetch_error_backoff: float = Field(
        default=3.0,
        description="Pause in seconds after a failed fetch"
    )

    # Health Server Configuration
    enable_health_server: bool = Field(
        default=False,
        description="Expose /health and /status over HTTP"
    )
    health_port: int = Field(
        default=8080,
        description="Port for the health server"
    )
    health_stale_after: float = Field(
        default=120.0,
        description="Seconds without a finished pass before /health reports unhealthy"
    )
    health_max_fetch_failures: int = Field(
        default=10,
        description="Consecutive failed fetches before /health reports unhealthy"
    )

    @field_validator("poll_interval", "page_size")
    @classmethod
    def validate_positive(cls, v):
        """Polling cadence and page size must be positive."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("seed_block_number")
    @classmethod
    def validate_seed_block(cls, v):
        """Seed block must be a plain non-negative integer."""
        if not v.isdigit():
            raise ValueError("seed_block_number must be numeric")
        return v


# Global config instance
config = Config()
