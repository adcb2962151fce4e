from pathlib import Path
from typing import Dict, List, Optional, Set

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.chain_types import AVALANCHE_CHAIN_ID, CHAIN_METADATA, ETHEREUM_CHAIN_ID


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log renderer: json or console")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the tracking API",
    )

    # Prepare backends
    lending_api_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the lending prepare backend",
    )
    staking_api_url: str = Field(
        default="http://localhost:3004",
        description="Base URL of the staking prepare backend",
    )

    # Tracker service
    tracker_url: str = Field(
        default="",
        description="Base URL of the transaction tracking service (empty disables tracking)",
    )
    redis_url: str = Field(
        default="",
        description="Redis connection string for tracking records (empty keeps them in memory only)",
    )
    tracking_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        ge=1,
        description="How long a tracking record is kept after its last update (default: 7 days)",
    )

    # Chain RPC endpoints
    rpc_urls: Dict[int, str] = Field(
        default_factory=lambda: {
            ETHEREUM_CHAIN_ID: "https://ethereum-rpc.publicnode.com",
            AVALANCHE_CHAIN_ID: "https://api.avax.network/ext/bc/C/rpc",
        },
        description="JSON-RPC endpoint per chain id",
    )

    # Timeouts
    request_timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")
    receipt_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="How long to wait for a receipt before reporting a timeout",
    )
    receipt_poll_interval_seconds: float = Field(
        default=2.5,
        gt=0,
        description="Delay between receipt lookups",
    )

    # Rate limiting
    rate_limit_default_seconds: int = Field(
        default=30,
        description="Cooldown used when a 429 carries no usable retry-after header",
    )
    rate_limit_min_seconds: int = Field(default=1, ge=0, description="Lower clamp for retry-after")
    rate_limit_max_seconds: int = Field(default=120, ge=1, description="Upper clamp for retry-after")

    @property
    def has_tracker(self) -> bool:
        return bool(self.tracker_url)

    @property
    def supported_chain_ids(self) -> Set[int]:
        return set(CHAIN_METADATA.keys())

    def prepare_url_for(self, domain: str) -> Optional[str]:
        """Resolve the prepare backend base URL for a domain."""
        urls = {
            "lending": self.lending_api_url,
            "staking": self.staking_api_url,
        }
        url = urls.get((domain or "").lower())
        return url.rstrip("/") if url else None

    def rpc_url_for(self, chain_id: int) -> Optional[str]:
        return self.rpc_urls.get(chain_id)


# Global settings instance
settings = Settings()
