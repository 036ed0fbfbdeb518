"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="PICKUP_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Pickup Location Resolution API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level applied by create_app.")
    data_root: Path = Field(default=Path("data"), description="Root directory for persisted data.")
    pickup_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding one JSON document per product. Defaults to <data_root>/pickups.",
    )
    region_rules_file: Optional[Path] = Field(
        default=None,
        description="Optional JSON file overriding the built-in region keyword tables.",
    )

    rezdy_base_url: str = Field(
        default="https://api.rezdy.com/v1",
        description="Base URL of the Rezdy booking API.",
    )
    rezdy_api_key: Optional[str] = Field(default=None, description="Rezdy API key.")
    rezdy_timeout_seconds: float = Field(default=10.0, gt=0.0)
    rezdy_max_retries: int = Field(default=2, ge=0)
    rezdy_backoff_seconds: float = Field(default=0.5, ge=0.0)
    rezdy_min_request_interval: float = Field(
        default=0.6,
        ge=0.0,
        description="Minimum delay in seconds between two upstream requests.",
    )
    upstream_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Overall bound on a single pickup fetch, retries included.",
    )

    refresh_after_hours: float = Field(
        default=12.0,
        gt=0.0,
        description="Age after which cached pickups are served stale and refreshed in the background.",
    )
    expire_after_hours: float = Field(
        default=24.0,
        gt=0.0,
        description="Age after which cached pickups are refreshed before being returned.",
    )
    save_max_retries: int = Field(default=3, ge=1)
    save_retry_delay_seconds: float = Field(default=0.1, ge=0.0)

    live_fetch_enabled: bool = True
    live_fetch_concurrency: int = Field(default=5, ge=1)
    preload_batch_size: int = Field(default=5, ge=1)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("pickup_dir", "region_rules_file", mode="before")
    @classmethod
    def _expand_optional_path(cls, value: Any) -> Optional[Path]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @property
    def resolved_pickup_dir(self) -> Path:
        return self.pickup_dir or (self.data_root / "pickups")


settings = Settings()
