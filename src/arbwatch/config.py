"""Configuration management for the arbitrage dashboard core."""

import os
from pathlib import Path
from typing import Optional
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_API_BASE = "https://arbitrage-production-e91f.up.railway.app"
MIN_REFRESH_INTERVAL_MS = 1000


class ApiConfig(BaseModel):
    """Data service configuration."""
    base_url: str = DEFAULT_API_BASE
    timeout_seconds: float = Field(default=10.0, gt=0)


class FilterConfig(BaseModel):
    """Initial filter parameters."""
    min_diff_percent: float = 0.5
    use_min_filter: bool = True
    max_diff_percent: float = 5.0
    use_max_filter: bool = False
    search: str = ""


class RefreshConfig(BaseModel):
    """Auto-refresh configuration."""
    enabled: bool = False
    interval_ms: int = 15000
    min_interval_ms: int = Field(default=MIN_REFRESH_INTERVAL_MS, ge=MIN_REFRESH_INTERVAL_MS)
    skip_overlapping_ticks: bool = True
    refresh_on_start: bool = True  # Fetch once when the dashboard starts


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    file_level: str = "DEBUG"


class Config(BaseModel):
    """Main configuration model."""
    api: ApiConfig = Field(default_factory=ApiConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load_from_file(cls, config_path: str = "config.yaml") -> "Config":
        """Load configuration from YAML file with environment variable substitution."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}

        # Substitute environment variables
        config_str = yaml.dump(config_data)
        for key, value in os.environ.items():
            config_str = config_str.replace(f"${{{key}}}", value)

        config_data = yaml.safe_load(config_str) or {}
        return cls(**config_data)


def get_config(config_path: Optional[str] = None) -> Config:
    """Get configuration instance.

    Values from a ``.env`` file are exported first so they can be referenced
    as ``${NAME}`` inside the YAML file. Without a path the defaults are used.
    """
    load_dotenv()
    if config_path is None:
        return Config()
    return Config.load_from_file(config_path)
