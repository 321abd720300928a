"""
config.py — pydantic-settings Settings class.

All environment variables for the ethval collector are declared here.
The CLI builds one Settings instance at startup with load_settings() and
passes it down explicitly; nothing else reads the environment.

Usage:
    from ethval_shared.config import load_settings

    settings = load_settings()
    print(settings.supabase_url, settings.days_to_fetch)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Supabase
    # -------------------------------------------------------------------------
    supabase_url: str = Field(default="http://localhost:54321")
    supabase_service_key: str = Field(default="")
    store_timeout: float = Field(default=30.0)

    # -------------------------------------------------------------------------
    # Optional API keys
    # -------------------------------------------------------------------------
    cryptocompare_api_key: str = Field(default="")
    etherscan_api_key: str = Field(default="")
    coingecko_api_key: str = Field(default="")

    # -------------------------------------------------------------------------
    # Collection behaviour
    # -------------------------------------------------------------------------
    days_to_fetch: int = Field(default=1095)      # 3 years
    batch_size: int = Field(default=500)
    min_history_rows: int = Field(default=100)
    rate_limit_delay_ms: int = Field(default=300)
    inter_metric_delay_ms: int = Field(default=500)
    run_deadline_seconds: float | None = Field(default=None)

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------
    http_timeout: float = Field(default=30.0)
    http_max_attempts: int = Field(default=3)
    http_retry_base_delay: float = Field(default=1.0)
    max_redirects: int = Field(default=5)
    user_agent: str = Field(default="ethval-collector/0.1")

    # -------------------------------------------------------------------------
    # Data sources
    # -------------------------------------------------------------------------
    cryptocompare_base_url: str = Field(default="https://min-api.cryptocompare.com")
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3")
    defillama_base_url: str = Field(default="https://api.llama.fi")
    defillama_stablecoins_url: str = Field(default="https://stablecoins.llama.fi")
    etherscan_api_url: str = Field(default="https://api.etherscan.io/v2/api")
    etherscan_charts_url: str = Field(default="https://etherscan.io/chart")
    beaconchain_base_url: str = Field(default="https://beaconcha.in/api/v1")
    lido_base_url: str = Field(default="https://eth-api.lido.fi/v1")
    ultrasound_base_url: str = Field(default="https://ultrasound.money/api/v2")
    alternative_me_base_url: str = Field(default="https://api.alternative.me")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator(
        "supabase_url",
        "cryptocompare_base_url",
        "coingecko_base_url",
        "defillama_base_url",
        "defillama_stablecoins_url",
        "etherscan_api_url",
        "etherscan_charts_url",
        "beaconchain_base_url",
        "lido_base_url",
        "ultrasound_base_url",
        "alternative_me_base_url",
        mode="before",
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v

    @field_validator("days_to_fetch", "batch_size", "min_history_rows", "max_redirects")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    # -------------------------------------------------------------------------
    # Derived
    # -------------------------------------------------------------------------
    @property
    def rate_limit_delay(self) -> float:
        return self.rate_limit_delay_ms / 1000.0

    @property
    def inter_metric_delay(self) -> float:
        return self.inter_metric_delay_ms / 1000.0


def load_settings(**overrides: Any) -> Settings:
    """Build the process Settings from environment / .env plus explicit overrides."""
    return Settings(**overrides)
