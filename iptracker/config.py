# iptracker/config.py
from __future__ import annotations

import json
import os
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

# ip-api only returns the fields we ask for; proxy/hosting are opt-in.
DEFAULT_IP_API_URL = (
    "http://ip-api.com/json/{ip}"
    "?fields=status,message,country,countryCode,region,city,isp,org,as,proxy,hosting"
)
DEFAULT_IPAPI_CO_URL = "https://ipapi.co/{ip}/json/"
DEFAULT_TOR_ISP_PATTERNS = "tor,exit,relay,privacy foundation"


def _csv_to_list(value: str) -> List[str]:
    items = [part.strip() for part in value.split(",")]
    return [item for item in items if item]


def _json_or_csv_to_list(value: str) -> List[str]:
    text = (value or "").strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except (json.JSONDecodeError, TypeError, ValueError):
            return _csv_to_list(text)
        if isinstance(decoded, (list, tuple)):
            return [str(item).strip() for item in decoded if str(item).strip()]
        return []
    return _csv_to_list(text)


class Settings(BaseSettings):
    # --- Identity / Build ---
    APP_NAME: str = Field(default="IP Tracker Web App")
    ENV: str = Field(default=os.environ.get("NODE_ENV", "development"))
    VERSION: str = Field(default=APP_VERSION)

    # --- Server ---
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000, ge=1, le=65535)

    # --- Logging ---
    LOG_JSON: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")

    # --- Lookup budgets (milliseconds) ---
    # Tor gates the most severe verdict, so its budget must stay the tighter one.
    GEO_TIMEOUT_MS: int = Field(default=2000, ge=50, le=2000)
    TOR_TIMEOUT_MS: int = Field(default=1000, ge=50, le=1500)

    # --- Providers ---
    GEO_PROVIDERS: str = Field(default="ip-api")  # comma-separated or JSON list
    GEO_IP_API_URL: str = Field(default=DEFAULT_IP_API_URL)
    GEO_IPAPI_CO_URL: str = Field(default=DEFAULT_IPAPI_CO_URL)
    TOR_LOOKUP_URL: str = Field(default="")  # empty disables the Tor slot

    # --- Tor fallback heuristics (operator data, not ground truth) ---
    TOR_ISP_PATTERNS: str = Field(default=DEFAULT_TOR_ISP_PATTERNS)
    TOR_AS_PATTERNS: str = Field(default="")

    # --- Shared HTTP client ---
    HTTPX_MAX_CONNECTIONS: int = Field(default=200, ge=1)
    HTTPX_MAX_KEEPALIVE: int = Field(default=100, ge=0)
    HTTPX_KEEPALIVE_S: int = Field(default=20, ge=0)
    HTTPX_TIMEOUT_S: int = Field(default=5, ge=1)

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @model_validator(mode="after")
    def _tor_budget_is_tighter(self) -> "Settings":
        if self.TOR_TIMEOUT_MS >= self.GEO_TIMEOUT_MS:
            raise ValueError(
                f"TOR_TIMEOUT_MS ({self.TOR_TIMEOUT_MS}) must be lower than "
                f"GEO_TIMEOUT_MS ({self.GEO_TIMEOUT_MS})"
            )
        return self

    @property
    def geo_provider_names(self) -> List[str]:
        return [name.lower() for name in _json_or_csv_to_list(self.GEO_PROVIDERS)]

    @property
    def tor_isp_patterns(self) -> List[str]:
        return [token.lower() for token in _json_or_csv_to_list(self.TOR_ISP_PATTERNS)]

    @property
    def tor_as_patterns(self) -> List[str]:
        return [token.lower() for token in _json_or_csv_to_list(self.TOR_AS_PATTERNS)]


def get_settings() -> Settings:
    return Settings()
