"""Application configuration with environment-specific profiles.

Supports dev, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    app_env: str = "dev"
    log_level: str = "INFO"

    # Logging API collaborator
    logging_api_url: str = ""
    logging_api_token: str = ""
    logging_api_timeout_sec: float = 10.0

    # Circuit session behaviour
    allow_partial_rounds: bool = False
    auto_start_timer: bool = False
    emom_auto_advance: bool = True
    tick_seconds: float = 1.0
    tabata_work_seconds: int = 20
    tabata_rest_seconds: int = 10
    tabata_intervals: int = 8

    # Dashboard refresh window after a day completes
    dashboard_lookback_days: int = 30
    dashboard_lookahead_days: int = 7

    # HTTP surface
    cors_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))
    request_id_header_name: str = "X-Request-ID"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def tabata_cycle_seconds(self) -> int:
        return self.tabata_work_seconds + self.tabata_rest_seconds


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "logging_api_timeout_sec": 30.0,
    },
    "staging": {
        "log_level": "INFO",
        "logging_api_timeout_sec": 10.0,
    },
    "production": {
        "log_level": "WARNING",
        "logging_api_timeout_sec": 8.0,
    },
}


def _cors_origins() -> tuple[str, ...]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip()) or ("*",)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        logging_api_url=os.getenv("LOGGING_API_URL", ""),
        logging_api_token=os.getenv("LOGGING_API_TOKEN", ""),
        logging_api_timeout_sec=float(
            os.getenv("LOGGING_API_TIMEOUT_SEC", str(profile.get("logging_api_timeout_sec", 10.0)))
        ),
        allow_partial_rounds=_env_bool("ALLOW_PARTIAL_ROUNDS", False),
        auto_start_timer=_env_bool("AUTO_START_TIMER", False),
        emom_auto_advance=_env_bool("EMOM_AUTO_ADVANCE", True),
        tick_seconds=float(os.getenv("TICK_SECONDS", "1.0")),
        tabata_work_seconds=int(os.getenv("TABATA_WORK_SECONDS", "20")),
        tabata_rest_seconds=int(os.getenv("TABATA_REST_SECONDS", "10")),
        tabata_intervals=int(os.getenv("TABATA_INTERVALS", "8")),
        dashboard_lookback_days=int(os.getenv("DASHBOARD_LOOKBACK_DAYS", "30")),
        dashboard_lookahead_days=int(os.getenv("DASHBOARD_LOOKAHEAD_DAYS", "7")),
        cors_origins=_cors_origins(),
        request_id_header_name=os.getenv("REQUEST_ID_HEADER_NAME", "X-Request-ID"),
    )
