# market_updater/config/settings.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from market_updater.errors import ConfigError

logger = logging.getLogger("market_updater.config")

CMC_LISTINGS_URL = "https://pro-api.coinmarketcap.com/v1/cryptocurrency/listings/latest"
CMC_MAX_LIMIT = 5000
LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_int(name: str, value: str | None, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        out = int(value)
    except ValueError as exc:
        raise ConfigError(f'env variable "{name}" must be an integer, got {value!r}') from exc
    if out < minimum or (maximum is not None and out > maximum):
        bound = f"{minimum}..{maximum}" if maximum is not None else f">= {minimum}"
        raise ConfigError(f'env variable "{name}" must be {bound}, got {out}')
    return out


def parse_float(name: str, value: str | None, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        out = float(value)
    except ValueError as exc:
        raise ConfigError(f'env variable "{name}" must be a number, got {value!r}') from exc
    if out <= 0:
        raise ConfigError(f'env variable "{name}" must be positive, got {out}')
    return out


def parse_log_level(value: str | None) -> str:
    level = (value or "INFO").strip().upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f'env variable "LOG_LEVEL" must be one of {sorted(LOG_LEVELS)}, got {value!r}')
    return level


def _required(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ConfigError(f'env variable "{name}" is not specified.')
    return value


@dataclass(frozen=True)
class Settings:
    CMC_API_KEY: str
    PROJECT_ID: str
    CMC_LISTINGS_URL: str = CMC_LISTINGS_URL
    CMC_LIMIT: int = 10
    CMC_CONVERT: str = "USD"
    CMC_TIMEOUT_SECONDS: float = 10.0
    MARKET_COLLECTION: str = "Market"
    BATCH_COLLECTION: str = "BatchMarket"
    INDIVIDUAL_ENABLED: bool = True
    BATCH_ENABLED: bool = True
    INDIVIDUAL_INTERVAL_SECONDS: int = 60
    BATCH_INTERVAL_SECONDS: int = 60
    POLL_RUN_ON_START: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the process environment (or an explicit mapping).
        Raises ConfigError when APIKEY / PROJECT_ID are missing or a value is malformed.
        """
        env = os.environ if env is None else env

        return Settings(
            CMC_API_KEY=_required(env, "APIKEY"),
            PROJECT_ID=_required(env, "PROJECT_ID"),
            CMC_LISTINGS_URL=env.get("CMC_LISTINGS_URL") or CMC_LISTINGS_URL,
            CMC_LIMIT=parse_int("CMC_LIMIT", env.get("CMC_LIMIT"), 10, maximum=CMC_MAX_LIMIT),
            CMC_CONVERT=(env.get("CMC_CONVERT") or "USD").strip().upper(),
            CMC_TIMEOUT_SECONDS=parse_float("CMC_TIMEOUT_SECONDS", env.get("CMC_TIMEOUT_SECONDS"), 10.0),
            MARKET_COLLECTION=env.get("MARKET_COLLECTION") or "Market",
            BATCH_COLLECTION=env.get("BATCH_COLLECTION") or "BatchMarket",
            INDIVIDUAL_ENABLED=parse_bool(env.get("INDIVIDUAL_ENABLED"), True),
            BATCH_ENABLED=parse_bool(env.get("BATCH_ENABLED"), True),
            INDIVIDUAL_INTERVAL_SECONDS=parse_int(
                "INDIVIDUAL_INTERVAL_SECONDS", env.get("INDIVIDUAL_INTERVAL_SECONDS"), 60
            ),
            BATCH_INTERVAL_SECONDS=parse_int("BATCH_INTERVAL_SECONDS", env.get("BATCH_INTERVAL_SECONDS"), 60),
            POLL_RUN_ON_START=parse_bool(env.get("POLL_RUN_ON_START"), False),
            HOST=env.get("HOST") or "0.0.0.0",
            PORT=parse_int("PORT", env.get("PORT"), 8080, maximum=65535),
            LOG_LEVEL=parse_log_level(env.get("LOG_LEVEL")),
        )


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load the env file (if any) into the process environment, then build Settings once."""
    path = env_file or os.getenv("ENV_FILE", "./.env")
    if os.path.exists(path):
        load_dotenv(path, override=False)
    else:
        logger.info("env file %s not found; using process environment only", path)
    return Settings.from_env()
