"""
Application configuration loaded from the environment.

Supported environment files (loaded in order of precedence):
1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
2. .env (fallback)

Every tunable constant used by the resolution and matching pipeline lives
here so it can be overridden without a code change:
- Cache TTLs per data class
- Provider timeouts, retry and circuit breaker settings
- Bookmaker preference order and the low-line threshold
- Forecast decay and minimum sample size
- Prediction ledger location
"""
import os
import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

# Repository root (3 levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)

# Preferred sportsbooks, highest priority first
DEFAULT_BOOKMAKER_PRIORITY = [
    "draftkings",
    "fanduel",
    "betmgm",
    "caesars",
    "pointsbet",
    "barstool",
    "betrivers",
    "wynnbet",
    "unibet",
    "foxbet",
]


class Settings(BaseSettings):
    """Pipeline settings with environment-specific overrides."""

    # Environment
    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Allow extra fields from .env
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Cache TTLs (seconds)
    CACHE_TTL_PLAYER_STATS: int = 86400  # 24 hours
    CACHE_TTL_PREDICTIONS: int = 86400  # 24 hours, keyed by game log fingerprint
    CACHE_TTL_ODDS: int = 3600  # 1 hour
    CACHE_TTL_NEXT_GAME: int = 21600  # 6 hours
    CACHE_TTL_IMAGE_METADATA: int = 604800  # 7 days
    CACHE_TTL_PLAYERS_WITH_LINES: int = 1800  # 30 minutes
    CACHE_TTL_INJURIES: int = 3600  # 1 hour

    # Provider transport
    PROVIDER_TIMEOUT: float = 10.0
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0
    NBA_STATS_BASE_URL: str = "https://stats.nba.com/stats"
    ESPN_BASE_URL: str = "https://site.web.api.espn.com/apis"
    BALLDONTLIE_BASE_URL: str = "https://api.balldontlie.io/v1"
    BALLDONTLIE_API_KEY: str = ""

    # Circuit breakers
    BREAKER_FAIL_MAX: int = 5
    BREAKER_RESET_TIMEOUT: int = 60

    # Market tuning
    BOOKMAKER_PRIORITY: List[str] = DEFAULT_BOOKMAKER_PRIORITY
    LOW_LINE_THRESHOLD: float = 8.0

    # Forecasting
    FORECAST_DECAY: float = 0.1
    MIN_GAMES: int = 3
    RECENT_WINDOW_YEARS: int = 2
    NEXT_GAME_LOOKAHEAD_DAYS: int = 7

    # Prediction ledger
    LEDGER_PATH: str = str(PROJECT_ROOT / "data" / "predictions.jsonl")
    EVALUATION_DELAY_HOURS: int = 24

    # Compare orchestration
    COMPARE_DEADLINE: float = 20.0

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"

    def is_test(self) -> bool:
        """Check if running under the test suite."""
        return self.ENVIRONMENT == "test"

    def cache_ttl_for(self, data_class: str) -> Optional[int]:
        """
        Look up the default TTL for a cached data class.

        Args:
            data_class: One of player_stats, predictions, odds, next_game,
                        image_metadata, players_with_lines, injuries

        Returns:
            TTL in seconds, or None if the class is unknown
        """
        return getattr(self, f"CACHE_TTL_{data_class.upper()}", None)


def _load_env_file() -> Path:
    """
    Pick the environment file based on the ENVIRONMENT variable.

    Loads in order of precedence:
    1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
    2. .env (fallback)
    """
    environment = os.getenv("ENVIRONMENT", "development")

    env_file = PROJECT_ROOT / f".env.{environment}"
    if env_file.exists():
        logger.info(f"Loading environment from {env_file.name}")
        return env_file

    return PROJECT_ROOT / ".env"


@lru_cache()
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings(_env_file=str(_load_env_file()))


settings = get_settings()
