"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import json
import os
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


def _load_price_overrides(raw: str) -> dict[str, int]:
    """
    Parse INVESTOR_PRICE_OVERRIDES.

    The value is a JSON object mapping "<target_type>:<target_id>"
    to a price in minor currency units, e.g.
    {"investor:platform:42": 9900}.
    """
    if not raw.strip():
        return {}
    parsed = json.loads(raw)
    return {str(key): int(value) for key, value in parsed.items()}


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Unlock Service"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/unlocks"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")
    LOG_MAX_BYTES: int = int(os.getenv("LOG_MAX_BYTES", str(10 * 1024 * 1024)))
    LOG_BACKUP_COUNT: int = int(os.getenv("LOG_BACKUP_COUNT", "5"))

    # Payment provider
    STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_TIMEOUT_SECONDS: float = float(
        os.getenv("STRIPE_TIMEOUT_SECONDS", "10")
    )
    STRIPE_MAX_NETWORK_RETRIES: int = int(
        os.getenv("STRIPE_MAX_NETWORK_RETRIES", "2")
    )

    # Pricing, in minor currency units
    CURRENCY: str = os.getenv("CURRENCY", "usd")
    PROJECT_VISIBILITY_PRICE: int = int(
        os.getenv("PROJECT_VISIBILITY_PRICE", "4900")
    )
    PLATFORM_INVESTOR_PRICE: int = int(
        os.getenv("PLATFORM_INVESTOR_PRICE", "2900")
    )
    DIRECTORY_INVESTOR_PRICE: int = int(
        os.getenv("DIRECTORY_INVESTOR_PRICE", "1900")
    )
    INVESTOR_PRICE_OVERRIDES: dict[str, int] = _load_price_overrides(
        os.getenv("INVESTOR_PRICE_OVERRIDES", "")
    )

    # Demand ranking
    DEMAND_WINDOW_DAYS: int = int(os.getenv("DEMAND_WINDOW_DAYS", "30"))
    NEUTRAL_SCORE: int = int(os.getenv("NEUTRAL_SCORE", "50"))
    LEADERBOARD_SIZE: int = int(os.getenv("LEADERBOARD_SIZE", "3"))

    # Onboarding gate (external service). Empty means every
    # subject is treated as fully onboarded.
    ONBOARDING_SERVICE_URL: str = os.getenv("ONBOARDING_SERVICE_URL", "")
    ONBOARDING_TIMEOUT_SECONDS: float = float(
        os.getenv("ONBOARDING_TIMEOUT_SECONDS", "5")
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls.
    """
    return Settings()
