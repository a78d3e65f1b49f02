"""
config.py — Runtime Configuration for the Checkout Service

All settings are read from environment variables (or a local `.env` file)
through pydantic-settings. Use `get_settings()` instead of instantiating
`Settings` directly so every module shares the same cached instance.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    """Find .env file - check local dir, then project root."""
    local_env = Path(".env")
    root_env = Path(__file__).resolve().parent.parent / ".env"

    if local_env.exists():
        return str(local_env)
    if root_env.exists():
        return str(root_env)
    return ".env"


class Settings(BaseSettings):
    """Configuration for the cart page checkout flow."""

    # Store API (cart, orders, payment preferences)
    STORE_API_URL: str = "http://localhost:8000"
    STORE_API_TOKEN: str = ""

    # Shipping calculator
    SHIPPING_API_URL: str = "https://www.melhorenvio.com.br"
    SHIPPING_ORIGIN_ZIP: str = "18072-060"

    # Per-call HTTP timeouts
    REQUEST_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    READ_TIMEOUT_SECONDS: float = Field(default=8.0, gt=0)

    # Payment confirmation polling (36 x 5s = ~3 minutes)
    POLL_INTERVAL_SECONDS: float = Field(default=5.0, ge=0)
    POLL_MAX_ATTEMPTS: int = Field(default=36, ge=1)

    # Checkout policy
    REQUIRE_SHIPPING_SELECTION: bool = True

    # Local persistence
    STATE_DIR: str = "state"
    PENDING_ORDER_KEY: str = "lastPendingOrder"

    # Navigation
    SUCCESS_PATH: str = "/success"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8010

    # Logging
    LOG_LEVEL: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    LOG_FILE: str = "checkout.log"

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
