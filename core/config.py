"""
Configuration Management Module

This module handles loading, validating, and providing access to client configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Selects production or sandbox endpoints with a single flag
- Holds optional API credentials for authenticated clients and feeds
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    print(settings.rest_url)   # production or sandbox REST URL
    print(settings.feed_url)   # production or sandbox WebSocket URL
"""

from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


MAIN_URL = "https://api.pro.coinbase.com"
SANDBOX_URL = "https://api-public.sandbox.pro.coinbase.com"
MAIN_FEED_URL = "wss://ws-feed.pro.coinbase.com"
SANDBOX_FEED_URL = "wss://ws-feed-public.sandbox.pro.coinbase.com"


class Settings(BaseSettings):
    """
    Client Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        coinbase_rest_url: Production REST API base URL
        coinbase_sandbox_rest_url: Sandbox REST API base URL
        coinbase_feed_url: Production WebSocket feed URL
        coinbase_sandbox_feed_url: Sandbox WebSocket feed URL
        coinbase_sandbox: Use sandbox endpoints instead of production
        coinbase_api_key: API key (optional, only for private endpoints)
        coinbase_api_secret: Base64 API secret (optional)
        coinbase_api_passphrase: API passphrase (optional)
        request_timeout: Total timeout for one HTTP request in seconds
        ws_heartbeat: Seconds between WebSocket pings (0 disables)
        log_level: Logging level used by setup_logging()
    """

    # ============================================
    # Coinbase Endpoints
    # ============================================

    coinbase_rest_url: str = Field(
        default=MAIN_URL,
        description="Coinbase Pro REST API base URL"
    )

    coinbase_sandbox_rest_url: str = Field(
        default=SANDBOX_URL,
        description="Coinbase Pro sandbox REST API base URL"
    )

    coinbase_feed_url: str = Field(
        default=MAIN_FEED_URL,
        description="Coinbase Pro WebSocket feed URL"
    )

    coinbase_sandbox_feed_url: str = Field(
        default=SANDBOX_FEED_URL,
        description="Coinbase Pro sandbox WebSocket feed URL"
    )

    coinbase_sandbox: bool = Field(
        default=False,
        description="Route clients and feeds to the sandbox environment"
    )

    # ============================================
    # Credentials
    # ============================================

    coinbase_api_key: str = Field(
        default="",
        description="Coinbase Pro API key (optional for public endpoints)"
    )

    coinbase_api_secret: str = Field(
        default="",
        description="Coinbase Pro base64 API secret (optional for public endpoints)"
    )

    coinbase_api_passphrase: str = Field(
        default="",
        description="Coinbase Pro API passphrase (optional for public endpoints)"
    )

    # ============================================
    # Transport
    # ============================================

    request_timeout: int = Field(
        default=30,
        description="HTTP request timeout in seconds"
    )

    ws_heartbeat: int = Field(
        default=30,
        description="Seconds between WebSocket pings (0 disables)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Derived Properties
    # ============================================

    @property
    def rest_url(self) -> str:
        """REST base URL for the selected environment."""
        return self.coinbase_sandbox_rest_url if self.coinbase_sandbox else self.coinbase_rest_url

    @property
    def feed_url(self) -> str:
        """WebSocket feed URL for the selected environment."""
        return self.coinbase_sandbox_feed_url if self.coinbase_sandbox else self.coinbase_feed_url

    @property
    def has_credentials(self) -> bool:
        """
        Check if a complete set of API credentials is configured.

        Returns:
            True if key, secret and passphrase are all set
        """
        return bool(self.coinbase_api_key and self.coinbase_api_secret and self.coinbase_api_passphrase)


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate client configuration before opening connections.

    Args:
        config: Settings to validate (defaults to the global instance)

    Raises:
        ValueError: If configuration is invalid
    """
    # logging.py reads settings, so import lazily
    from core.logging import logger

    config = config or settings

    for name in ("coinbase_rest_url", "coinbase_sandbox_rest_url"):
        scheme = urlparse(getattr(config, name)).scheme
        if scheme not in ("http", "https"):
            raise ValueError(f"Invalid {name.upper()}: scheme must be http or https, got '{scheme}'")

    for name in ("coinbase_feed_url", "coinbase_sandbox_feed_url"):
        scheme = urlparse(getattr(config, name)).scheme
        if scheme not in ("ws", "wss"):
            raise ValueError(f"Invalid {name.upper()}: scheme must be ws or wss, got '{scheme}'")

    if config.request_timeout <= 0:
        raise ValueError(f"Invalid REQUEST_TIMEOUT: {config.request_timeout}. Must be positive")

    if config.ws_heartbeat < 0:
        raise ValueError(f"Invalid WS_HEARTBEAT: {config.ws_heartbeat}. Must be zero or positive")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    credentials = [config.coinbase_api_key, config.coinbase_api_secret, config.coinbase_api_passphrase]
    if any(credentials) and not all(credentials):
        raise ValueError(
            "COINBASE_API_KEY, COINBASE_API_SECRET and COINBASE_API_PASSPHRASE "
            "must be set together"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Environment: {'sandbox' if config.coinbase_sandbox else 'production'}")
    logger.info(f"REST API: {config.rest_url}")
    logger.info(f"Feed: {config.feed_url}")
    logger.info(f"Credentials: {'configured' if config.has_credentials else 'none (public only)'}")
