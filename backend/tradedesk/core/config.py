"""
Application Configuration Management
Centralized settings and environment variables
"""

from typing import Any, Dict, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "TradeDesk Realtime"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")

    # Server
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    CORS_ORIGINS: List[str] = Field(default=["*"])

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_DIR: str = Field(default="logs")

    # Push-update client
    PUSH_URL: str = Field(default="ws://localhost:8000/ws")
    RECONNECT_STRATEGY: str = Field(default="linear")
    RECONNECT_BASE_DELAY: float = Field(default=1.0)  # seconds
    RECONNECT_MAX_DELAY: float = Field(default=30.0)  # exponential policy only
    MAX_RECONNECT_ATTEMPTS: int = Field(default=5)  # 0 = uncapped (exponential only)
    PING_INTERVAL: float = Field(default=30.0)  # seconds
    DEFAULT_USER_ID: Optional[int] = Field(default=None)

    # Push hub
    MARKET_DATA_INTERVAL: float = Field(default=5.0)  # seconds
    PORTFOLIO_UPDATE_INTERVAL: float = Field(default=30.0)  # seconds

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> List[str]:
        """Parse CORS origins from string or list"""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("RECONNECT_STRATEGY")
    @classmethod
    def validate_reconnect_strategy(cls, v: str) -> str:
        """Validate reconnect backoff strategy"""
        valid_strategies = ["linear", "exponential"]
        if v.lower() not in valid_strategies:
            raise ValueError(f"Reconnect strategy must be one of: {valid_strategies}")
        return v.lower()

    @field_validator("PUSH_URL")
    @classmethod
    def validate_push_url(cls, v: str) -> str:
        """Validate push endpoint URL format"""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("Push URL must start with ws:// or wss://")
        return v


# Global settings instance
settings = Settings()


def get_realtime_config(config: Optional[Settings] = None) -> Dict[str, Any]:
    """Get push-update client configuration dictionary"""
    config = config or settings
    return {
        "url": config.PUSH_URL,
        "reconnect_strategy": config.RECONNECT_STRATEGY,
        "reconnect_base_delay": config.RECONNECT_BASE_DELAY,
        "reconnect_max_delay": config.RECONNECT_MAX_DELAY,
        "max_reconnect_attempts": config.MAX_RECONNECT_ATTEMPTS,
        "ping_interval": config.PING_INTERVAL,
        "default_user_id": config.DEFAULT_USER_ID,
    }


__all__ = [
    "Settings",
    "settings",
    "get_realtime_config",
]
