"""Environment configuration management for the Lemdata router."""

from pydantic_settings import BaseSettings
from typing import Optional
import logging

class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Server configuration
    APP_NAME: str = "Lemdata Router"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3001

    # Redis (usage ledger, conversation turns, telemetry)
    REDIS_URL: str = "redis://localhost:6379"
    USE_REDIS: bool = True
    USAGE_RETENTION_DAYS: int = 90
    CONVERSATION_MAX_TURNS: int = 50

    # Provider credentials and hosts
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    HUGGINGFACE_API_KEY: Optional[str] = None
    HUGGINGFACE_MODEL: str = "mistralai/Mistral-7B-Instruct-v0.2"
    HUGGINGFACE_BASE_URL: str = "https://api-inference.huggingface.co/models"
    OLLAMA_HOST: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.2:8b"

    # Timeouts (seconds)
    PROBE_TIMEOUT_SECONDS: float = 2.0
    LOCAL_GENERATION_TIMEOUT: float = 30.0
    CLOUD_GENERATION_TIMEOUT: float = 60.0
    PROBE_CACHE_TTL_SECONDS: float = 0.0

    # Routing overrides (None keeps the policy file value)
    DAILY_COST_THRESHOLD: Optional[float] = None
    FREE_QUERIES_PER_DAY: Optional[int] = None
    HISTORY_WINDOW: Optional[int] = None
    POLICY_FILE: Optional[str] = None

    # CORS settings
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: list[str] = ["*"]
    CORS_HEADERS: list[str] = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Allow extra env vars without error

# Global settings instance
settings = Settings()

def get_cors_config(config: Optional[Settings] = None) -> dict:
    """Get CORS configuration."""
    config = config or settings
    return {
        "allow_origins": config.CORS_ORIGINS,
        "allow_credentials": config.CORS_CREDENTIALS,
        "allow_methods": config.CORS_METHODS,
        "allow_headers": config.CORS_HEADERS,
    }

def configure_logging(config: Optional[Settings] = None) -> None:
    """Apply LOG_LEVEL / LOG_FORMAT to the root logger."""
    config = config or settings
    level = logging.DEBUG if config.DEBUG else getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.LOG_FORMAT)
