"""
Configuration management with Pydantic Settings
Loads from .env file with validation and defaults
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with validation"""

    # AI provider
    openai_api_key: Optional[str] = Field(None, description="OpenAI API Key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model for transcript analysis")
    openai_temperature: float = Field(default=0.2, description="Sampling temperature for analysis")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./inbox.db",
        description="Database connection URL"
    )

    # Merchant scope used when a request carries no X-Merchant-Id header
    default_merchant_id: str = Field(default="default", description="Fallback merchant id")

    # Background processing
    max_workers: int = Field(default=2, description="Max async workers")
    max_queue_size: int = Field(default=100, description="Max queue size")
    task_max_retries: int = Field(default=3, description="Retries for background analysis")
    task_retention_hours: float = Field(default=24, description="Hours finished tasks stay queryable")
    task_cleanup_interval_seconds: float = Field(default=3600, description="Seconds between finished-task cleanups")

    # Inbox feed limits
    inbox_message_limit: int = Field(default=500, description="Max interactions loaded per inbox read")
    inbox_call_limit: int = Field(default=200, description="Max call records loaded per inbox read")
    agent_display_name: str = Field(default="Shop", description="Sender name for outbound entries")

    # Environment
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        if v not in ["development", "production", "testing"]:
            raise ValueError("Environment must be development, production, or testing")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        if v not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("Invalid log level")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    model_config = {
        "extra": "ignore",  # Ignore extra fields from .env
        "env_file": ".env",
        "case_sensitive": False
    }


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings"""
    return settings
