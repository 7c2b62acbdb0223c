"""Configuration management using Pydantic Settings."""

import os

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # No .env file on AWS compute
        env_file=".env" if os.getenv("AWS_EXECUTION_ENV") is None else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Runtime environment ("development" or "production")
    environment: str = "development"

    # AWS Configuration
    aws_region: str = "us-east-2"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_session_token: str | None = None

    @field_validator(
        "aws_access_key_id", "aws_secret_access_key", "admin_token", mode="before"
    )
    @classmethod
    def convert_empty_string_to_none(cls, v):
        """Convert empty strings to None so unset env vars behave as missing."""
        if v is None:
            return None
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    # DynamoDB Configuration
    dynamodb_endpoint_url: str | None = None
    dynamodb_table_api_keys: str = "gateway-api-keys"
    dynamodb_table_webhooks: str = "gateway-webhooks"
    dynamodb_table_resources: str = "gateway-resources"

    # Application Configuration
    log_level: str = "INFO"
    api_title: str = "External API Gateway"
    api_version: str = "1.0.0"

    # Credentials
    default_key_max_requests: int = 1000
    default_key_window_seconds: int = 3600
    bcrypt_rounds: int = 12
    admin_token: str | None = None

    # Rate Limiting
    rate_limit_sweep_interval_seconds: float = 30.0
    rate_limit_stats_interval_seconds: float = 300.0

    # Webhook delivery
    webhook_timeout_seconds: float = 10.0
    webhook_connect_timeout_seconds: float = 5.0
    webhook_queue_size: int = 1000
    webhook_workers: int = 4
    webhook_default_max_retries: int = 3
    webhook_default_backoff_multiplier: float = 2.0

    # API Limits
    max_request_size_bytes: int = 512 * 1024  # 512KB

    @property
    def is_production(self) -> bool:
        """Whether error details must be hidden from callers."""
        return self.environment.lower() == "production"


# Global settings instance
settings = Settings()
