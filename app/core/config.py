"""
Core configuration and settings for the Tool Catalog Service
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Service information
    service_name: str = Field(default="tool-catalog-service")
    service_version: str = Field(default="1.0.0")
    api_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")

    # Server configuration
    port: int = Field(default=8003)
    host: str = Field(default="0.0.0.0")  # nosec B104

    # Database configuration
    mongodb_host: str = Field(default="localhost")
    mongodb_port: int = Field(default=27017)
    mongodb_username: Optional[str] = Field(default=None)
    mongodb_password: Optional[str] = Field(default=None)
    mongodb_database: str = Field(default="tooldb")
    mongodb_auth_source: str = Field(default="admin")

    @property
    def mongodb_url(self) -> str:
        """Construct MongoDB connection URL"""
        if self.mongodb_username and self.mongodb_password:
            return (
                f"mongodb://{self.mongodb_username}:{self.mongodb_password}"
                f"@{self.mongodb_host}:{self.mongodb_port}/{self.mongodb_database}"
                f"?authSource={self.mongodb_auth_source}"
            )
        return f"mongodb://{self.mongodb_host}:{self.mongodb_port}/{self.mongodb_database}"

    # Logging configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")
    log_to_file: bool = Field(default=False)
    log_to_console: bool = Field(default=True)
    log_file_path: str = Field(default="logs/tool-catalog-service.log")

    # Request tracing
    correlation_id_header: str = Field(default="X-Correlation-ID")

    # OpenTelemetry export
    enable_tracing: bool = Field(default=True)
    otel_exporter_otlp_endpoint: str = Field(default="http://localhost:4318/v1/traces")

    # JWT Authentication configuration
    jwt_secret: str = Field(default="your_jwt_secret_key")
    jwt_algorithm: str = Field(default="HS256")

    # Change feed reconnection (seconds)
    change_feed_initial_backoff: float = Field(default=0.5, gt=0)
    change_feed_max_backoff: float = Field(default=30.0, gt=0)

    # Download counter retries
    download_increment_max_attempts: int = Field(default=3, ge=1)
    download_increment_backoff: float = Field(default=0.1, ge=0)

    # Reviews
    review_body_max_length: int = Field(default=2000, ge=1)


# Global config instance
config = Config()
