from functools import lru_cache
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Project Info
    PROJECT_NAME: str = "Form Dashboard API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = Field(default="development", description="Environment: development, staging, production")

    # Storage
    DATA_DIR: str = Field(default="./data", description="Root directory for form files and submissions")
    FORMS_DIR: Optional[str] = Field(default=None, description="Form configuration directory (defaults to DATA_DIR/forms)")
    SUBMISSIONS_DIR: Optional[str] = Field(
        default=None,
        description="Submission directory (defaults to DATA_DIR/submissions)"
    )

    # Security - JWT
    SECRET_KEY: str = Field(
        default="",
        description="Secret key for JWT signing. Leave empty to disable authentication (development only)"
    )
    ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=1440, description="JWT token expiration in minutes")

    @field_validator('SECRET_KEY')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if v and len(v) < 32:
            raise ValueError('SECRET_KEY must be at least 32 characters')
        return v

    # Security - Admin credential
    ADMIN_USERNAME: str = Field(default="admin", description="Admin username")
    ADMIN_PASSWORD: str = Field(default="", description="Admin password (plain text)")
    ADMIN_PASSWORD_HASH: str = Field(default="", description="Admin password bcrypt hash (preferred over ADMIN_PASSWORD)")

    # Security - CORS
    BACKEND_CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # File Storage
    MAX_FILE_SIZE: int = Field(default=10485760, description="Max upload size in bytes (default 10MB)")
    MAX_REQUEST_SIZE: int = Field(default=52428800, description="Max request body size in bytes (default 50MB)")

    # Webhooks
    WEBHOOK_TIMEOUT: float = Field(default=10.0, description="Webhook request timeout in seconds")
    WEBHOOK_MAX_REDIRECTS: int = Field(default=3, description="Maximum redirects followed by webhook calls")
    WEBHOOK_USER_AGENT: str = Field(default="FormDashboard/1.0", description="User-Agent sent with webhook calls")
    WEBHOOK_SOURCE: str = Field(default="FormDashboard", description="Source tag included in webhook payloads")

    # External APIs - Schema generator (OpenAI compatible)
    OPENAI_API_KEY: str = Field(default="", description="API key for the form schema generator")
    OPENAI_API_URL: str = Field(default="https://api.openai.com/v1", description="Generator API base URL")
    OPENAI_MODEL: str = Field(default="gpt-4o", description="Generator model")
    GENERATOR_TIMEOUT: float = Field(default=60.0, description="Generator API timeout in seconds")
    GENERATOR_TEMPERATURE: float = Field(default=0.7, description="Generator sampling temperature")
    GENERATOR_MAX_TOKENS: int = Field(default=4000, description="Generator completion token limit")

    # Server Configuration
    WORKERS: int = Field(default=1, description="Number of Uvicorn workers")
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=3001, description="Server port")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    LOG_DIR: str = Field(default="./logs", description="Directory for log files")
    LOG_RETENTION_DAYS: int = Field(default=30, description="Number of days to keep log files")
    LOG_MASK_SENSITIVE: bool = Field(default=True, description="Enable sensitive data masking in logs")
    LOG_ENABLE_REQUEST_LOGGING: bool = Field(default=True, description="Enable HTTP request/response logging")

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable rate limiting")
    RATE_LIMIT_DEFAULT: str = Field(default="100/minute", description="Default rate limit")
    RATE_LIMIT_STORAGE_URI: str = Field(default="memory://", description="Rate limit storage URI")

    # Circuit Breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(default=5, description="Failures before circuit opens")
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = Field(default=30, description="Seconds before attempting reset")
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = Field(default=3, description="Max calls in half-open state")

    def get_log_level(self) -> str:
        """Get log level based on environment."""
        if self.ENVIRONMENT.lower() in ["development", "dev", "test"]:
            return "DEBUG"
        return self.LOG_LEVEL.upper()

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() in ["development", "dev"]

    @property
    def auth_enabled(self) -> bool:
        """Authentication is enforced only when a signing secret is configured."""
        return bool(self.SECRET_KEY)

    @property
    def forms_path(self) -> Path:
        return Path(self.FORMS_DIR) if self.FORMS_DIR else Path(self.DATA_DIR) / "forms"

    @property
    def submissions_path(self) -> Path:
        return Path(self.SUBMISSIONS_DIR) if self.SUBMISSIONS_DIR else Path(self.DATA_DIR) / "submissions"


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once."""
    return Settings()
