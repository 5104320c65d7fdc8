"""
Configuration management for the tour platform auth service
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Auth service configuration loaded from environment variables"""

    # Runtime
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "./logs"

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./app.db"

    # Session tokens
    JWT_SECRET: str = "change-this-secret-in-prod"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN_DAYS: int = 90
    JWT_COOKIE_EXPIRES_IN: int = 90

    # Password reset
    PASSWORD_RESET_EXPIRES_MINUTES: int = 10

    # Email delivery (empty SMTP_HOST logs messages instead of sending them)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "Natours <no-reply@natours.io>"

    # CORS Configuration
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        frozen=True,
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


# Global settings instance
settings = Settings()
