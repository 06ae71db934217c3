"""
Application Configuration

Centralized configuration management using Pydantic settings.
Loads from environment variables with fallback to .env file.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Note: get_settings() is cached, so tests must set environment
    variables before the first import of the application.
    """

    # Database settings
    DATABASE_URL: str = "postgresql://localhost/pathosaathi"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Token settings
    # SECURITY: JWT_SECRET must be overridden outside development
    JWT_SECRET: str = "dev-jwt-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN: str = "7d"
    JWT_REFRESH_EXPIRES_IN: str = "30d"
    BCRYPT_ROUNDS: int = 12

    # Platform domain. Used as token issuer and to build partner hostnames
    APP_DOMAIN: str = "pathosaathi.in"
    API_VERSION: str = "v1"

    # Redis for request rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"

    # Application settings
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    # Request rate limiting (token bucket per tenant)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 900
    RATE_LIMIT_MAX_REQUESTS: int = 100
    RATE_LIMIT_BURST: int = 10

    # Auth endpoint limits, attempts per client IP per hour
    LOGIN_RATE_LIMIT: int = 15
    REFRESH_RATE_LIMIT: int = 30

    # Account lock policy
    MAX_LOGIN_ATTEMPTS: int = 5
    ACCOUNT_LOCK_MINUTES: int = 120

    DEFAULT_PAGE_SIZE: int = 10

    # Seconds an identifier format stays cached per tenant/model
    IDENTIFIER_CONFIG_CACHE_TTL: int = 60

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only instantiate settings once.
    """
    return Settings()
