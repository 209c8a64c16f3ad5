"""
Application Configuration

Centralized configuration management using Pydantic settings.
Loads from environment variables with fallback to .env file.
"""
from typing import List
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Note: We use lru_cache on get_settings() to ensure we only load
    configuration once. Services receive a Settings instance explicitly,
    so tests build their own instead of clearing the cache.
    """

    # Central registry database (tenants + domains)
    DATABASE_URL: str = "sqlite:///./zyrapay.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Per-tenant databases: <prefix><tenant_id><suffix>
    TENANT_DATABASE_PREFIX: str = "tenant"
    TENANT_DATABASE_SUFFIX: str = ""
    TENANT_DATABASE_DIR: str = "./tenants"  # sqlite only

    # Tenant subdomains
    TENANT_BASE_DOMAIN: str = "zyraispay.zyraaf.cloud"
    SUBDOMAIN_MAX_LENGTH: int = 30
    SUBDOMAIN_FALLBACK_PREFIX: str = "biz-"
    SUBDOMAIN_CONFLICT_RETRIES: int = 5

    # IntaSend wallet provider
    INTASEND_SECRET_KEY: str = ""
    INTASEND_PUBLIC_KEY: str = ""
    INTASEND_LIVE_URL: str = "https://payment.intasend.com/api"
    INTASEND_SANDBOX_URL: str = "https://sandbox.intasend.com/api"
    INTASEND_TIMEOUT: int = 10
    WALLET_CURRENCY: str = "KES"
    WALLET_CAN_DISBURSE: bool = True

    # Environments where a failed wallet call falls back to a placeholder id
    PLACEHOLDER_WALLET_ENVIRONMENTS: List[str] = ["local", "testing"]
    PLACEHOLDER_WALLET_PREFIX: str = "DUMMY-"

    # Password policy
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_REQUIRE_MIXED_CASE: bool = False
    PASSWORD_REQUIRE_NUMBERS: bool = False
    PASSWORD_REQUIRE_SYMBOLS: bool = False

    # Redis for registration rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_ENABLED: bool = True
    REGISTRATION_RATE_LIMIT_PER_MINUTE: int = 5
    REGISTRATION_RATE_LIMIT_BURST: int = 3

    # Application settings
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def wallet_sandbox(self) -> bool:
        """The wallet API runs in test mode everywhere except production."""
        return not self.is_production

    @property
    def allows_placeholder_wallet(self) -> bool:
        return self.ENVIRONMENT in self.PLACEHOLDER_WALLET_ENVIRONMENTS


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only instantiate settings once.
    This is efficient but means settings are immutable at runtime.
    """
    return Settings()
