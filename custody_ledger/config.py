"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


# Ledger constants
MIN_DEPOSIT = 1_000_000
INTEREST_RATE = 5            # percent per year
COLLATERAL_RATIO = 150       # percent of loan principal
SECONDS_PER_YEAR = 31_536_000
MAX_INTEREST_RATE = 20       # percent


class LedgerConfig(BaseSettings):
    """Custody ledger configuration"""

    # Ledger rules
    min_deposit: int = MIN_DEPOSIT
    interest_rate: int = INTEREST_RATE
    collateral_ratio: int = COLLATERAL_RATIO
    seconds_per_year: int = SECONDS_PER_YEAR
    max_interest_rate: int = MAX_INTEREST_RATE

    # Identities
    ledger_owner: str = "SP1234567890ABCDEF"
    custody_pool_identity: str = "custody-pool"

    # When False, pause and rate updates only validate and echo
    admin_controls_enforced: bool = True

    # Storage configuration
    storage_backend: str = "memory"  # memory or sqlite
    sqlite_path: str = "custody_ledger.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Security configuration
    jwt_secret: str = "change-me-in-production-use-a-long-random-secret"
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 24

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    class Config:
        env_prefix = "CUSTODY_LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
