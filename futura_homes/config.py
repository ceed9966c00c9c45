"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class FuturaConfig(BaseSettings):
    """Futura Homes back office configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "futura_homes.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091
    cors_origins: str = "*"  # Comma separated

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Contract and schedule rules
    min_plan_months: int = 1
    max_plan_months: int = 60
    downpayment_percentage: str = "10.00"
    bank_financing_percentage: str = "90.00"
    schedule_grace_period_days: int = 7

    # Penalty rules
    penalty_grace_period_days: int = 3
    default_penalty_rate: str = "0.02"  # Monthly rate, pro-rated per day over 30 days
    persist_penalty_on_read: bool = False

    # Walk-in payment rules
    min_partial_payment_ratio: str = "0.10"  # Of the monthly installment

    # Inquiry throttling
    inquiry_rate_limit: int = 5
    inquiry_rate_window_seconds: int = 3600
    inquiry_duplicate_window_hours: int = 24

    # Feature flags
    enable_audit_logging: bool = True
    enable_notifications: bool = True

    class Config:
        env_prefix = "FUTURA_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = FuturaConfig()


def get_config() -> FuturaConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> FuturaConfig:
    """Reload configuration from environment"""
    global config
    config = FuturaConfig()
    return config
