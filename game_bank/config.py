"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class GameBankConfig(BaseSettings):
    """Game bank ledger and settlement engine configuration"""

    # Database configuration
    database_url: str = "sqlite:///game_bank.db"  # sqlite:///<path> or memory://

    # Store concurrency
    store_lock_timeout_seconds: float = 5.0
    store_max_retries: int = 3

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Deposits
    deposit_term_hours: int = 24
    deposit_rate: str = "0.10"  # Payout = principal * (1 + rate)

    # Loan defaults (used until an administrator stores a loan config)
    loan_max_amount: str = "1000.00"
    loan_interest_rate: str = "5"  # Percent
    loan_auto_approve: bool = True

    # Loyalty
    loyalty_points_divisor: int = 100  # One point per this much currency spent

    # Settlement scheduler
    settlement_enabled: bool = True
    settlement_interval_seconds: float = 60.0

    # Market drift: change% = (u - (0.5 - bias)) * 2 * magnitude, u ~ U[0, 1)
    market_drift_percent: float = 1.0
    market_drift_bias: float = 0.01
    market_min_price: str = "0.01"

    # Notification sink: storage, log or webhook
    notification_sink: str = "storage"
    notification_webhook_url: str = ""
    notification_webhook_timeout: float = 5.0

    class Config:
        env_prefix = "GAMEBANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = GameBankConfig()


def get_config() -> GameBankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> GameBankConfig:
    """Reload configuration from environment"""
    global config
    config = GameBankConfig()
    return config
