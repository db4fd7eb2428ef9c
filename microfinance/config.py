"""
Configuration Management Module

Environment-based settings via pydantic-settings. Every field can be set with
a ``MICROFINANCE_`` prefixed environment variable or in a ``.env`` file.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class MicrofinanceConfig(BaseSettings):
    """Loan engine and API configuration"""

    model_config = SettingsConfigDict(
        env_prefix="MICROFINANCE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    use_sqlite: bool = True
    database_path: str = "microfinance.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None

    # Business rules
    default_currency: str = "INR"
    schedule_visibility_days: int = 7  # unpaid periods due within this window show as pending
    default_page_size: int = 10

    # Batch overdue recomputation
    overdue_update_api_key: str = ""  # empty disables the batch endpoint
    enable_overdue_scheduler: bool = False
    overdue_refresh_interval_seconds: float = 3600.0

    # Feature flags
    enable_audit_logging: bool = True


config = MicrofinanceConfig()


def get_config() -> MicrofinanceConfig:
    """Get the process configuration"""
    return config


def reload_config() -> MicrofinanceConfig:
    """Re-read configuration from the environment"""
    global config
    config = MicrofinanceConfig()
    return config
