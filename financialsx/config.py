"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class FinancialsXConfig(BaseSettings):
    """FinancialsX service configuration"""

    # Data location
    data_path: str = "datafiles"  # Folder holding compmast.dbf and company folders
    compmast_path: Optional[str] = None  # Explicit compmast.dbf, overrides discovery
    database_path: str = "financialsx.db"  # SQLite file for users, sessions, settings

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1

    # Security configuration
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"
    password_min_length: int = 8

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Legacy VFP listener defaults
    vfp_host: str = "localhost"
    vfp_port: int = 23456
    vfp_timeout: int = 5

    # Reports
    report_output_dir: Optional[str] = None  # If None, the system temp dir

    # Audit rules
    stale_check_days: int = 90
    balance_tolerance: str = "0.01"
    suspicious_amount_threshold: str = "1000000.00"

    class Config:
        env_prefix = "FINANCIALSX_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = FinancialsXConfig()


def get_config() -> FinancialsXConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> FinancialsXConfig:
    """Reload configuration from environment"""
    global config
    config = FinancialsXConfig()
    return config
