"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LendingConfig(BaseSettings):
    """Lending back office configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///lending.db"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Locale configuration (passed explicitly, never applied process-wide)
    timezone: str = "America/Sao_Paulo"
    locale: str = "pt_BR"
    currency: str = "BRL"
    
    # Principal recovery search
    principal_search_lower_ratio: str = "0.5"  # Lower bound as fraction of the total
    principal_search_max_iterations: int = 10
    principal_search_tolerance: str = "0.01"
    
    # Feature flags
    enable_cash_flow: bool = True
    
    class Config:
        env_prefix = "LENDING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
