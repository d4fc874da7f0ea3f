"""
Configuration module for database and oracle connections.
"""
from .settings import Settings, get_settings
from .database import (
    ConfigurationError,
    PostgresConfig,
    OracleConfig,
    get_postgres_config,
    create_postgres_pool,
)

__all__ = [
    'Settings',
    'get_settings',
    'ConfigurationError',
    'PostgresConfig',
    'OracleConfig',
    'get_postgres_config',
    'create_postgres_pool',
]
