"""
Database Configuration
======================

Centralized connection configuration for every bot.
Handles the PostgreSQL content store and the oracle endpoint, with proper
env var handling. Missing required parameters abort the run before any item
is processed.
"""
import os
from typing import Optional
from dataclasses import dataclass

from .settings import Settings


class ConfigurationError(ValueError):
    """Required connection parameters are missing or invalid."""


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""
    host: str
    port: int
    user: str
    password: str
    database: str
    min_size: int = 1
    max_size: int = 5

    @classmethod
    def from_env(cls, min_size: int = 1, max_size: int = 5) -> 'PostgresConfig':
        """Create config from environment variables."""
        host = os.getenv('POSTGRES_HOST')
        if not host:
            raise ConfigurationError("POSTGRES_HOST environment variable is required")

        return cls(
            host=host,
            port=int(os.getenv('POSTGRES_PORT', '5432')),
            user=os.getenv('POSTGRES_USER', 'botfarm_user'),
            password=os.getenv('POSTGRES_PASSWORD', ''),
            database=os.getenv('POSTGRES_DB', 'botfarm'),
            min_size=min_size,
            max_size=max_size,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> 'PostgresConfig':
        """Create config from a loaded Settings instance."""
        if not settings.postgres_host:
            raise ConfigurationError("POSTGRES_HOST environment variable is required")

        return cls(
            host=settings.postgres_host,
            port=settings.postgres_port,
            user=settings.postgres_user,
            password=settings.postgres_password,
            database=settings.postgres_db,
            min_size=settings.postgres_min_pool,
            max_size=settings.postgres_max_pool,
        )

    def to_asyncpg_kwargs(self) -> dict:
        """Convert to asyncpg.create_pool kwargs."""
        return {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database,
            'min_size': self.min_size,
            'max_size': self.max_size,
        }


@dataclass
class OracleConfig:
    """Oracle (OpenAI-compatible) connection and retry configuration."""
    api_key: str
    model: str
    timeout_seconds: float = 120.0
    max_retries: int = 3
    retry_delay_seconds: float = 10.0
    breaker_threshold: int = 5
    cache_ttl_seconds: int = 0
    embedding_model: str = "text-embedding-3-small"

    @classmethod
    def from_settings(cls, settings: Settings) -> 'OracleConfig':
        """Create config from a loaded Settings instance."""
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable is required")
        if settings.oracle_max_retries < 1:
            raise ConfigurationError("ORACLE_MAX_RETRIES must be at least 1")

        return cls(
            api_key=settings.openai_api_key,
            model=settings.oracle_model,
            timeout_seconds=settings.oracle_timeout_seconds,
            max_retries=settings.oracle_max_retries,
            retry_delay_seconds=settings.oracle_retry_delay_seconds,
            breaker_threshold=settings.circuit_breaker_threshold,
            cache_ttl_seconds=settings.oracle_cache_ttl_seconds,
            embedding_model=settings.embedding_model,
        )


def get_postgres_config(settings: Optional[Settings] = None) -> PostgresConfig:
    """Get PostgreSQL configuration from settings, or the environment."""
    if settings is None:
        return PostgresConfig.from_env()
    return PostgresConfig.from_settings(settings)


async def create_postgres_pool(config: PostgresConfig):
    """Create PostgreSQL connection pool from config."""
    import asyncpg
    return await asyncpg.create_pool(**config.to_asyncpg_kwargs())
