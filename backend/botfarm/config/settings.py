from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import Optional
import os


class Settings(BaseSettings):
    """
    Bot settings loaded from environment variables.

    Environment variables can come from:
    - the scheduler's job environment (workflow env section)
    - .env file (for secrets like API keys)
    - System environment

    Variable names match the scheduler conventions:
    - POSTGRES_HOST, POSTGRES_PORT, etc. (for the content store)
    - OPENAI_API_KEY, ORACLE_MODEL (for the oracle)
    - BATCH_SIZE, RATE_LIMIT_SECONDS, USE_WORK_QUEUE (for the runner)
    """

    # Environment
    environment: str = "development"

    # PostgreSQL (content store)
    postgres_host: Optional[str] = None
    postgres_port: int = 5432
    postgres_user: str = "botfarm_user"
    postgres_password: str = ""
    postgres_db: str = "botfarm"
    postgres_min_pool: int = 1
    postgres_max_pool: int = 5
    database_url: Optional[str] = Field(default=None, validate_default=True)

    # Oracle (from .env)
    openai_api_key: str = ""
    oracle_model: str = "gpt-4o-mini"
    oracle_timeout_seconds: float = 120.0
    oracle_max_retries: int = 3
    oracle_retry_delay_seconds: float = 10.0
    oracle_cache_ttl_seconds: int = 0  # 0 disables the response cache
    circuit_breaker_threshold: int = 5

    # Similarity backend
    vector_index_enabled: bool = False
    embedding_model: str = "text-embedding-3-small"

    # Runner
    batch_size: int = 100
    rate_limit_seconds: float = 2.0
    use_work_queue: bool = True

    # Run summary sink (falls back to GITHUB_OUTPUT)
    run_output_path: Optional[str] = Field(default=None, validate_default=True)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra env vars

    @field_validator('run_output_path', mode='before')
    @classmethod
    def default_run_output(cls, v):
        """Use GITHUB_OUTPUT when RUN_OUTPUT_PATH is not set"""
        if v:
            return v
        return os.getenv('GITHUB_OUTPUT') or None

    @field_validator('database_url', mode='before')
    @classmethod
    def construct_database_url(cls, v, info):
        """Construct database URL from components if not explicitly set"""
        if v:
            return v

        data = info.data
        host = data.get('postgres_host')
        if not host:
            return None
        port = data.get('postgres_port', 5432)
        user = data.get('postgres_user', 'botfarm_user')
        password = data.get('postgres_password', '')
        db = data.get('postgres_db', 'botfarm')

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
