"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic_settings import BaseSettings


class BatchingConfig(BaseSettings):
    """Defaults for packing work items into batches."""

    model_config = {"env_prefix": "DOCFLOW_BATCH_"}

    token_budget: int = 80000  # ~80KB of source text per external call
    max_items_per_batch: int = 8
    tokens_per_byte: float = 0.3


class RegistryConfig(BaseSettings):
    """Where per-project workflow state is kept."""

    model_config = {"env_prefix": "DOCFLOW_REGISTRY_"}

    backend: Literal["memory", "redis"] = "memory"
    key_prefix: str = "docflow"


class RedisConfig(BaseSettings):
    """Redis connection for the redis registry backend."""

    model_config = {"env_prefix": "DOCFLOW_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    lock_timeout: float = 30.0  # seconds before a crashed holder's lock expires
    lock_wait: float = 10.0  # seconds to wait for another holder


class ArtifactConfig(BaseSettings):
    """Storage for generated step artifacts."""

    model_config = {"env_prefix": "DOCFLOW_ARTIFACTS_"}

    backend: Literal["memory", "s3"] = "memory"
    bucket: str = "docflow-artifacts"
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override
    prefix: str = "workflows/"


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "DOCFLOW_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    default_mode: Literal["init", "create", "fix", "analyze"] = "init"

    batching: BatchingConfig = BatchingConfig()
    registry: RegistryConfig = RegistryConfig()
    redis: RedisConfig = RedisConfig()
    artifacts: ArtifactConfig = ArtifactConfig()


def configure_logging(settings: AppSettings) -> None:
    """Apply the configured log level to the root logger."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
