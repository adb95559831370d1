"""Tests for configuration defaults and env overrides."""

from __future__ import annotations

from docflow.core.config import (
    AppSettings,
    BatchingConfig,
    RedisConfig,
    RegistryConfig,
    configure_logging,
)


def test_default_settings():
    settings = AppSettings()
    assert settings.environment == "dev"
    assert settings.default_mode == "init"
    assert settings.registry.backend == "memory"
    assert settings.artifacts.backend == "memory"


def test_batching_config_defaults():
    config = BatchingConfig()
    assert config.token_budget == 80000
    assert config.max_items_per_batch == 8
    assert config.tokens_per_byte == 0.3


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DOCFLOW_BATCH_TOKEN_BUDGET", "1000")
    monkeypatch.setenv("DOCFLOW_REGISTRY_BACKEND", "redis")
    assert BatchingConfig().token_budget == 1000
    assert RegistryConfig().backend == "redis"


def test_configure_logging_accepts_unknown_level():
    settings = AppSettings(log_level="not-a-level")
    configure_logging(settings)  # falls back to INFO; should not raise


def test_redis_lock_settings(monkeypatch):
    assert RedisConfig().lock_timeout == 30.0
    monkeypatch.setenv("DOCFLOW_REDIS_LOCK_WAIT", "0.5")
    assert RedisConfig().lock_wait == 0.5
