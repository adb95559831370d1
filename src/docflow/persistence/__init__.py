"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from docflow.core.config import AppSettings
from docflow.core.protocols import IArtifactStore, IProjectStore
from docflow.persistence.memory_backend import MemoryArtifactStore, MemoryProjectStore
from docflow.persistence.redis_backend import RedisProjectStore
from docflow.persistence.s3_backend import S3ArtifactStore


def create_persistence(
    settings: AppSettings | None = None,
) -> tuple[IProjectStore, IArtifactStore]:
    """Create wired-up persistence backends from application settings.

    Returns:
        Tuple of (project_store, artifact_store).
    """
    if settings is None:
        settings = AppSettings()

    project_store: IProjectStore
    if settings.registry.backend == "redis":
        project_store = RedisProjectStore(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
            key_prefix=settings.registry.key_prefix,
            lock_timeout=settings.redis.lock_timeout,
            lock_wait=settings.redis.lock_wait,
        )
    else:
        project_store = MemoryProjectStore()

    artifact_store: IArtifactStore
    if settings.artifacts.backend == "s3":
        artifact_store = S3ArtifactStore(
            bucket=settings.artifacts.bucket,
            region=settings.artifacts.region,
            endpoint_url=settings.artifacts.endpoint_url,
        )
    else:
        artifact_store = MemoryArtifactStore()

    return project_store, artifact_store
