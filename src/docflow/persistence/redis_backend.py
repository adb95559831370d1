"""Redis backend implementing IProjectStore.

Each project is one JSON document; a hash maps workflow ids to project keys
and a set holds the ids of workflows discarded by a reset.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import redis
from redis.exceptions import LockError

from docflow.core.exceptions import StoreError
from docflow.models.project import ProjectRecord

logger = logging.getLogger(__name__)


class RedisProjectStore:
    """Production IProjectStore backed by Redis."""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 key_prefix: str = "docflow", lock_timeout: float = 30.0,
                 lock_wait: float = 10.0) -> None:
        self._host = host
        self._port = port
        self._db = db
        self._prefix = key_prefix
        self._lock_timeout = lock_timeout
        self._lock_wait = lock_wait
        self._client = redis.Redis(
            host=host, port=port, db=db, decode_responses=True,
        )

    def _project_key(self, project_key: str) -> str:
        return f"{self._prefix}:project:{project_key}"

    @property
    def _index_key(self) -> str:
        return f"{self._prefix}:workflows"

    @property
    def _retired_key(self) -> str:
        return f"{self._prefix}:retired"

    def load(self, project_key: str) -> ProjectRecord | None:
        try:
            raw = self._client.get(self._project_key(project_key))
        except Exception as exc:
            raise StoreError(f"Redis GET failed for project={project_key!r}: {exc}") from exc
        if raw is None:
            return None
        return ProjectRecord.model_validate_json(raw)

    def save(self, record: ProjectRecord) -> None:
        try:
            pipe = self._client.pipeline()
            pipe.set(self._project_key(record.project_key), record.model_dump_json())
            pipe.hset(self._index_key, record.workflow_id, record.project_key)
            pipe.execute()
        except Exception as exc:
            raise StoreError(
                f"Redis SET failed for project={record.project_key!r}: {exc}"
            ) from exc

    def delete(self, project_key: str) -> None:
        record = self.load(project_key)
        try:
            pipe = self._client.pipeline()
            pipe.delete(self._project_key(project_key))
            if record is not None:
                pipe.hdel(self._index_key, record.workflow_id)
            pipe.execute()
        except Exception as exc:
            raise StoreError(f"Redis DELETE failed for project={project_key!r}: {exc}") from exc

    def resolve(self, workflow_id: str) -> str | None:
        try:
            return self._client.hget(self._index_key, workflow_id)
        except Exception as exc:
            raise StoreError(f"Redis HGET failed for workflow={workflow_id!r}: {exc}") from exc

    def retire(self, workflow_id: str) -> None:
        try:
            self._client.sadd(self._retired_key, workflow_id)
        except Exception as exc:
            raise StoreError(f"Redis SADD failed for workflow={workflow_id!r}: {exc}") from exc

    def is_retired(self, workflow_id: str) -> bool:
        try:
            return bool(self._client.sismember(self._retired_key, workflow_id))
        except Exception as exc:
            raise StoreError(
                f"Redis SISMEMBER failed for workflow={workflow_id!r}: {exc}"
            ) from exc

    def project_keys(self) -> list[str]:
        try:
            return sorted(set(self._client.hvals(self._index_key)))
        except Exception as exc:
            raise StoreError(f"Redis HVALS failed: {exc}") from exc

    @contextmanager
    def lock(self, project_key: str) -> Iterator[None]:
        """Redis lock on one project, shared by every engine process on this server.

        The lock expires after lock_timeout so a crashed holder cannot wedge
        the project; waiting longer than lock_wait raises StoreError.
        """
        lock = self._client.lock(
            f"{self._prefix}:lock:{project_key}",
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_wait,
        )
        try:
            acquired = lock.acquire()
        except Exception as exc:
            raise StoreError(f"Redis LOCK failed for project={project_key!r}: {exc}") from exc
        if not acquired:
            raise StoreError(
                f"Timed out after {self._lock_wait}s waiting for project={project_key!r}"
            )
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as exc:
                logger.warning("Lock on project=%r expired while held: %s", project_key, exc)
