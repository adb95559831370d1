"""ProjectRegistry: owns each project's WorkflowState + TaskQueue pair.

All mutations of a project go through ``session``, which holds that project's
lock, hands out the stored record, and writes it back only when the block
exits cleanly. Locks are per project key; different projects never contend.
Each hold pairs an in-process RLock with the store's own lock, so engine
processes sharing one Redis also take turns on a project.
A reset deletes the record and tombstones its workflow id, so late callers get
StaleTaskError instead of touching a fresh workflow.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta

from docflow.core.exceptions import NotFoundError, StaleTaskError
from docflow.core.protocols import IProjectStore
from docflow.models.pipeline import PipelineDefinition, StepStatus, WorkflowState, utcnow
from docflow.models.project import ProjectRecord
from docflow.persistence.memory_backend import MemoryProjectStore

logger = logging.getLogger(__name__)


def generate_workflow_id(project_key: str, mode: str) -> str:
    project_name = project_key.rstrip("/").split("/")[-1] or "unknown"
    return f"{mode}_{project_name}_{uuid.uuid4().hex[:8]}"


class ProjectRegistry:
    """Maps project keys to their isolated workflow records.

    One lock entry is kept per project key ever seen, and reset ids stay
    tombstoned in the store. Both grow with the number of distinct projects;
    a long-lived process that needs them bounded replaces the registry and
    its store. Dropping a lock on reset is unsafe, since a thread already
    waiting on it would no longer exclude newcomers.
    """

    def __init__(self, store: IProjectStore | None = None) -> None:
        self._store = store if store is not None else MemoryProjectStore()
        self._locks: dict[str, threading.RLock] = {}

    @property
    def store(self) -> IProjectStore:
        return self._store

    def _lock(self, project_key: str) -> threading.RLock:
        lock = self._locks.get(project_key)
        if lock is None:
            # setdefault is atomic, so racing creators end up sharing one lock
            lock = self._locks.setdefault(project_key, threading.RLock())
        return lock

    @contextmanager
    def _guard(self, project_key: str) -> Iterator[None]:
        # store lock is not reentrant; sessions never nest
        with self._lock(project_key), self._store.lock(project_key):
            yield

    def create(self, project_key: str, pipeline: PipelineDefinition) -> ProjectRecord:
        """Return the project's live record, creating it on first contact."""
        with self._guard(project_key):
            record = self._store.load(project_key)
            if record is not None:
                return record
            workflow = WorkflowState(
                workflow_id=generate_workflow_id(project_key, pipeline.mode),
                project_key=project_key,
                pipeline=pipeline,
            )
            record = ProjectRecord(project_key=project_key, workflow=workflow)
            self._store.save(record)
            logger.info("Created workflow %s for %s", workflow.workflow_id, project_key)
            return record

    def resolve(self, workflow_id: str) -> str:
        """Project key that owns workflow_id."""
        if self._store.is_retired(workflow_id):
            raise StaleTaskError(f"Workflow {workflow_id} was reset")
        project_key = self._store.resolve(workflow_id)
        if project_key is None:
            raise NotFoundError(f"Unknown workflow {workflow_id!r}")
        return project_key

    def _load_current(self, project_key: str, workflow_id: str) -> ProjectRecord:
        record = self._store.load(project_key)
        if record is None or record.workflow_id != workflow_id:
            # reset between resolve() and taking the lock
            if self._store.is_retired(workflow_id):
                raise StaleTaskError(f"Workflow {workflow_id} was reset")
            raise NotFoundError(f"Unknown workflow {workflow_id!r}")
        return record

    @contextmanager
    def session(self, workflow_id: str) -> Iterator[ProjectRecord]:
        """Serialized read-modify-write of one project's record."""
        project_key = self.resolve(workflow_id)
        with self._guard(project_key):
            record = self._load_current(project_key, workflow_id)
            yield record
            self._store.save(record)

    def snapshot(self, workflow_id: str) -> ProjectRecord:
        """Consistent read-only copy of the record."""
        project_key = self.resolve(workflow_id)
        with self._lock(project_key):
            return self._load_current(project_key, workflow_id)

    def get(self, project_key: str) -> ProjectRecord | None:
        with self._lock(project_key):
            return self._store.load(project_key)

    def reset(self, workflow_id: str) -> None:
        """Discard the workflow state and task queue together."""
        project_key = self.resolve(workflow_id)
        with self._guard(project_key):
            record = self._load_current(project_key, workflow_id)
            self._discard(record)
        logger.info("Reset workflow %s for %s", workflow_id, project_key)

    def is_retired(self, token: str) -> bool:
        """True for workflow and queue ids discarded by a reset or eviction."""
        return self._store.is_retired(token)

    def _discard(self, record: ProjectRecord) -> None:
        # queue ids are tombstoned too, so orphaned task ids stay recognizable
        for queue_id in record.retired_queue_ids:
            self._store.retire(queue_id)
        if record.queue is not None:
            self._store.retire(record.queue.queue_id)
        self._store.retire(record.workflow_id)
        self._store.delete(record.project_key)

    def records(self) -> list[ProjectRecord]:
        out: list[ProjectRecord] = []
        for project_key in self._store.project_keys():
            record = self.get(project_key)
            if record is not None:
                out.append(record)
        return out

    def evict_idle(self, max_age: timedelta) -> list[str]:
        """Reset workflows untouched for longer than max_age, skipping running ones.

        Never called by the engine itself; eviction is the caller's policy.
        """
        cutoff = utcnow() - max_age
        evicted: list[str] = []
        for project_key in self._store.project_keys():
            with self._guard(project_key):
                record = self._store.load(project_key)
                if record is None:
                    continue
                workflow = record.workflow
                running = any(s.status == StepStatus.RUNNING for s in workflow.steps.values())
                if running or workflow.updated_at >= cutoff:
                    continue
                self._discard(record)
                evicted.append(workflow.workflow_id)
        if evicted:
            logger.info("Evicted %d idle workflows", len(evicted))
        return evicted
