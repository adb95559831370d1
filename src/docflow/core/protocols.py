"""Protocol interfaces for docflow's pluggable collaborators.

Backends and processors satisfy these structurally; no inheritance required,
easy to test with isinstance().
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

from docflow.models.project import ProjectRecord
from docflow.models.tasks import CompletionData, Task


# ---------------------------------------------------------------------------
# Persistence: Project Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IProjectStore(Protocol):
    """Backing store for per-project workflow state and task queues."""

    def load(self, project_key: str) -> ProjectRecord | None: ...

    def save(self, record: ProjectRecord) -> None: ...

    def delete(self, project_key: str) -> None: ...

    def resolve(self, workflow_id: str) -> str | None: ...

    def retire(self, workflow_id: str) -> None: ...

    def is_retired(self, workflow_id: str) -> bool: ...

    def project_keys(self) -> list[str]: ...

    def lock(self, project_key: str) -> AbstractContextManager[Any]:
        """Exclusive hold on one project across every process sharing the store."""
        ...


# ---------------------------------------------------------------------------
# Persistence: Artifact Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IArtifactStore(Protocol):
    """Storage for generated documentation artifacts."""

    def read(self, path: str) -> bytes: ...

    def write(self, path: str, data: bytes, content_type: str = "text/markdown") -> str: ...

    def list_files(self, prefix: str) -> list[str]: ...


# ---------------------------------------------------------------------------
# External processing
# ---------------------------------------------------------------------------

@runtime_checkable
class ITaskProcessor(Protocol):
    """The external unit that does the work a task describes (model call, stub, ...)."""

    def process(self, task: Task) -> CompletionData | Mapping[str, Any]: ...
