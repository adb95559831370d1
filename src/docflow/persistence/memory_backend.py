"""In-memory backends for tests and single-process use, dict-backed."""

from __future__ import annotations

from contextlib import nullcontext

from docflow.models.project import ProjectRecord


class MemoryProjectStore:
    """Dict-backed IProjectStore.

    Records are copied on the way in and out, so a caller mutating a loaded
    record changes nothing until it saves.

    Retired ids are kept for the life of the store so late callers keep
    getting StaleTaskError; a long-lived process that wants them pruned
    replaces the store.
    """

    def __init__(self) -> None:
        self._records: dict[str, ProjectRecord] = {}
        self._workflow_index: dict[str, str] = {}
        self._retired: set[str] = set()

    def load(self, project_key: str) -> ProjectRecord | None:
        record = self._records.get(project_key)
        return record.model_copy(deep=True) if record is not None else None

    def save(self, record: ProjectRecord) -> None:
        previous = self._records.get(record.project_key)
        if previous is not None and previous.workflow_id != record.workflow_id:
            self._workflow_index.pop(previous.workflow_id, None)
        self._records[record.project_key] = record.model_copy(deep=True)
        self._workflow_index[record.workflow_id] = record.project_key

    def delete(self, project_key: str) -> None:
        record = self._records.pop(project_key, None)
        if record is not None:
            self._workflow_index.pop(record.workflow_id, None)

    def resolve(self, workflow_id: str) -> str | None:
        return self._workflow_index.get(workflow_id)

    def retire(self, workflow_id: str) -> None:
        self._retired.add(workflow_id)

    def is_retired(self, workflow_id: str) -> bool:
        return workflow_id in self._retired

    def project_keys(self) -> list[str]:
        return sorted(self._records)

    def lock(self, project_key: str) -> nullcontext[None]:
        # one process only; the registry's per-key RLock already serializes
        return nullcontext()


class MemoryArtifactStore:
    """Dict-backed IArtifactStore."""

    def __init__(self) -> None:
        self._files: dict[str, bytes] = {}

    def read(self, path: str) -> bytes:
        return self._files[path]

    def write(self, path: str, data: bytes, content_type: str = "text/markdown") -> str:
        self._files[path] = data
        return f"memory://{path}"

    def list_files(self, prefix: str) -> list[str]:
        return sorted(k for k in self._files if k.startswith(prefix))
