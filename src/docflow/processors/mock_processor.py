"""Mock task processor for local development and testing.

Returns canned completions. No real model calls.
"""

from __future__ import annotations

from docflow.models.tasks import CompletionData, Task


class MockTaskProcessor:
    """ITaskProcessor implementation that returns deterministic completions."""

    def __init__(self, default_notes: str = "Mock processing complete") -> None:
        self._default_notes = default_notes
        self._failures: dict[str, str] = {}
        self._errors: dict[str, Exception] = {}
        self.processed: list[str] = []

    def fail_on(self, path_contains: str, error: str = "Mock failure") -> None:
        """Report failure for tasks whose work item path contains a keyword."""
        self._failures[path_contains] = error

    def raise_on(self, path_contains: str, exc: Exception) -> None:
        """Raise exc for tasks whose work item path contains a keyword."""
        self._errors[path_contains] = exc

    def process(self, task: Task) -> CompletionData:
        self.processed.append(task.task_id)
        path = task.work_item.path if task.work_item else ""
        for keyword, exc in self._errors.items():
            if keyword in path:
                raise exc
        for keyword, error in self._failures.items():
            if keyword in path:
                return CompletionData(success=False, error=error)
        return CompletionData(notes=self._default_notes, output_file=f"{path}.md" if path else None)
