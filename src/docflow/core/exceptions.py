"""docflow exception hierarchy.

Every error carries a stable ``code`` so callers (the HTTP layer included) can
map it to a precise response without string matching.
"""

from __future__ import annotations


class DocflowError(Exception):
    """Base exception for all docflow errors."""

    code = "DOCFLOW_ERROR"


class ConfigurationError(DocflowError):
    """Invalid budget, batch-size, or pipeline definition."""

    code = "CONFIGURATION_ERROR"


class NotFoundError(DocflowError):
    """Unknown workflow, step, or task id."""

    code = "NOT_FOUND"


class DependencyNotMetError(DocflowError):
    """A step was started before all of its predecessors finished."""

    code = "DEPENDENCY_NOT_MET"

    def __init__(self, step_id: int, missing: list[int]) -> None:
        self.step_id = step_id
        self.missing = sorted(missing)
        super().__init__(f"Step {step_id} is waiting on steps {self.missing}")


class AlreadyRunningError(DocflowError):
    """The step is already RUNNING."""

    code = "ALREADY_RUNNING"

    def __init__(self, step_id: int) -> None:
        self.step_id = step_id
        super().__init__(f"Step {step_id} is already running")


class InvalidTransitionError(DocflowError):
    """A status change not allowed by the step or task state machine."""

    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, from_status: str, to_status: str) -> None:
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition for {entity}: '{from_status}' -> '{to_status}'")


class StaleTaskError(DocflowError):
    """Operation references a workflow or queue that has been discarded."""

    code = "STALE_TASK"


class StoreError(DocflowError):
    """A persistence backend operation failed."""

    code = "STORE_ERROR"
