"""WorkflowStateMachine: step status transitions under dependency gates.

State diagram:
    not_started -> running    (all predecessors completed or saved)
    running     -> completed  (caller reports the step result)
    running     -> failed     (caller reports an error)
    failed      -> running    (explicit retry, never automatic)
    completed   -> saved      (artifact persisted outside the engine)

A step whose predecessors are not all completed/saved cannot start. Every
check happens before any mutation, so a rejected call leaves the state as it
was.
"""

from __future__ import annotations

import logging
from typing import Any

from docflow.core.exceptions import (
    AlreadyRunningError,
    DependencyNotMetError,
    InvalidTransitionError,
)
from docflow.engine.progress import ProgressTracker
from docflow.models.pipeline import (
    FINISHED_STEP_STATUSES,
    StepDefinition,
    StepError,
    StepProgress,
    StepResult,
    StepStatus,
    WorkflowState,
    utcnow,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Valid transitions: {from_status: set(to_statuses)}
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.NOT_STARTED: frozenset([StepStatus.RUNNING]),
    StepStatus.RUNNING: frozenset([StepStatus.COMPLETED, StepStatus.FAILED]),
    StepStatus.FAILED: frozenset([StepStatus.RUNNING]),
    StepStatus.COMPLETED: frozenset([StepStatus.SAVED]),
    StepStatus.SAVED: frozenset(),
}


def can_transition(from_status: StepStatus, to_status: StepStatus) -> bool:
    """Return True if the transition from_status -> to_status is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, frozenset())


def validate_transition(from_status: StepStatus, to_status: StepStatus, step_id: int) -> None:
    """Raise InvalidTransitionError unless from_status -> to_status is allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(f"step {step_id}", from_status, to_status)


class WorkflowStateMachine:
    """Applies step transitions to one WorkflowState."""

    def __init__(self, state: WorkflowState) -> None:
        self._state = state
        self._pipeline = state.pipeline

    @property
    def state(self) -> WorkflowState:
        return self._state

    def missing_dependencies(self, step_id: int) -> list[int]:
        """Predecessors of step_id that are not yet completed or saved."""
        definition = self._pipeline.step(step_id)
        return sorted(
            dep for dep in definition.depends_on
            if self._state.steps[dep].status not in FINISHED_STEP_STATUSES
        )

    def start_step(self, step_id: int) -> None:
        self._pipeline.step(step_id)
        step = self._state.steps[step_id]

        missing = self.missing_dependencies(step_id)
        if missing:
            raise DependencyNotMetError(step_id, missing)
        if step.status == StepStatus.RUNNING:
            raise AlreadyRunningError(step_id)
        validate_transition(step.status, StepStatus.RUNNING, step_id)

        now = utcnow()
        step.status = StepStatus.RUNNING
        step.started_at = now
        step.completed_at = None
        step.error = ""
        step.attempts += 1
        self._state.updated_at = now
        logger.info(
            "Workflow %s: step %d started (attempt %d)",
            self._state.workflow_id, step_id, step.attempts,
        )

    def complete_step(self, step_id: int, result: Any = None) -> StepResult:
        definition = self._pipeline.step(step_id)
        step = self._state.steps[step_id]
        validate_transition(step.status, StepStatus.COMPLETED, step_id)

        if isinstance(result, StepResult):
            stored = result.model_copy(update={"step_id": step_id})
        else:
            stored = StepResult(step_id=step_id, kind=definition.name, payload=result)

        now = utcnow()
        step.status = StepStatus.COMPLETED
        step.completed_at = now
        self._state.step_results[step_id] = stored
        self._state.current_step_index = max(self._state.current_step_index, step_id)
        self._state.updated_at = now
        logger.info("Workflow %s: step %d completed", self._state.workflow_id, step_id)
        return stored

    def fail_step(self, step_id: int, message: str) -> None:
        self._pipeline.step(step_id)
        step = self._state.steps[step_id]
        validate_transition(step.status, StepStatus.FAILED, step_id)

        now = utcnow()
        step.status = StepStatus.FAILED
        step.error = message
        self._state.last_error = message
        self._state.errors.append(StepError(step_id=step_id, message=message, occurred_at=now))
        self._state.updated_at = now
        logger.warning("Workflow %s: step %d failed: %s", self._state.workflow_id, step_id, message)

    def mark_saved(self, step_id: int, artifact_uri: str | None = None) -> None:
        """Record that the step's artifact has been persisted outside the engine."""
        self._pipeline.step(step_id)
        step = self._state.steps[step_id]
        validate_transition(step.status, StepStatus.SAVED, step_id)

        now = utcnow()
        step.status = StepStatus.SAVED
        step.saved_at = now
        result = self._state.step_results.get(step_id)
        if result is not None and artifact_uri:
            result.artifact_uri = artifact_uri
        self._state.updated_at = now
        logger.info(
            "Workflow %s: step %d saved to %s",
            self._state.workflow_id, step_id, artifact_uri or "<unspecified>",
        )

    def running_steps(self) -> list[int]:
        return [
            sid for sid in self._pipeline.step_ids
            if self._state.steps[sid].status == StepStatus.RUNNING
        ]

    def next_step(self) -> StepDefinition | None:
        """Lowest-numbered step that could be started right now."""
        for definition in self._pipeline.steps:
            status = self._state.steps[definition.step_id].status
            if status not in (StepStatus.NOT_STARTED, StepStatus.FAILED):
                continue
            if not self.missing_dependencies(definition.step_id):
                return definition
        return None

    def is_complete(self) -> bool:
        """Every declared step is completed or saved."""
        return all(
            self._state.steps[sid].status in FINISHED_STEP_STATUSES
            for sid in self._pipeline.step_ids
        )

    def get_progress(self) -> StepProgress:
        return ProgressTracker.step_progress(self._state)
