"""Pipeline definitions and per-project workflow state models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from docflow.core.exceptions import ConfigurationError, NotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SAVED = "saved"


# A predecessor in one of these states satisfies a dependency gate.
FINISHED_STEP_STATUSES = frozenset([StepStatus.COMPLETED, StepStatus.SAVED])


class StepDefinition(BaseModel):
    """A named pipeline stage and the steps that must finish before it."""

    step_id: int = Field(gt=0)
    name: str
    title: str = ""
    depends_on: set[int] = Field(default_factory=set)


class PipelineDefinition(BaseModel):
    """An ordered set of steps whose dependencies form a DAG."""

    mode: str
    steps: list[StepDefinition]

    @model_validator(mode="after")
    def _check_graph(self) -> "PipelineDefinition":
        if not self.steps:
            raise ConfigurationError(f"Pipeline {self.mode!r} declares no steps")

        ids = [s.step_id for s in self.steps]
        if len(ids) != len(set(ids)):
            raise ConfigurationError(f"Pipeline {self.mode!r} has duplicate step ids: {ids}")

        known = set(ids)
        for step in self.steps:
            if step.step_id in step.depends_on:
                raise ConfigurationError(f"Step {step.step_id} depends on itself")
            dangling = step.depends_on - known
            if dangling:
                raise ConfigurationError(
                    f"Step {step.step_id} depends on undeclared steps {sorted(dangling)}"
                )

        # Kahn's algorithm; anything left over sits on a cycle.
        remaining = {s.step_id: set(s.depends_on) for s in self.steps}
        while True:
            ready = [sid for sid, deps in remaining.items() if not deps]
            if not ready:
                break
            for sid in ready:
                del remaining[sid]
            for deps in remaining.values():
                deps.difference_update(ready)
        if remaining:
            raise ConfigurationError(
                f"Pipeline {self.mode!r} has a dependency cycle among steps {sorted(remaining)}"
            )

        self.steps.sort(key=lambda s: s.step_id)
        return self

    @classmethod
    def linear(cls, mode: str, steps: list[tuple[str, str]]) -> "PipelineDefinition":
        """Build a chain where step N depends on step N-1."""
        return cls(
            mode=mode,
            steps=[
                StepDefinition(
                    step_id=i,
                    name=name,
                    title=title,
                    depends_on={i - 1} if i > 1 else set(),
                )
                for i, (name, title) in enumerate(steps, start=1)
            ],
        )

    @property
    def step_ids(self) -> list[int]:
        return [s.step_id for s in self.steps]

    def step(self, step_id: int) -> StepDefinition:
        for s in self.steps:
            if s.step_id == step_id:
                return s
        raise NotFoundError(f"Pipeline {self.mode!r} has no step {step_id}")


class StepState(BaseModel):
    """Execution state for a single pipeline step."""

    step_id: int
    status: StepStatus = StepStatus.NOT_STARTED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    saved_at: Optional[datetime] = None
    error: str = ""
    attempts: int = 0


class StepResult(BaseModel):
    """Opaque artifact produced by a step, tagged with the step kind."""

    step_id: int
    kind: str
    version: int = 1
    payload: Any = None
    artifact_uri: Optional[str] = None
    recorded_at: datetime = Field(default_factory=utcnow)


class StepError(BaseModel):
    step_id: int
    message: str
    occurred_at: datetime = Field(default_factory=utcnow)


class WorkflowState(BaseModel):
    """Resumable state of one project's pipeline run."""

    workflow_id: str
    project_key: str
    pipeline: PipelineDefinition
    steps: dict[int, StepState] = Field(default_factory=dict)
    step_results: dict[int, StepResult] = Field(default_factory=dict)
    current_step_index: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_error: str = ""
    errors: list[StepError] = Field(default_factory=list)

    @model_validator(mode="after")
    def _seed_steps(self) -> "WorkflowState":
        for step_id in self.pipeline.step_ids:
            self.steps.setdefault(step_id, StepState(step_id=step_id))
        return self

    @property
    def mode(self) -> str:
        return self.pipeline.mode


class StepProgress(BaseModel):
    """Snapshot of step completion for one workflow."""

    statuses: dict[int, StepStatus]
    total_steps: int
    completed_steps: int
    running_steps: int = 0
    failed_steps: int = 0
    percentage: int = 0
    current_step_index: int = 0
    is_complete: bool = False
