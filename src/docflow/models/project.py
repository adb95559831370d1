"""Registry records and cross-component reports."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from docflow.models.pipeline import StepDefinition, StepProgress, WorkflowState
from docflow.models.tasks import QueueProgress, TaskQueue


class ProjectRecord(BaseModel):
    """Everything the registry keeps for one project key."""

    project_key: str
    workflow: WorkflowState
    queue: Optional[TaskQueue] = None
    retired_queue_ids: list[str] = Field(default_factory=list)

    @property
    def workflow_id(self) -> str:
        return self.workflow.workflow_id


class WorkflowProgress(BaseModel):
    workflow_id: str
    project_key: str
    mode: str
    step_progress: StepProgress
    task_progress: QueueProgress
    next_step: Optional[StepDefinition] = None


class WorkflowSummary(BaseModel):
    """One row of the workflow listing."""

    workflow_id: str
    project_key: str
    mode: str
    percentage: int
    is_complete: bool
    has_running_step: bool
    created_at: datetime
    updated_at: datetime
