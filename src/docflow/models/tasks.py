"""Work item, batch, and task queue models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from docflow.models.pipeline import utcnow


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_TASK_STATUSES = frozenset([TaskStatus.COMPLETED, TaskStatus.FAILED])


class TaskKind(StrEnum):
    FILE_PROCESSING = "file_processing"
    ANALYSIS = "analysis"
    SUMMARY = "summary"


class WorkItem(BaseModel):
    """A discovered unit of input (usually one source file)."""

    id: str
    path: str
    category: str = "source"
    importance: float = 0.0
    estimated_tokens: int = Field(default=0, ge=0)


class Batch(BaseModel):
    """Work items handed to one external processing call."""

    batch_id: str
    sequence_number: int
    items: list[WorkItem] = Field(default_factory=list)
    total_estimated_tokens: int = 0
    is_singleton_overflow: bool = False


class QueueOptions(BaseModel):
    """Caller switches for queue construction."""

    include_analysis_task: bool = False
    include_summary_task: bool = False
    # Complete the queue's step with the final summary once every task completed.
    auto_complete_step: bool = False
    step_id: Optional[int] = None


class CompletionData(BaseModel):
    """What a caller reports when acknowledging a task."""

    model_config = {"extra": "allow"}

    success: bool = True
    output_file: Optional[str] = None
    notes: str = ""
    error: str = ""


class Task(BaseModel):
    """Trackable unit of work derived from one work item inside a batch."""

    task_id: str
    kind: TaskKind = TaskKind.FILE_PROCESSING
    title: str = ""
    work_item: Optional[WorkItem] = None
    batch_id: Optional[str] = None
    batch_position: Optional[int] = None
    status: TaskStatus = TaskStatus.PENDING
    completion_notes: Optional[CompletionData] = None
    attempts: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class TaskQueue(BaseModel):
    """Ordered tasks for one step invocation of one project."""

    queue_id: str
    project_key: str
    step_id: Optional[int] = None
    token_budget: int
    max_items_per_batch: int
    options: QueueOptions = Field(default_factory=QueueOptions)
    batches: list[Batch] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    def find(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        return None


class QueueProgress(BaseModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0
    percentage: int = 0


class FinalSummary(BaseModel):
    queue_id: str
    step_id: Optional[int] = None
    total_tasks: int
    completed_tasks: int
    failed_tasks: int
    failed_task_ids: list[str] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=utcnow)


class NextTaskResult(BaseModel):
    """Answer to a pull: a task, a blocked signal, or the final summary."""

    task: Optional[Task] = None
    progress: QueueProgress = Field(default_factory=QueueProgress)
    completed: bool = False
    blocked: bool = False
    final_summary: Optional[FinalSummary] = None


class TaskCompletion(BaseModel):
    completed_task: Task
    progress: QueueProgress
    next_task_available: bool
    duplicate: bool = False


class QueueSummary(BaseModel):
    queue_id: str
    project_key: str
    step_id: Optional[int] = None
    total_tasks: int
    total_batches: int
    overflow_batches: int
    total_estimated_tokens: int
    tasks_by_kind: dict[str, int] = Field(default_factory=dict)
    progress: QueueProgress = Field(default_factory=QueueProgress)
