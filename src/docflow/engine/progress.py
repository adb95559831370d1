"""ProgressTracker: stateless progress aggregation.

Nothing here is cached. Every figure is recomputed from the WorkflowState and
TaskQueue it is handed, so a report can never lag behind the state.
"""

from __future__ import annotations

from collections import Counter

from docflow.models.pipeline import (
    FINISHED_STEP_STATUSES,
    StepDefinition,
    StepProgress,
    StepStatus,
    WorkflowState,
)
from docflow.models.project import WorkflowProgress
from docflow.models.tasks import QueueProgress, TaskQueue, TaskStatus


class ProgressTracker:
    """Pure functions over workflow and queue state."""

    @staticmethod
    def percentage(done: int, total: int) -> int:
        """Whole-number percentage rounded half up; 0 when there is nothing to do."""
        if total <= 0:
            return 0
        return int(done * 100 / total + 0.5)

    @classmethod
    def step_progress(cls, state: WorkflowState) -> StepProgress:
        statuses = {sid: state.steps[sid].status for sid in state.pipeline.step_ids}
        counts = Counter(statuses.values())
        completed = sum(counts[s] for s in FINISHED_STEP_STATUSES)
        return StepProgress(
            statuses=statuses,
            total_steps=len(statuses),
            completed_steps=completed,
            running_steps=counts[StepStatus.RUNNING],
            failed_steps=counts[StepStatus.FAILED],
            percentage=cls.percentage(completed, len(statuses)),
            current_step_index=state.current_step_index,
            is_complete=completed == len(statuses),
        )

    @classmethod
    def task_progress(cls, queue: TaskQueue | None) -> QueueProgress:
        if queue is None:
            return QueueProgress()
        counts = Counter(task.status for task in queue.tasks)
        total = len(queue.tasks)
        return QueueProgress(
            total=total,
            pending=counts[TaskStatus.PENDING],
            in_progress=counts[TaskStatus.IN_PROGRESS],
            completed=counts[TaskStatus.COMPLETED],
            failed=counts[TaskStatus.FAILED],
            percentage=cls.percentage(counts[TaskStatus.COMPLETED], total),
        )

    @classmethod
    def workflow_progress(
        cls,
        state: WorkflowState,
        queue: TaskQueue | None,
        next_step: StepDefinition | None = None,
    ) -> WorkflowProgress:
        return WorkflowProgress(
            workflow_id=state.workflow_id,
            project_key=state.project_key,
            mode=state.mode,
            step_progress=cls.step_progress(state),
            task_progress=cls.task_progress(queue),
            next_step=next_step,
        )
