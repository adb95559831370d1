"""WorkflowEngine: the operations the surrounding application calls.

Every call names a workflow id. The engine resolves it through the
ProjectRegistry, takes that project's session, and delegates to the
WorkflowStateMachine and TaskQueueManager. Loading work items and persisting
artifacts stay with the caller; nothing here performs I/O beyond the
registry's store.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import Any

from docflow.core.config import AppSettings
from docflow.core.exceptions import (
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    StaleTaskError,
)
from docflow.engine.pipelines import PIPELINES
from docflow.engine.progress import ProgressTracker
from docflow.engine.registry import ProjectRegistry
from docflow.engine.state_machine import WorkflowStateMachine
from docflow.engine.task_queue import TaskQueueManager, queue_id_of
from docflow.models.pipeline import (
    PipelineDefinition,
    StepDefinition,
    StepResult,
    StepState,
    StepStatus,
    utcnow,
)
from docflow.models.project import ProjectRecord, WorkflowProgress, WorkflowSummary
from docflow.models.tasks import (
    CompletionData,
    NextTaskResult,
    QueueOptions,
    QueueSummary,
    Task,
    TaskCompletion,
    TaskQueue,
    WorkItem,
)

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Facade over the registry, state machine, and task queue manager."""

    def __init__(
        self,
        *,
        settings: AppSettings | None = None,
        registry: ProjectRegistry | None = None,
        queue_manager: TaskQueueManager | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._registry = registry or ProjectRegistry()
        self._queues = queue_manager or TaskQueueManager()
        self._pipelines: dict[str, PipelineDefinition] = dict(PIPELINES)

    @property
    def registry(self) -> ProjectRegistry:
        return self._registry

    def register_pipeline(self, pipeline: PipelineDefinition) -> None:
        """Make a custom step catalog available as a workflow mode."""
        self._pipelines[pipeline.mode] = pipeline

    # ---- workflow lifecycle ----

    def create_workflow(self, project_key: str, mode: str | None = None) -> str:
        mode = mode or self._settings.default_mode
        if mode not in self._pipelines:
            raise ConfigurationError(
                f"Unknown workflow mode {mode!r}; expected one of {sorted(self._pipelines)}"
            )
        pipeline = self._pipelines[mode].model_copy(deep=True)
        record = self._registry.create(project_key, pipeline)
        return record.workflow_id

    def reset_workflow(self, workflow_id: str) -> None:
        self._registry.reset(workflow_id)

    def list_workflows(self) -> list[WorkflowSummary]:
        summaries = []
        for record in self._registry.records():
            progress = ProgressTracker.step_progress(record.workflow)
            summaries.append(WorkflowSummary(
                workflow_id=record.workflow_id,
                project_key=record.project_key,
                mode=record.workflow.mode,
                percentage=progress.percentage,
                is_complete=progress.is_complete,
                has_running_step=progress.running_steps > 0,
                created_at=record.workflow.created_at,
                updated_at=record.workflow.updated_at,
            ))
        return sorted(summaries, key=lambda s: s.created_at, reverse=True)

    def evict_idle(self, max_age: timedelta) -> list[str]:
        return self._registry.evict_idle(max_age)

    # ---- steps ----

    def start_step(self, workflow_id: str, step_id: int) -> StepState:
        with self._registry.session(workflow_id) as record:
            WorkflowStateMachine(record.workflow).start_step(step_id)
            return record.workflow.steps[step_id].model_copy()

    def complete_step(self, workflow_id: str, step_id: int, result: Any = None) -> StepResult:
        with self._registry.session(workflow_id) as record:
            stored = WorkflowStateMachine(record.workflow).complete_step(step_id, result)
            if record.queue is not None and record.queue.step_id == step_id:
                self._discard_queue(record)
            return stored.model_copy(deep=True)

    def fail_step(self, workflow_id: str, step_id: int, message: str) -> StepState:
        with self._registry.session(workflow_id) as record:
            WorkflowStateMachine(record.workflow).fail_step(step_id, message)
            return record.workflow.steps[step_id].model_copy()

    def mark_step_saved(
        self, workflow_id: str, step_id: int, artifact_uri: str | None = None,
    ) -> StepState:
        with self._registry.session(workflow_id) as record:
            WorkflowStateMachine(record.workflow).mark_saved(step_id, artifact_uri)
            return record.workflow.steps[step_id].model_copy()

    def get_step_result(self, workflow_id: str, step_id: int) -> StepResult | None:
        record = self._registry.snapshot(workflow_id)
        record.workflow.pipeline.step(step_id)
        return record.workflow.step_results.get(step_id)

    def next_step(self, workflow_id: str) -> StepDefinition | None:
        record = self._registry.snapshot(workflow_id)
        return WorkflowStateMachine(record.workflow).next_step()

    def get_workflow_progress(self, workflow_id: str) -> WorkflowProgress:
        record = self._registry.snapshot(workflow_id)
        machine = WorkflowStateMachine(record.workflow)
        return ProgressTracker.workflow_progress(record.workflow, record.queue, machine.next_step())

    # ---- task queue ----

    def create_task_queue(
        self,
        workflow_id: str,
        work_items: Iterable[WorkItem | Mapping[str, Any]],
        token_budget: int | None = None,
        max_items_per_batch: int | None = None,
        options: QueueOptions | None = None,
    ) -> QueueSummary:
        items = [WorkItem.model_validate(item) for item in work_items]
        options = options or QueueOptions()
        budget = token_budget if token_budget is not None else self._settings.batching.token_budget
        max_items = (
            max_items_per_batch if max_items_per_batch is not None
            else self._settings.batching.max_items_per_batch
        )

        with self._registry.session(workflow_id) as record:
            step_id = self._queue_step(record, options.step_id)
            queue = self._queues.create_queue(
                record.project_key,
                items,
                budget,
                max_items,
                options.model_copy(update={"step_id": step_id}),
            )
            if record.queue is not None:
                self._discard_queue(record)
            record.queue = queue
            record.workflow.updated_at = utcnow()
            return self._queues.summarize(queue)

    def get_next_task(self, workflow_id: str) -> NextTaskResult:
        with self._registry.session(workflow_id) as record:
            queue = self._require_queue(record)
            result = self._queues.get_next_task(queue)
            record.workflow.updated_at = utcnow()
            if result.completed:
                self._maybe_auto_complete(record, queue, result)
            return result

    def complete_task(
        self,
        workflow_id: str,
        task_id: str,
        completion_data: CompletionData | Mapping[str, Any] | None = None,
    ) -> TaskCompletion:
        with self._registry.session(workflow_id) as record:
            queue = self._queue_for_task(record, task_id)
            completion = self._queues.complete_task(queue, task_id, completion_data)
            record.workflow.updated_at = utcnow()
            return completion

    def requeue(self, workflow_id: str, task_id: str) -> Task:
        with self._registry.session(workflow_id) as record:
            queue = self._queue_for_task(record, task_id)
            task = self._queues.requeue(queue, task_id)
            record.workflow.updated_at = utcnow()
            return task

    def get_queue_status(self, workflow_id: str) -> QueueSummary | None:
        record = self._registry.snapshot(workflow_id)
        if record.queue is None:
            return None
        return self._queues.summarize(record.queue)

    # ---- helpers ----

    @staticmethod
    def _queue_step(record: ProjectRecord, step_id: int | None) -> int | None:
        """Step a new queue serves: the one named, else the single running step."""
        machine = WorkflowStateMachine(record.workflow)
        if step_id is None:
            running = machine.running_steps()
            if len(running) > 1:
                raise ConfigurationError(
                    f"Steps {running} are all running; name the step the queue belongs to"
                )
            return running[0] if running else None

        record.workflow.pipeline.step(step_id)
        status = record.workflow.steps[step_id].status
        if status != StepStatus.RUNNING:
            raise InvalidTransitionError(f"step {step_id}", status, "queued")
        return step_id

    @staticmethod
    def _discard_queue(record: ProjectRecord) -> None:
        if record.queue is None:
            return
        record.retired_queue_ids.append(record.queue.queue_id)
        logger.info("Discarded queue %s for %s", record.queue.queue_id, record.project_key)
        record.queue = None

    @staticmethod
    def _require_queue(record: ProjectRecord) -> TaskQueue:
        if record.queue is None:
            raise NotFoundError(f"Workflow {record.workflow_id} has no active task queue")
        return record.queue

    def _queue_for_task(self, record: ProjectRecord, task_id: str) -> TaskQueue:
        queue_id = queue_id_of(task_id)
        if record.queue is not None and record.queue.queue_id == queue_id:
            return record.queue
        if queue_id in record.retired_queue_ids or self._registry.is_retired(queue_id):
            raise StaleTaskError(f"Task {task_id} belongs to a discarded queue")
        raise NotFoundError(f"Workflow {record.workflow_id} has no task {task_id!r}")

    def _maybe_auto_complete(
        self, record: ProjectRecord, queue: TaskQueue, result: NextTaskResult,
    ) -> None:
        summary = result.final_summary
        if not queue.options.auto_complete_step or queue.step_id is None or summary is None:
            return
        if summary.failed_tasks:
            logger.warning(
                "Queue %s drained with %d failed tasks; step %d left running",
                queue.queue_id, summary.failed_tasks, queue.step_id,
            )
            return
        if record.workflow.steps[queue.step_id].status != StepStatus.RUNNING:
            return
        WorkflowStateMachine(record.workflow).complete_step(
            queue.step_id, summary.model_dump(mode="json"),
        )
        self._discard_queue(record)
