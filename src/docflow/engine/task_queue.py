"""TaskQueueManager: turns packed batches into a pull-based task list.

Tasks keep the packer's order: batches in priority order, items in batch
order, with optional synthetic analysis/summary tasks at either end. Callers
pull with get_next_task and acknowledge with complete_task. Failed tasks never
block the queue; retrying one is an explicit requeue.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from docflow.core.exceptions import InvalidTransitionError, NotFoundError
from docflow.engine.batch_packer import BatchPacker
from docflow.engine.progress import ProgressTracker
from docflow.models.pipeline import utcnow
from docflow.models.tasks import (
    TERMINAL_TASK_STATUSES,
    CompletionData,
    FinalSummary,
    NextTaskResult,
    QueueOptions,
    QueueSummary,
    Task,
    TaskCompletion,
    TaskKind,
    TaskQueue,
    TaskStatus,
    WorkItem,
)

logger = logging.getLogger(__name__)

TASK_ID_SEPARATOR = ":"

VALID_TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset([TaskStatus.IN_PROGRESS]),
    TaskStatus.IN_PROGRESS: frozenset([
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.PENDING,     # requeue by a caller enforcing its own timeout
    ]),
    TaskStatus.FAILED: frozenset([TaskStatus.PENDING]),  # requeue
    TaskStatus.COMPLETED: frozenset(),
}


def validate_task_transition(task: Task, to_status: TaskStatus) -> None:
    if to_status not in VALID_TASK_TRANSITIONS.get(task.status, frozenset()):
        raise InvalidTransitionError(f"task {task.task_id}", task.status, to_status)


def queue_id_of(task_id: str) -> str:
    """Queue id embedded in a task id ("<queue_id>:<local id>")."""
    return task_id.partition(TASK_ID_SEPARATOR)[0]


class TaskQueueManager:
    """Builds task queues and applies task transitions to them."""

    def __init__(self, packer: BatchPacker | None = None) -> None:
        self._packer = packer or BatchPacker()

    def create_queue(
        self,
        project_key: str,
        work_items: Iterable[WorkItem],
        token_budget: int,
        max_items_per_batch: int,
        options: QueueOptions | None = None,
    ) -> TaskQueue:
        options = options or QueueOptions()
        batches = self._packer.pack(work_items, token_budget, max_items_per_batch)
        queue_id = uuid.uuid4().hex[:12]

        def tid(local: str) -> str:
            return f"{queue_id}{TASK_ID_SEPARATOR}{local}"

        tasks: list[Task] = []
        if options.include_analysis_task:
            tasks.append(Task(
                task_id=tid("analysis"),
                kind=TaskKind.ANALYSIS,
                title="Analyze project structure",
            ))
        for batch in batches:
            for position, item in enumerate(batch.items, start=1):
                tasks.append(Task(
                    task_id=tid(f"file_{batch.sequence_number}_{position}"),
                    title=f"Process {item.path}",
                    work_item=item,
                    batch_id=batch.batch_id,
                    batch_position=position,
                ))
        if options.include_summary_task:
            tasks.append(Task(
                task_id=tid("summary"),
                kind=TaskKind.SUMMARY,
                title="Summarize processed work",
            ))

        queue = TaskQueue(
            queue_id=queue_id,
            project_key=project_key,
            step_id=options.step_id,
            token_budget=token_budget,
            max_items_per_batch=max_items_per_batch,
            options=options,
            batches=batches,
            tasks=tasks,
        )
        logger.info(
            "Created queue %s for %s: %d tasks in %d batches",
            queue_id, project_key, len(tasks), len(batches),
        )
        return queue

    def get_next_task(self, queue: TaskQueue) -> NextTaskResult:
        for task in queue.tasks:
            if task.status == TaskStatus.PENDING:
                validate_task_transition(task, TaskStatus.IN_PROGRESS)
                task.status = TaskStatus.IN_PROGRESS
                task.started_at = utcnow()
                task.attempts += 1
                logger.info("Queue %s: handing out %s", queue.queue_id, task.task_id)
                return NextTaskResult(
                    task=task.model_copy(deep=True),
                    progress=ProgressTracker.task_progress(queue),
                )

        progress = ProgressTracker.task_progress(queue)
        if not self.is_exhausted(queue):
            return NextTaskResult(progress=progress, blocked=True)
        return NextTaskResult(
            progress=progress,
            completed=True,
            final_summary=self.final_summary(queue),
        )

    def complete_task(
        self,
        queue: TaskQueue,
        task_id: str,
        completion_data: CompletionData | Mapping[str, Any] | None = None,
    ) -> TaskCompletion:
        task = self._find(queue, task_id)

        if task.status == TaskStatus.COMPLETED:
            logger.info("Queue %s: duplicate completion of %s ignored", queue.queue_id, task_id)
            return TaskCompletion(
                completed_task=task.model_copy(deep=True),
                progress=ProgressTracker.task_progress(queue),
                next_task_available=self.has_pending(queue),
                duplicate=True,
            )

        data = CompletionData.model_validate(completion_data or {})
        target = TaskStatus.COMPLETED if data.success else TaskStatus.FAILED
        if task.status != TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(f"task {task_id}", task.status, target)

        task.status = target
        task.completion_notes = data
        task.finished_at = utcnow()
        if target == TaskStatus.FAILED:
            logger.warning(
                "Queue %s: task %s failed: %s",
                queue.queue_id, task_id, data.error or data.notes or "no reason given",
            )
        else:
            logger.info("Queue %s: task %s completed", queue.queue_id, task_id)

        return TaskCompletion(
            completed_task=task.model_copy(deep=True),
            progress=ProgressTracker.task_progress(queue),
            next_task_available=self.has_pending(queue),
        )

    def requeue(self, queue: TaskQueue, task_id: str) -> Task:
        """Put a failed (or abandoned in-progress) task back in line."""
        task = self._find(queue, task_id)
        validate_task_transition(task, TaskStatus.PENDING)
        task.status = TaskStatus.PENDING
        task.started_at = None
        task.finished_at = None
        logger.info("Queue %s: requeued %s", queue.queue_id, task_id)
        return task.model_copy(deep=True)

    def has_pending(self, queue: TaskQueue) -> bool:
        return any(task.status == TaskStatus.PENDING for task in queue.tasks)

    def is_exhausted(self, queue: TaskQueue) -> bool:
        return all(task.status in TERMINAL_TASK_STATUSES for task in queue.tasks)

    def final_summary(self, queue: TaskQueue) -> FinalSummary:
        failed = [t.task_id for t in queue.tasks if t.status == TaskStatus.FAILED]
        return FinalSummary(
            queue_id=queue.queue_id,
            step_id=queue.step_id,
            total_tasks=len(queue.tasks),
            completed_tasks=sum(1 for t in queue.tasks if t.status == TaskStatus.COMPLETED),
            failed_tasks=len(failed),
            failed_task_ids=failed,
        )

    def summarize(self, queue: TaskQueue) -> QueueSummary:
        kinds = Counter(task.kind.value for task in queue.tasks)
        return QueueSummary(
            queue_id=queue.queue_id,
            project_key=queue.project_key,
            step_id=queue.step_id,
            total_tasks=len(queue.tasks),
            total_batches=len(queue.batches),
            overflow_batches=sum(1 for b in queue.batches if b.is_singleton_overflow),
            total_estimated_tokens=sum(b.total_estimated_tokens for b in queue.batches),
            tasks_by_kind=dict(kinds),
            progress=ProgressTracker.task_progress(queue),
        )

    @staticmethod
    def _find(queue: TaskQueue, task_id: str) -> Task:
        task = queue.find(task_id)
        if task is None:
            raise NotFoundError(f"Queue {queue.queue_id} has no task {task_id!r}")
        return task
