"""Pull/acknowledge loop that feeds a workflow's task queue to a processor."""

from __future__ import annotations

import logging

from docflow.core.protocols import ITaskProcessor
from docflow.engine.service import WorkflowEngine
from docflow.models.tasks import CompletionData, FinalSummary

logger = logging.getLogger(__name__)


def drain_queue(
    engine: WorkflowEngine,
    workflow_id: str,
    processor: ITaskProcessor,
) -> FinalSummary | None:
    """Process tasks until the queue reports completion.

    A processor exception, or a completion that does not validate, fails that
    task only; the loop moves on. Returns the final summary, or None if the
    queue is blocked on tasks another worker holds.
    """
    while True:
        result = engine.get_next_task(workflow_id)
        if result.completed:
            return result.final_summary
        if result.task is None:
            logger.info("Workflow %s: queue blocked on in-progress tasks", workflow_id)
            return None

        task = result.task
        try:
            completion = CompletionData.model_validate(processor.process(task) or {})
        except Exception as exc:
            logger.warning("Processor failed on %s: %s", task.task_id, exc)
            completion = CompletionData(success=False, error=str(exc))
        engine.complete_task(workflow_id, task.task_id, completion)
