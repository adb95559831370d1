"""Caller-side helper that persists a completed step's artifact."""

from __future__ import annotations

import logging

from docflow.core.exceptions import InvalidTransitionError
from docflow.core.protocols import IArtifactStore
from docflow.engine.service import WorkflowEngine
from docflow.models.pipeline import StepState, StepStatus

logger = logging.getLogger(__name__)


def artifact_path(workflow_id: str, step_id: int, step_name: str, prefix: str = "") -> str:
    return f"{prefix}{workflow_id}/step_{step_id:02d}_{step_name}.md"


def persist_step_artifact(
    engine: WorkflowEngine,
    store: IArtifactStore,
    workflow_id: str,
    step_id: int,
    content: str | bytes,
    prefix: str = "",
    content_type: str = "text/markdown",
) -> StepState:
    """Write the artifact for a COMPLETED step, then mark the step SAVED.

    The write happens first; if it raises, the step stays COMPLETED and the
    call can be retried.
    """
    snapshot = engine.registry.snapshot(workflow_id)
    definition = snapshot.workflow.pipeline.step(step_id)
    status = snapshot.workflow.steps[step_id].status
    if status != StepStatus.COMPLETED:
        raise InvalidTransitionError(f"step {step_id}", status, StepStatus.SAVED)
    data = content.encode("utf-8") if isinstance(content, str) else content
    uri = store.write(
        artifact_path(workflow_id, step_id, definition.name, prefix),
        data,
        content_type=content_type,
    )
    logger.info("Wrote artifact for %s step %d to %s", workflow_id, step_id, uri)
    return engine.mark_step_saved(workflow_id, step_id, uri)
