"""Workflow, step, and task queue endpoints.

Handlers are sync so FastAPI runs them in its threadpool; the engine's
per-project locks are thread locks.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from docflow.core.config import AppSettings
from docflow.core.protocols import IArtifactStore
from docflow.engine.artifacts import persist_step_artifact
from docflow.engine.service import WorkflowEngine
from docflow.models.pipeline import StepDefinition, StepResult, StepState
from docflow.models.project import WorkflowProgress, WorkflowSummary
from docflow.models.tasks import (
    CompletionData,
    NextTaskResult,
    QueueOptions,
    QueueSummary,
    Task,
    TaskCompletion,
    WorkItem,
)

router = APIRouter(tags=["workflows"])


def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.engine


def get_artifact_store(request: Request) -> IArtifactStore:
    return request.app.state.artifact_store


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


class CreateWorkflowRequest(BaseModel):
    project_key: str
    mode: Optional[str] = None


class CreateWorkflowResponse(BaseModel):
    workflow_id: str


class CompleteStepRequest(BaseModel):
    result: Any = None


class FailStepRequest(BaseModel):
    message: str


class MarkSavedRequest(BaseModel):
    artifact_uri: Optional[str] = None


class ArtifactRequest(BaseModel):
    content: str
    content_type: str = "text/markdown"


class CreateQueueRequest(BaseModel):
    work_items: list[WorkItem] = Field(default_factory=list)
    token_budget: Optional[int] = None
    max_items_per_batch: Optional[int] = None
    options: QueueOptions = Field(default_factory=QueueOptions)


class EvictRequest(BaseModel):
    max_age_seconds: int = Field(gt=0)


@router.post("", status_code=201)
def create_workflow(
    body: CreateWorkflowRequest, engine: WorkflowEngine = Depends(get_engine),
) -> CreateWorkflowResponse:
    return CreateWorkflowResponse(workflow_id=engine.create_workflow(body.project_key, body.mode))


@router.get("")
def list_workflows(engine: WorkflowEngine = Depends(get_engine)) -> list[WorkflowSummary]:
    return engine.list_workflows()


@router.post("/evict")
def evict_idle(body: EvictRequest, engine: WorkflowEngine = Depends(get_engine)) -> dict[str, list[str]]:
    return {"evicted": engine.evict_idle(timedelta(seconds=body.max_age_seconds))}


@router.delete("/{workflow_id}", status_code=204)
def reset_workflow(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)) -> Response:
    engine.reset_workflow(workflow_id)
    return Response(status_code=204)


@router.get("/{workflow_id}/progress")
def get_progress(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)) -> WorkflowProgress:
    return engine.get_workflow_progress(workflow_id)


@router.get("/{workflow_id}/next-step")
def next_step(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)) -> Optional[StepDefinition]:
    return engine.next_step(workflow_id)


# ---- steps ----

@router.post("/{workflow_id}/steps/{step_id}/start")
def start_step(workflow_id: str, step_id: int, engine: WorkflowEngine = Depends(get_engine)) -> StepState:
    return engine.start_step(workflow_id, step_id)


@router.post("/{workflow_id}/steps/{step_id}/complete")
def complete_step(
    workflow_id: str, step_id: int, body: CompleteStepRequest,
    engine: WorkflowEngine = Depends(get_engine),
) -> StepResult:
    return engine.complete_step(workflow_id, step_id, body.result)


@router.post("/{workflow_id}/steps/{step_id}/fail")
def fail_step(
    workflow_id: str, step_id: int, body: FailStepRequest,
    engine: WorkflowEngine = Depends(get_engine),
) -> StepState:
    return engine.fail_step(workflow_id, step_id, body.message)


@router.post("/{workflow_id}/steps/{step_id}/saved")
def mark_saved(
    workflow_id: str, step_id: int, body: MarkSavedRequest,
    engine: WorkflowEngine = Depends(get_engine),
) -> StepState:
    return engine.mark_step_saved(workflow_id, step_id, body.artifact_uri)


@router.post("/{workflow_id}/steps/{step_id}/artifact")
def save_artifact(
    workflow_id: str, step_id: int, body: ArtifactRequest,
    engine: WorkflowEngine = Depends(get_engine),
    store: IArtifactStore = Depends(get_artifact_store),
    settings: AppSettings = Depends(get_settings),
) -> StepState:
    return persist_step_artifact(
        engine, store, workflow_id, step_id, body.content,
        prefix=settings.artifacts.prefix, content_type=body.content_type,
    )


@router.get("/{workflow_id}/steps/{step_id}/result")
def get_step_result(
    workflow_id: str, step_id: int, engine: WorkflowEngine = Depends(get_engine),
) -> Optional[StepResult]:
    return engine.get_step_result(workflow_id, step_id)


# ---- task queue ----

@router.post("/{workflow_id}/queue", status_code=201)
def create_queue(
    workflow_id: str, body: CreateQueueRequest, engine: WorkflowEngine = Depends(get_engine),
) -> QueueSummary:
    return engine.create_task_queue(
        workflow_id,
        body.work_items,
        token_budget=body.token_budget,
        max_items_per_batch=body.max_items_per_batch,
        options=body.options,
    )


@router.get("/{workflow_id}/queue")
def get_queue(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)) -> Optional[QueueSummary]:
    return engine.get_queue_status(workflow_id)


@router.post("/{workflow_id}/tasks/next")
def next_task(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)) -> NextTaskResult:
    return engine.get_next_task(workflow_id)


@router.post("/{workflow_id}/tasks/{task_id}/complete")
def complete_task(
    workflow_id: str, task_id: str, body: CompletionData,
    engine: WorkflowEngine = Depends(get_engine),
) -> TaskCompletion:
    return engine.complete_task(workflow_id, task_id, body)


@router.post("/{workflow_id}/tasks/{task_id}/requeue")
def requeue_task(workflow_id: str, task_id: str, engine: WorkflowEngine = Depends(get_engine)) -> Task:
    return engine.requeue(workflow_id, task_id)
