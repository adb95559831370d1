"""Integration tests against a live Redis and LocalStack S3."""

from __future__ import annotations

from docflow.engine.artifacts import persist_step_artifact
from docflow.engine.registry import ProjectRegistry
from docflow.engine.service import WorkflowEngine
from docflow.models.pipeline import StepStatus
from docflow.persistence.redis_backend import RedisProjectStore
from docflow.persistence.s3_backend import S3ArtifactStore
from docflow.processors.driver import drain_queue
from docflow.processors.mock_processor import MockTaskProcessor

from tests.integration.conftest import LOCALSTACK_URL, REDIS_HOST, REDIS_PORT, skip_no_localstack, skip_no_redis


def _engine(prefix: str) -> WorkflowEngine:
    store = RedisProjectStore(host=REDIS_HOST, port=REDIS_PORT, key_prefix=prefix)
    return WorkflowEngine(registry=ProjectRegistry(store))


@skip_no_redis
def test_workflow_survives_engine_restart(redis_prefix):
    engine = _engine(redis_prefix)
    workflow_id = engine.create_workflow("/srv/shop", "analyze")
    engine.start_step(workflow_id, 1)
    engine.create_task_queue(workflow_id, [{"id": "a", "path": "a.py", "estimated_tokens": 10}])
    task_id = engine.get_next_task(workflow_id).task.task_id

    restarted = _engine(redis_prefix)
    restarted.complete_task(workflow_id, task_id, {"success": True})
    assert restarted.get_next_task(workflow_id).completed is True
    restarted.reset_workflow(workflow_id)


@skip_no_redis
def test_drain_queue_over_redis(redis_prefix):
    engine = _engine(redis_prefix)
    workflow_id = engine.create_workflow("/srv/api", "analyze")
    engine.start_step(workflow_id, 1)
    items = [{"id": str(i), "path": f"m{i}.py", "estimated_tokens": 10} for i in range(5)]
    engine.create_task_queue(workflow_id, items)
    summary = drain_queue(engine, workflow_id, MockTaskProcessor())
    assert summary.completed_tasks == 5
    engine.reset_workflow(workflow_id)


@skip_no_redis
@skip_no_localstack
def test_persist_artifact_to_s3(redis_prefix, localstack_bucket):
    engine = _engine(redis_prefix)
    artifacts = S3ArtifactStore(bucket=localstack_bucket, endpoint_url=LOCALSTACK_URL)
    workflow_id = engine.create_workflow("/srv/docs", "analyze")
    engine.start_step(workflow_id, 1)
    engine.complete_step(workflow_id, 1, {"issues": 0})

    state = persist_step_artifact(engine, artifacts, workflow_id, 1, "# Quality", prefix="workflows/")
    assert state.status == StepStatus.SAVED
    uri = engine.get_step_result(workflow_id, 1).artifact_uri
    assert uri.startswith(f"s3://{localstack_bucket}/workflows/")
    engine.reset_workflow(workflow_id)
