"""FastAPI application with lifespan, router mounting, and error mapping."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from docflow.api.routes import health, workflows
from docflow.core.config import AppSettings, configure_logging
from docflow.core.exceptions import DocflowError
from docflow.core.protocols import IArtifactStore
from docflow.engine.registry import ProjectRegistry
from docflow.engine.service import WorkflowEngine
from docflow.persistence import create_persistence

logger = logging.getLogger(__name__)

STATUS_BY_CODE: dict[str, int] = {
    "NOT_FOUND": 404,
    "DEPENDENCY_NOT_MET": 409,
    "ALREADY_RUNNING": 409,
    "INVALID_TRANSITION": 409,
    "STALE_TASK": 410,
    "CONFIGURATION_ERROR": 422,
    "STORE_ERROR": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down application resources."""
    settings: AppSettings = app.state.settings
    configure_logging(settings)
    if app.state.engine is None or app.state.artifact_store is None:
        project_store, artifact_store = create_persistence(settings)
        if app.state.engine is None:
            app.state.engine = WorkflowEngine(
                settings=settings, registry=ProjectRegistry(project_store),
            )
        if app.state.artifact_store is None:
            app.state.artifact_store = artifact_store
    logger.info("docflow API started (%s)", settings.environment)
    yield


async def docflow_error_handler(request: Request, exc: DocflowError) -> JSONResponse:
    status = STATUS_BY_CODE.get(exc.code, 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"code": exc.code, "detail": str(exc)})


def create_app(
    settings: AppSettings | None = None,
    engine: WorkflowEngine | None = None,
    artifact_store: IArtifactStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="docflow workflow engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or AppSettings()
    app.state.engine = engine
    app.state.artifact_store = artifact_store
    app.add_exception_handler(DocflowError, docflow_error_handler)
    app.include_router(health.router)
    app.include_router(workflows.router, prefix="/workflows")
    return app
