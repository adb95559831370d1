"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
def ready(request: Request) -> dict[str, str | int]:
    # StoreError from an unreachable backend maps to 503
    workflows = len(request.app.state.engine.registry.store.project_keys())
    return {"status": "ready", "workflows": workflows}
