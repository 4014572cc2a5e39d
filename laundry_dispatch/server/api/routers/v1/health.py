"""Liveness and readiness probes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from laundry_dispatch.server.dependencies import DispatchContainer, get_container

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
async def ready(container: DispatchContainer = Depends(get_container)) -> dict[str, object]:
    return {
        "status": "ready",
        "environment": container.settings.environment,
        "persistent_storage": container.persistent,
        "robots_registered": len(container.registry.list_all()),
        "robots_active": len(container.registry.list_active()),
        "liveness_monitor": container.liveness.running,
    }
