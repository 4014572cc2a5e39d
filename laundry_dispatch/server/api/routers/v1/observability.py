"""Prometheus scrape endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from laundry_dispatch.enterprise.config.settings import AppSettings
from laundry_dispatch.enterprise.core import NotFound
from laundry_dispatch.observability.metrics import OFFLINE_ROBOTS_GAUGE, metrics_registry
from laundry_dispatch.server.dependencies import DispatchContainer, get_app_settings, get_container

router = APIRouter(prefix="/observability", tags=["observability"])


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics(
    settings: AppSettings = Depends(get_app_settings),
    container: DispatchContainer = Depends(get_container),
) -> PlainTextResponse:
    if not settings.telemetry.metrics_enabled:
        raise NotFound("Endpoint", "/observability/metrics")
    registry = container.registry
    OFFLINE_ROBOTS_GAUGE.set(sum(1 for robot in registry.list_all() if registry.is_offline(robot)))
    return PlainTextResponse(generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)
