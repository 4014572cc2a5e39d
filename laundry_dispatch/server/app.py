"""FastAPI application exposing the laundry dispatch core."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from laundry_dispatch.enterprise.config.settings import get_settings
from laundry_dispatch.enterprise.core import DispatchError
from laundry_dispatch.observability import bind_global_context, configure_logging, configure_tracer
from laundry_dispatch.observability.metrics import REQUEST_COUNTER
from laundry_dispatch.persistence import create_schema, dispose_engine
from laundry_dispatch.server.api.routers import (
	health_router,
	observability_router,
	requests_router,
	robots_router,
)
from laundry_dispatch.server.dependencies import get_container

settings = get_settings()
configure_logging(settings.logging)
configure_tracer("laundry-dispatch-api", settings.telemetry, settings.environment)
bind_global_context(service="laundry-dispatch", environment=settings.environment)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
	container = get_container()
	if container.persistent:
		await create_schema()
	await container.bus.connect()
	await container.liveness.start()
	logger.info("dispatch_started", persistent=container.persistent)
	try:
		yield
	finally:
		await container.liveness.stop()
		await container.bus.close()
		if container.persistent:
			await dispose_engine()
		logger.info("dispatch_stopped")


app = FastAPI(title="Laundry Dispatch API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def count_requests(request: Request, call_next):
	REQUEST_COUNTER.inc()
	response = await call_next(request)
	return response


@app.exception_handler(DispatchError)
async def dispatch_error_handler(_request: Request, exc: DispatchError) -> JSONResponse:
	return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(health_router, prefix="/api/v1")
app.include_router(requests_router, prefix="/api/v1")
app.include_router(robots_router, prefix="/api/v1")
app.include_router(observability_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
	return {"message": "Laundry Dispatch API"}
