"""API routers exposed by the server package."""

from .v1.health import router as health_router
from .v1.observability import router as observability_router
from .v1.requests import router as requests_router
from .v1.robots import router as robots_router

__all__ = [
	"health_router",
	"requests_router",
	"robots_router",
	"observability_router",
]
