"""Versioned API routers."""

from .health import router as health
from .observability import router as observability
from .requests import router as requests
from .robots import router as robots

__all__ = ["health", "observability", "requests", "robots"]
