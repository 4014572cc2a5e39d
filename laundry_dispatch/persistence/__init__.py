"""Persistence layer: storage interfaces, in-memory stores and async SQLAlchemy stores."""

from .base import AuditStore, PaymentLedger, RequestStore
from .database import create_schema, dispose_engine, get_sessionmaker, init_engine, metadata
from .memory import InMemoryAuditStore, InMemoryPaymentLedger, InMemoryRequestStore
from .repository import SqlAuditStore, SqlPaymentLedger, SqlRequestStore

__all__ = [
    "RequestStore",
    "AuditStore",
    "PaymentLedger",
    "InMemoryRequestStore",
    "InMemoryAuditStore",
    "InMemoryPaymentLedger",
    "SqlRequestStore",
    "SqlAuditStore",
    "SqlPaymentLedger",
    "init_engine",
    "create_schema",
    "dispose_engine",
    "get_sessionmaker",
    "metadata",
]
