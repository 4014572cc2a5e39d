"""Dependency providers for the API layer."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import structlog

from laundry_dispatch.enterprise.config.settings import AppSettings, get_settings
from laundry_dispatch.persistence import (
    AuditStore,
    InMemoryAuditStore,
    InMemoryPaymentLedger,
    InMemoryRequestStore,
    PaymentLedger,
    RequestStore,
    SqlAuditStore,
    SqlPaymentLedger,
    SqlRequestStore,
    get_sessionmaker,
    init_engine,
)
from laundry_dispatch.services import (
    AuditRecorder,
    DispatchEngine,
    LifecycleController,
    LivenessMonitor,
    MessageBus,
    MessageBusNotifier,
    MessageBusRobotTransport,
    RobotRegistry,
    build_message_bus,
)

__all__ = [
    "DispatchContainer",
    "build_container",
    "get_container",
    "get_controller",
    "get_registry",
    "get_app_settings",
    "reset_container",
]

logger = structlog.get_logger(__name__)


@dataclass
class DispatchContainer:
    """Wires the dispatch core together for one process."""

    settings: AppSettings
    registry: RobotRegistry
    store: RequestStore
    audit_store: AuditStore
    payments: PaymentLedger
    bus: MessageBus
    dispatcher: DispatchEngine
    controller: LifecycleController
    liveness: LivenessMonitor

    @property
    def persistent(self) -> bool:
        return isinstance(self.store, SqlRequestStore)


def _build_stores(settings: AppSettings) -> tuple[RequestStore, AuditStore, PaymentLedger]:
    if settings.database.enabled:
        init_engine(settings)
        sessionmaker = get_sessionmaker()
        return SqlRequestStore(sessionmaker), SqlAuditStore(sessionmaker), SqlPaymentLedger(sessionmaker)
    logger.info("using_in_memory_storage")
    return InMemoryRequestStore(), InMemoryAuditStore(), InMemoryPaymentLedger()


def build_container(settings: AppSettings) -> DispatchContainer:
    store, audit_store, payments = _build_stores(settings)
    registry = RobotRegistry(offline_threshold_s=settings.liveness.offline_threshold_s)
    audit = AuditRecorder(audit_store)
    dispatcher = DispatchEngine(
        registry,
        store,
        audit,
        preemption_enabled=settings.dispatch.preemption_enabled,
    )
    bus = build_message_bus(settings.mqtt)
    prefix = settings.mqtt.topic_prefix
    controller = LifecycleController(
        store=store,
        registry=registry,
        dispatcher=dispatcher,
        audit=audit,
        payments=payments,
        transport=MessageBusRobotTransport(bus, prefix),
        notifier=MessageBusNotifier(bus, prefix),
        settings=settings,
    )
    liveness = LivenessMonitor(registry, controller, settings.liveness, bus=bus, topic_prefix=prefix)
    return DispatchContainer(
        settings=settings,
        registry=registry,
        store=store,
        audit_store=audit_store,
        payments=payments,
        bus=bus,
        dispatcher=dispatcher,
        controller=controller,
        liveness=liveness,
    )


@lru_cache(maxsize=1)
def _get_container_singleton() -> DispatchContainer:
    return build_container(get_settings())


def get_container() -> DispatchContainer:
    """Return the shared :class:`DispatchContainer` instance."""

    return _get_container_singleton()


def reset_container() -> None:
    """Reset the cached container (useful for tests)."""

    _get_container_singleton.cache_clear()


def get_controller() -> LifecycleController:
    return get_container().controller


def get_registry() -> RobotRegistry:
    return get_container().registry


def get_app_settings() -> AppSettings:
    return get_settings()
