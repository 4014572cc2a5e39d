from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from laundry_dispatch.enterprise.config.settings import AppSettings
from laundry_dispatch.enterprise.core import NewRequest
from laundry_dispatch.persistence import InMemoryAuditStore, InMemoryPaymentLedger, InMemoryRequestStore
from laundry_dispatch.services import (
    AuditRecorder,
    DispatchEngine,
    InMemoryMessageBus,
    LifecycleController,
    MessageBusNotifier,
    MessageBusRobotTransport,
    RobotRegistry,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class Core:
    clock: FakeClock
    settings: AppSettings
    registry: RobotRegistry
    store: InMemoryRequestStore
    audit_store: InMemoryAuditStore
    payments: InMemoryPaymentLedger
    bus: InMemoryMessageBus
    dispatcher: DispatchEngine
    controller: LifecycleController

    async def submit(self, customer_id: str = "C-100", **fields: Any) -> int:
        dto = NewRequest(customer_id=customer_id, customer_name=f"Customer {customer_id}", room_name="A-101", **fields)
        result = await self.controller.create_request(dto)
        return result.request.id

    def audit_actions(self, request_id: int) -> list[str]:
        return [entry.action.value for entry in self.audit_store.entries if entry.request_id == request_id]


def build_core(**settings_overrides: Any) -> Core:
    settings = AppSettings(**settings_overrides)
    clock = FakeClock()
    registry = RobotRegistry(offline_threshold_s=settings.liveness.offline_threshold_s, clock=clock)
    store = InMemoryRequestStore()
    audit_store = InMemoryAuditStore()
    payments = InMemoryPaymentLedger()
    bus = InMemoryMessageBus()
    audit = AuditRecorder(audit_store)
    dispatcher = DispatchEngine(registry, store, audit, preemption_enabled=settings.dispatch.preemption_enabled)
    controller = LifecycleController(
        store=store,
        registry=registry,
        dispatcher=dispatcher,
        audit=audit,
        payments=payments,
        transport=MessageBusRobotTransport(bus, "laundry"),
        notifier=MessageBusNotifier(bus, "laundry"),
        settings=settings,
    )
    return Core(clock, settings, registry, store, audit_store, payments, bus, dispatcher, controller)


@pytest.fixture
def core() -> Core:
    return build_core()
