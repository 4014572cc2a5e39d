"""In-memory stores used when persistent storage is unavailable."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from laundry_dispatch.enterprise.core import (
    AuditAction,
    AuditEntry,
    ConcurrentModification,
    LaundryRequest,
    NotFound,
    PendingPayment,
    RequestStatus,
)
from laundry_dispatch.enterprise.core.models import utcnow
from laundry_dispatch.enterprise.core.states import ACTIVE_STATES, TERMINAL_STATES

from .base import AuditStore, PaymentLedger, RequestStore


def pending_transaction_id(now: datetime) -> str:
    return f"PEND_{now:%Y%m%d}_{uuid.uuid4().hex[:8].upper()}"


class InMemoryRequestStore(RequestStore):
    """Keeps requests in process memory; compare-and-set under a lock."""

    def __init__(self) -> None:
        self._requests: Dict[int, LaundryRequest] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    async def add(self, request: LaundryRequest) -> LaundryRequest:
        with self._lock:
            stored = request.model_copy(update={"id": self._next_id, "version": 1})
            self._requests[stored.id] = stored
            self._next_id += 1
            return stored.model_copy()

    async def get(self, request_id: int) -> LaundryRequest:
        with self._lock:
            stored = self._requests.get(request_id)
            if stored is None:
                raise NotFound("Request", request_id)
            return stored.model_copy()

    async def save(
        self,
        request: LaundryRequest,
        expected_status: RequestStatus,
        expected_version: Optional[int] = None,
    ) -> LaundryRequest:
        with self._lock:
            stored = self._requests.get(request.id)
            if stored is None:
                raise NotFound("Request", request.id)
            if stored.status != expected_status or (
                expected_version is not None and stored.version != expected_version
            ):
                raise ConcurrentModification(request.id, expected_status.value, stored.status.value)
            saved = request.model_copy(update={"version": stored.version + 1})
            self._requests[saved.id] = saved
            return saved.model_copy()

    def _select(self, predicate) -> List[LaundryRequest]:
        with self._lock:
            return [req.model_copy() for req in self._requests.values() if predicate(req)]

    async def list_by_robot(self, robot_name: str, exclude_terminal: bool = True) -> List[LaundryRequest]:
        key = robot_name.lower()
        matches = self._select(
            lambda req: req.assigned_robot_name is not None
            and req.assigned_robot_name.lower() == key
            and not (exclude_terminal and req.status in TERMINAL_STATES)
        )
        return sorted(
            matches,
            key=lambda req: (req.accepted_at or req.requested_at, req.id),
            reverse=True,
        )

    async def list_pending(self) -> List[LaundryRequest]:
        pending = self._select(lambda req: req.status == RequestStatus.PENDING)
        return sorted(pending, key=lambda req: (req.requested_at, req.id))

    async def list_active(self) -> List[LaundryRequest]:
        return sorted(self._select(lambda req: req.status in ACTIVE_STATES), key=lambda req: req.id)

    async def list_requests(self, status: Optional[RequestStatus] = None, limit: int = 100) -> List[LaundryRequest]:
        matches = self._select(lambda req: status is None or req.status == status)
        return sorted(matches, key=lambda req: (req.requested_at, req.id), reverse=True)[:limit]

    async def list_by_customer(self, customer_id: str, active_only: bool = False) -> List[LaundryRequest]:
        matches = self._select(
            lambda req: req.customer_id == customer_id and (not active_only or req.status in ACTIVE_STATES)
        )
        return sorted(matches, key=lambda req: (req.requested_at, req.id), reverse=True)

    async def count_requested_since(self, customer_id: str, since: datetime) -> int:
        return len(self._select(lambda req: req.customer_id == customer_id and req.requested_at >= since))


class InMemoryAuditStore(AuditStore):
    """Append-only list of audit entries."""

    def __init__(self) -> None:
        self.entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    async def append(self, entry: AuditEntry) -> AuditEntry:
        with self._lock:
            stored = entry.model_copy(update={"id": len(self.entries) + 1})
            self.entries.append(stored)
            return stored

    async def list_entries(
        self,
        request_id: Optional[int] = None,
        action: Optional[AuditAction] = None,
        limit: int = 50,
    ) -> List[AuditEntry]:
        with self._lock:
            entries = list(reversed(self.entries))
        if request_id is not None:
            entries = [entry for entry in entries if entry.request_id == request_id]
        if action is not None:
            entries = [entry for entry in entries if entry.action == action]
        return entries[:limit]


class InMemoryPaymentLedger(PaymentLedger):
    def __init__(self) -> None:
        self.payments: List[PendingPayment] = []

    async def create_pending_payment(
        self, request: LaundryRequest, processed_by: Optional[str] = None
    ) -> PendingPayment:
        now = utcnow()
        payment = PendingPayment(
            request_id=request.id,
            customer_id=request.customer_id,
            customer_name=request.customer_name,
            amount=request.total_cost,
            transaction_id=pending_transaction_id(now),
            notes="Auto-created pending payment on request completion",
            processed_by=processed_by,
            created_at=now,
        )
        self.payments.append(payment)
        return payment

    async def list_payments(self) -> List[PendingPayment]:
        return list(self.payments)
