"""Storage interfaces consumed by the dispatch core."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from laundry_dispatch.enterprise.core import (
    AuditAction,
    AuditEntry,
    LaundryRequest,
    PendingPayment,
    RequestStatus,
)


class RequestStore:
    """Durable keyed store of laundry requests with optimistic concurrency.

    ``save`` only succeeds when the stored row still carries
    ``expected_status`` (and ``expected_version`` when given); otherwise it
    raises :class:`~laundry_dispatch.enterprise.core.ConcurrentModification`.
    All reads return detached copies.
    """

    async def add(self, request: LaundryRequest) -> LaundryRequest:  # pragma: no cover - interface
        raise NotImplementedError

    async def get(self, request_id: int) -> LaundryRequest:  # pragma: no cover - interface
        raise NotImplementedError

    async def save(
        self,
        request: LaundryRequest,
        expected_status: RequestStatus,
        expected_version: Optional[int] = None,
    ) -> LaundryRequest:  # pragma: no cover - interface
        raise NotImplementedError

    async def list_by_robot(
        self, robot_name: str, exclude_terminal: bool = True
    ) -> List[LaundryRequest]:  # pragma: no cover - interface
        """Requests naming ``robot_name``, most recently accepted first."""
        raise NotImplementedError

    async def list_pending(self) -> List[LaundryRequest]:  # pragma: no cover - interface
        """Pending requests, oldest first."""
        raise NotImplementedError

    async def list_active(self) -> List[LaundryRequest]:  # pragma: no cover - interface
        raise NotImplementedError

    async def list_requests(
        self, status: Optional[RequestStatus] = None, limit: int = 100
    ) -> List[LaundryRequest]:  # pragma: no cover - interface
        raise NotImplementedError

    async def list_by_customer(
        self, customer_id: str, active_only: bool = False
    ) -> List[LaundryRequest]:  # pragma: no cover - interface
        """Requests of one customer, newest first."""
        raise NotImplementedError

    async def count_requested_since(self, customer_id: str, since: datetime) -> int:  # pragma: no cover - interface
        raise NotImplementedError


class AuditStore:
    """Append-only storage for audit entries."""

    async def append(self, entry: AuditEntry) -> AuditEntry:  # pragma: no cover - interface
        raise NotImplementedError

    async def list_entries(
        self,
        request_id: Optional[int] = None,
        action: Optional[AuditAction] = None,
        limit: int = 50,
    ) -> List[AuditEntry]:  # pragma: no cover - interface
        """Entries newest first."""
        raise NotImplementedError


class PaymentLedger:
    """Payment collaborator: receives a pending payment when a request completes."""

    async def create_pending_payment(
        self, request: LaundryRequest, processed_by: Optional[str] = None
    ) -> PendingPayment:  # pragma: no cover - interface
        raise NotImplementedError

    async def list_payments(self) -> List[PendingPayment]:  # pragma: no cover - interface
        raise NotImplementedError
