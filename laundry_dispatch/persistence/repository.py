"""SQLAlchemy-backed implementations of the storage interfaces."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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
from .memory import pending_transaction_id
from .models import AuditRecord, PaymentRecord, RequestRecord

_REQUEST_COLUMNS = [name for name in LaundryRequest.model_fields if name not in ("id", "version")]


def _aware(value: Any) -> Any:
    # sqlite drops tzinfo on the way back
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_model(record: RequestRecord) -> LaundryRequest:
    data: Dict[str, Any] = {name: _aware(getattr(record, name)) for name in _REQUEST_COLUMNS}
    data["id"] = record.id
    data["version"] = record.version
    return LaundryRequest.model_validate(data)


def _columns(request: LaundryRequest) -> Dict[str, Any]:
    return {name: getattr(request, name) for name in _REQUEST_COLUMNS}


class SqlRequestStore(RequestStore):
    """Request store persisting to a relational database.

    Saves are conditional updates on ``(id, status, version)`` so two writers
    racing from the same snapshot cannot both win.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def add(self, request: LaundryRequest) -> LaundryRequest:
        async with self._sessionmaker() as session:
            record = RequestRecord(version=1, **_columns(request))
            session.add(record)
            await session.commit()
            return _to_model(record)

    async def get(self, request_id: int) -> LaundryRequest:
        async with self._sessionmaker() as session:
            record = await session.get(RequestRecord, request_id)
            if record is None:
                raise NotFound("Request", request_id)
            return _to_model(record)

    async def save(
        self,
        request: LaundryRequest,
        expected_status: RequestStatus,
        expected_version: Optional[int] = None,
    ) -> LaundryRequest:
        conditions = [RequestRecord.id == request.id, RequestRecord.status == expected_status]
        if expected_version is not None:
            conditions.append(RequestRecord.version == expected_version)
        stmt = (
            update(RequestRecord)
            .where(*conditions)
            .values(version=RequestRecord.version + 1, **_columns(request))
            .execution_options(synchronize_session=False)
        )
        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                current = await session.get(RequestRecord, request.id)
                if current is None:
                    raise NotFound("Request", request.id)
                raise ConcurrentModification(request.id, expected_status.value, current.status.value)
            await session.commit()
            record = await session.get(RequestRecord, request.id, populate_existing=True)
            if record is None:
                raise NotFound("Request", request.id)
            return _to_model(record)

    async def _query(self, stmt) -> List[LaundryRequest]:
        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            return [_to_model(record) for record in result.scalars()]

    async def list_by_robot(self, robot_name: str, exclude_terminal: bool = True) -> List[LaundryRequest]:
        stmt = select(RequestRecord).where(func.lower(RequestRecord.assigned_robot_name) == robot_name.lower())
        if exclude_terminal:
            stmt = stmt.where(RequestRecord.status.not_in(TERMINAL_STATES))
        stmt = stmt.order_by(
            func.coalesce(RequestRecord.accepted_at, RequestRecord.requested_at).desc(),
            RequestRecord.id.desc(),
        )
        return await self._query(stmt)

    async def list_pending(self) -> List[LaundryRequest]:
        stmt = (
            select(RequestRecord)
            .where(RequestRecord.status == RequestStatus.PENDING)
            .order_by(RequestRecord.requested_at, RequestRecord.id)
        )
        return await self._query(stmt)

    async def list_active(self) -> List[LaundryRequest]:
        stmt = select(RequestRecord).where(RequestRecord.status.in_(ACTIVE_STATES)).order_by(RequestRecord.id)
        return await self._query(stmt)

    async def list_requests(self, status: Optional[RequestStatus] = None, limit: int = 100) -> List[LaundryRequest]:
        stmt = select(RequestRecord)
        if status is not None:
            stmt = stmt.where(RequestRecord.status == status)
        stmt = stmt.order_by(RequestRecord.requested_at.desc(), RequestRecord.id.desc()).limit(limit)
        return await self._query(stmt)

    async def list_by_customer(self, customer_id: str, active_only: bool = False) -> List[LaundryRequest]:
        stmt = select(RequestRecord).where(RequestRecord.customer_id == customer_id)
        if active_only:
            stmt = stmt.where(RequestRecord.status.in_(ACTIVE_STATES))
        stmt = stmt.order_by(RequestRecord.requested_at.desc(), RequestRecord.id.desc())
        return await self._query(stmt)

    async def count_requested_since(self, customer_id: str, since: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(RequestRecord)
            .where(RequestRecord.customer_id == customer_id, RequestRecord.requested_at >= since)
        )
        async with self._sessionmaker() as session:
            return int((await session.execute(stmt)).scalar_one())


class SqlAuditStore(AuditStore):
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def append(self, entry: AuditEntry) -> AuditEntry:
        async with self._sessionmaker() as session:
            record = AuditRecord(**entry.model_dump(exclude={"id"}))
            session.add(record)
            await session.commit()
            return entry.model_copy(update={"id": record.id})

    async def list_entries(
        self,
        request_id: Optional[int] = None,
        action: Optional[AuditAction] = None,
        limit: int = 50,
    ) -> List[AuditEntry]:
        stmt = select(AuditRecord)
        if request_id is not None:
            stmt = stmt.where(AuditRecord.request_id == request_id)
        if action is not None:
            stmt = stmt.where(AuditRecord.action == action)
        stmt = stmt.order_by(AuditRecord.actioned_at.desc(), AuditRecord.id.desc()).limit(limit)
        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            return [
                AuditEntry.model_validate(
                    {name: _aware(getattr(record, name)) for name in AuditEntry.model_fields}
                )
                for record in result.scalars()
            ]


class SqlPaymentLedger(PaymentLedger):
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

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
        async with self._sessionmaker() as session:
            session.add(PaymentRecord(**payment.model_dump()))
            await session.commit()
        return payment

    async def list_payments(self) -> List[PendingPayment]:
        async with self._sessionmaker() as session:
            result = await session.execute(select(PaymentRecord).order_by(PaymentRecord.id))
            return [
                PendingPayment.model_validate(
                    {name: _aware(getattr(record, name)) for name in PendingPayment.model_fields}
                )
                for record in result.scalars()
            ]
