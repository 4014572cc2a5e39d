from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from laundry_dispatch.enterprise.core import (
    AuditAction,
    AuditEntry,
    ConcurrentModification,
    LaundryRequest,
    NotFound,
    RequestStatus,
)
from laundry_dispatch.enterprise.core.models import utcnow
from laundry_dispatch.persistence import SqlAuditStore, SqlPaymentLedger, SqlRequestStore, metadata


@pytest_asyncio.fixture
async def sessionmaker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


def _request(customer_id: str = "C-1", **fields) -> LaundryRequest:
    return LaundryRequest(customer_id=customer_id, customer_name="Customer", **fields)


@pytest.mark.asyncio
async def test_conditional_save_bumps_version(sessionmaker):
    store = SqlRequestStore(sessionmaker)
    stored = await store.add(_request())
    assert stored.version == 1

    accepted = stored.model_copy(
        update={"status": RequestStatus.ACCEPTED, "assigned_robot_name": "R1", "accepted_at": utcnow()}
    )
    saved = await store.save(accepted, RequestStatus.PENDING, stored.version)
    assert saved.version == 2
    assert saved.assigned_robot_name == "R1"
    assert saved.accepted_at.tzinfo is not None

    with pytest.raises(ConcurrentModification):
        await store.save(stored.model_copy(update={"status": RequestStatus.DECLINED}), RequestStatus.PENDING)

    with pytest.raises(ConcurrentModification):
        await store.save(saved, RequestStatus.ACCEPTED, stored.version)

    assert (await store.get(stored.id)).status == RequestStatus.ACCEPTED


@pytest.mark.asyncio
async def test_unknown_ids_raise_not_found(sessionmaker):
    store = SqlRequestStore(sessionmaker)

    with pytest.raises(NotFound):
        await store.get(42)
    with pytest.raises(NotFound):
        await store.save(_request(id=42), RequestStatus.PENDING)


class RowVanishesAfterCommit(AsyncSession):
    async def get(self, entity, ident, **kwargs):
        if kwargs.get("populate_existing"):
            return None
        return await super().get(entity, ident, **kwargs)


@pytest.mark.asyncio
async def test_save_raises_not_found_when_row_is_gone_after_commit(sessionmaker):
    store = SqlRequestStore(sessionmaker)
    stored = await store.add(_request())
    vanishing = SqlRequestStore(
        async_sessionmaker(sessionmaker.kw["bind"], class_=RowVanishesAfterCommit, expire_on_commit=False)
    )
    declined = stored.model_copy(update={"status": RequestStatus.DECLINED})

    with pytest.raises(NotFound):
        await vanishing.save(declined, RequestStatus.PENDING, stored.version)


@pytest.mark.asyncio
async def test_queries(sessionmaker):
    store = SqlRequestStore(sessionmaker)
    now = utcnow()
    older = await store.add(
        _request("C-1", status=RequestStatus.WASHING, assigned_robot_name="R1", accepted_at=now - timedelta(minutes=5))
    )
    newer = await store.add(_request("C-2", status=RequestStatus.ACCEPTED, assigned_robot_name="r1", accepted_at=now))
    await store.add(_request("C-1", status=RequestStatus.COMPLETED, assigned_robot_name="R1", accepted_at=now))
    pending = await store.add(_request("C-3"))

    assert [request.id for request in await store.list_by_robot("R1")] == [newer.id, older.id]
    assert len(await store.list_by_robot("R1", exclude_terminal=False)) == 3
    assert [request.id for request in await store.list_pending()] == [pending.id]
    assert len(await store.list_active()) == 3
    assert [request.id for request in await store.list_by_customer("C-1", active_only=True)] == [older.id]
    assert await store.count_requested_since("C-1", now - timedelta(hours=1)) == 2
    assert len(await store.list_requests(status=RequestStatus.COMPLETED)) == 1


@pytest.mark.asyncio
async def test_audit_and_payments(sessionmaker):
    requests = SqlRequestStore(sessionmaker)
    audit = SqlAuditStore(sessionmaker)
    ledger = SqlPaymentLedger(sessionmaker)
    request = await requests.add(_request(total_cost=Decimal("75.00"), status=RequestStatus.COMPLETED))

    first = await audit.append(
        AuditEntry(action=AuditAction.CREATE, request_id=request.id, new_status=RequestStatus.PENDING)
    )
    await audit.append(
        AuditEntry(
            action=AuditAction.COMPLETE,
            request_id=request.id,
            old_status=RequestStatus.FINISHED_WASHING_AWAITING_PICKUP,
            new_status=RequestStatus.COMPLETED,
            actioned_at=first.actioned_at + timedelta(seconds=1),
        )
    )

    entries = await audit.list_entries(request_id=request.id)
    assert [entry.action for entry in entries] == [AuditAction.COMPLETE, AuditAction.CREATE]
    assert first.id is not None
    assert len(await audit.list_entries(action=AuditAction.CREATE)) == 1

    payment = await ledger.create_pending_payment(request, processed_by="admin")
    assert payment.transaction_id.startswith("PEND_")
    stored = await ledger.list_payments()
    assert [(item.request_id, item.amount) for item in stored] == [(request.id, Decimal("75.00"))]
