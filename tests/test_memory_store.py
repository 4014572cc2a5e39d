from datetime import timedelta

import pytest

from laundry_dispatch.enterprise.core import ConcurrentModification, LaundryRequest, NotFound, RequestStatus
from laundry_dispatch.enterprise.core.models import utcnow
from laundry_dispatch.persistence import InMemoryRequestStore


def _request(customer_id: str = "C-1", **fields) -> LaundryRequest:
    return LaundryRequest(customer_id=customer_id, customer_name="Customer", **fields)


@pytest.mark.asyncio
async def test_add_assigns_ids_and_version():
    store = InMemoryRequestStore()

    first = await store.add(_request())
    second = await store.add(_request())

    assert (first.id, second.id) == (1, 2)
    assert first.version == 1


@pytest.mark.asyncio
async def test_get_unknown_request_raises():
    with pytest.raises(NotFound):
        await InMemoryRequestStore().get(99)


@pytest.mark.asyncio
async def test_save_checks_status_and_version():
    store = InMemoryRequestStore()
    stored = await store.add(_request())

    accepted = stored.model_copy(update={"status": RequestStatus.ACCEPTED, "assigned_robot_name": "R1"})
    saved = await store.save(accepted, RequestStatus.PENDING, stored.version)
    assert saved.version == 2

    stale = stored.model_copy(update={"status": RequestStatus.DECLINED})
    with pytest.raises(ConcurrentModification) as excinfo:
        await store.save(stale, RequestStatus.PENDING, stored.version)
    assert excinfo.value.actual == "Accepted"

    with pytest.raises(ConcurrentModification):
        await store.save(saved, RequestStatus.ACCEPTED, stored.version)


@pytest.mark.asyncio
async def test_reads_are_detached_copies():
    store = InMemoryRequestStore()
    stored = await store.add(_request())

    stored.status = RequestStatus.CANCELLED

    assert (await store.get(stored.id)).status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_list_by_robot_orders_by_acceptance_and_skips_terminal():
    store = InMemoryRequestStore()
    now = utcnow()
    older = await store.add(
        _request(status=RequestStatus.WASHING, assigned_robot_name="R1", accepted_at=now - timedelta(minutes=5))
    )
    newer = await store.add(
        _request(status=RequestStatus.ACCEPTED, assigned_robot_name="r1", accepted_at=now)
    )
    await store.add(_request(status=RequestStatus.COMPLETED, assigned_robot_name="R1", accepted_at=now))

    live = await store.list_by_robot("R1")
    everything = await store.list_by_robot("R1", exclude_terminal=False)

    assert [request.id for request in live] == [newer.id, older.id]
    assert len(everything) == 3


@pytest.mark.asyncio
async def test_customer_queries():
    store = InMemoryRequestStore()
    await store.add(_request("C-1", status=RequestStatus.CANCELLED))
    active = await store.add(_request("C-1"))
    await store.add(_request("C-2"))

    assert [request.id for request in await store.list_by_customer("C-1", active_only=True)] == [active.id]
    assert len(await store.list_by_customer("C-1")) == 2
    assert await store.count_requested_since("C-1", utcnow() - timedelta(hours=1)) == 2
    assert await store.count_requested_since("C-1", utcnow() + timedelta(hours=1)) == 0


@pytest.mark.asyncio
async def test_list_pending_is_oldest_first():
    store = InMemoryRequestStore()
    now = utcnow()
    late = await store.add(_request("C-1", requested_at=now))
    early = await store.add(_request("C-2", requested_at=now - timedelta(minutes=1)))
    await store.add(_request("C-3", status=RequestStatus.ACCEPTED, assigned_robot_name="R1"))

    assert [request.id for request in await store.list_pending()] == [early.id, late.id]
    assert len(await store.list_active()) == 3
