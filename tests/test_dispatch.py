import pytest

from laundry_dispatch.enterprise.core import ConcurrentModification, NoRobotAvailable, RequestStatus, RobotStatus
from laundry_dispatch.observability.metrics import metrics_registry
from laundry_dispatch.persistence import InMemoryRequestStore
from laundry_dispatch.services.dispatch import task_label

from conftest import build_core


def _preempted_count() -> float:
    value = metrics_registry.get_sample_value("laundry_dispatch_assignments_total", {"outcome": "preempted"})
    return value or 0.0


@pytest.mark.asyncio
async def test_assign_fails_without_active_robots(core):
    request_id = await core.submit()
    before = await core.store.get(request_id)

    with pytest.raises(NoRobotAvailable):
        await core.dispatcher.assign(request_id)
    with pytest.raises(NoRobotAvailable):
        await core.controller.accept_request(request_id)

    after = await core.store.get(request_id)
    assert after.status == RequestStatus.PENDING
    assert after.version == before.version
    assert "Accept" not in core.audit_actions(request_id)


@pytest.mark.asyncio
async def test_offline_robots_are_not_dispatched(core):
    core.registry.register("R1")
    core.clock.advance(6)
    request_id = await core.submit()

    with pytest.raises(NoRobotAvailable):
        await core.controller.accept_request(request_id)


@pytest.mark.asyncio
async def test_first_available_robot_in_registration_order(core):
    core.registry.register("R1")
    core.registry.register("R2")

    assignment = await core.dispatcher.assign(42)

    assert assignment.robot.name == "R1"
    assert assignment.robot.status == RobotStatus.BUSY
    assert assignment.robot.current_task == "Handling request #42"
    assert core.registry.get("R2").status == RobotStatus.AVAILABLE


@pytest.mark.asyncio
async def test_robot_not_accepting_requests_is_skipped(core):
    core.registry.register("R1")
    core.registry.register("R2")
    core.registry.set_accepting("R1", False)

    assignment = await core.dispatcher.assign(7)

    assert assignment.robot.name == "R2"


@pytest.mark.asyncio
async def test_preemption_requeues_bound_request(core):
    core.registry.register("R")
    first = await core.submit("C-1")
    accepted = await core.controller.accept_request(first)
    assert accepted.robot_name == "R"

    second = await core.submit("C-2")
    before = _preempted_count()
    result = await core.controller.accept_request(second)

    assert result.robot_name == "R"
    assert result.preempted_request_id == first
    assert _preempted_count() == before + 1

    requeued = await core.store.get(first)
    assert requeued.status == RequestStatus.PENDING
    assert requeued.assigned_robot_name is None
    assert requeued.accepted_at is None
    assert core.audit_actions(first) == ["Create", "Accept", "Reassign"]

    robot = core.registry.get("R")
    assert robot.status == RobotStatus.BUSY
    assert robot.current_task == f"Handling request #{second}"


@pytest.mark.asyncio
async def test_preemption_can_be_disabled():
    core = build_core(dispatch={"preemption_enabled": False})
    core.registry.register("R")
    first = await core.submit("C-1")
    await core.controller.accept_request(first)
    second = await core.submit("C-2")

    with pytest.raises(NoRobotAvailable):
        await core.controller.accept_request(second)

    assert (await core.store.get(first)).status == RequestStatus.ACCEPTED
    assert (await core.store.get(second)).status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_three_robots_two_available_one_busy(core):
    core.registry.register("R3")
    first_request = await core.submit("C-0")
    await core.controller.accept_request(first_request)

    core.clock.advance(1)
    core.registry.register("R1")
    core.registry.register("R2")

    ids = [await core.submit(f"C-{n}") for n in (1, 2, 3)]
    results = [await core.controller.accept_request(request_id) for request_id in ids]

    assert [result.robot_name for result in results] == ["R1", "R2", "R3"]
    assert results[2].preempted_request_id == first_request
    assert (await core.store.get(first_request)).status == RequestStatus.PENDING
    assert (await core.store.get(first_request)).assigned_robot_name is None


@pytest.mark.asyncio
async def test_preemption_picks_oldest_heartbeat(core):
    core.registry.register("R1")
    core.registry.register("R2")
    a = await core.submit("C-1")
    b = await core.submit("C-2")
    await core.controller.accept_request(a)
    await core.controller.accept_request(b)

    core.clock.advance(2)
    core.registry.heartbeat("R1")

    c = await core.submit("C-3")
    result = await core.controller.accept_request(c)

    assert result.robot_name == "R2"
    assert result.preempted_request_id == b


@pytest.mark.asyncio
async def test_release_only_frees_robot_still_on_request(core):
    core.registry.register("R1")
    await core.dispatcher.assign(5)

    assert not core.dispatcher.release("R1", 6)
    assert core.registry.get("R1").status == RobotStatus.BUSY
    assert core.dispatcher.release("R1", 5)
    assert core.registry.get("R1").status == RobotStatus.AVAILABLE


class DecliningStore(InMemoryRequestStore):
    """Declines one request behind the caller's back just before its next save."""

    def __init__(self) -> None:
        super().__init__()
        self.decline_on_save = None

    async def save(self, request, expected_status, expected_version=None):
        if request.id == self.decline_on_save:
            self.decline_on_save = None
            stored = await self.get(request.id)
            await super().save(
                stored.model_copy(update={"status": RequestStatus.DECLINED}), stored.status, stored.version
            )
        return await super().save(request, expected_status, expected_version)


def _use_store(core, store) -> None:
    core.store = store
    core.controller.store = store
    core.dispatcher.store = store


def _serve_stale_snapshot_once(core, monkeypatch, snapshot) -> None:
    live = core.registry.list_active
    calls = []

    def list_active():
        calls.append(1)
        return snapshot if len(calls) == 1 else live()

    monkeypatch.setattr(core.registry, "list_active", list_active)


@pytest.mark.asyncio
async def test_stale_snapshot_falls_through_to_next_available_robot(core, monkeypatch):
    core.registry.register("R1")
    core.registry.register("R2")
    winner = await core.submit("C-1")
    loser = await core.submit("C-2")
    snapshot = core.registry.list_active()
    await core.controller.accept_request(winner)

    _serve_stale_snapshot_once(core, monkeypatch, snapshot)
    result = await core.controller.accept_request(loser)

    assert result.robot_name == "R2"
    assert result.preempted_request_id is None
    assert (await core.store.get(winner)).assigned_robot_name == "R1"


@pytest.mark.asyncio
async def test_stale_snapshot_still_preempts_the_robot_taken_meanwhile(core, monkeypatch):
    core.registry.register("R1")
    winner = await core.submit("C-1")
    loser = await core.submit("C-2")
    snapshot = core.registry.list_active()
    await core.controller.accept_request(winner)

    _serve_stale_snapshot_once(core, monkeypatch, snapshot)
    result = await core.controller.accept_request(loser)

    assert result.robot_name == "R1"
    assert result.preempted_request_id == winner
    assert (await core.store.get(winner)).status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_failed_save_after_preemption_gives_robot_back(core):
    store = DecliningStore()
    _use_store(core, store)
    core.registry.register("R1")
    held = await core.submit("C-1")
    await core.controller.accept_request(held)
    before = await store.get(held)
    newcomer = await core.submit("C-2")

    store.decline_on_save = newcomer
    with pytest.raises(ConcurrentModification):
        await core.controller.accept_request(newcomer)

    restored = await store.get(held)
    assert restored.status == RequestStatus.ACCEPTED
    assert restored.assigned_robot_name == "R1"
    assert restored.accepted_at == before.accepted_at
    robot = core.registry.get("R1")
    assert robot.status == RobotStatus.BUSY
    assert robot.current_task == task_label(held)
    assert (await store.get(newcomer)).status == RequestStatus.DECLINED
    assert core.audit_actions(held) == ["Create", "Accept", "Reassign", "Reassign"]


@pytest.mark.asyncio
async def test_assign_rechecks_request_before_preempting(core):
    core.registry.register("R1")
    held = await core.submit("C-1")
    await core.controller.accept_request(held)
    newcomer = await core.submit("C-2")
    seen = await core.store.get(newcomer)
    await core.controller.decline_request(newcomer, "Duplicate")

    with pytest.raises(ConcurrentModification):
        await core.dispatcher.assign(newcomer, expected_status=seen.status, expected_version=seen.version)

    untouched = await core.store.get(held)
    assert untouched.status == RequestStatus.ACCEPTED
    assert untouched.assigned_robot_name == "R1"
    assert "Reassign" not in core.audit_actions(held)


@pytest.mark.asyncio
async def test_failed_handover_rebinds_requeued_request(core, monkeypatch):
    core.registry.register("R1")
    held = await core.submit("C-1")
    await core.controller.accept_request(held)
    newcomer = await core.submit("C-2")
    real = core.registry.try_set_status

    def try_set_status(name, expected, new, task=None, expected_task=None):
        if expected == new == RobotStatus.BUSY and task == task_label(newcomer):
            # the robot is freed by someone else before the handover lands
            real(name, RobotStatus.BUSY, RobotStatus.AVAILABLE, expected_task=task_label(held))
            return False
        return real(name, expected, new, task=task, expected_task=expected_task)

    monkeypatch.setattr(core.registry, "try_set_status", try_set_status)
    with pytest.raises(NoRobotAvailable):
        await core.controller.accept_request(newcomer)

    rebound = await core.store.get(held)
    assert rebound.status == RequestStatus.ACCEPTED
    assert rebound.assigned_robot_name == "R1"
    assert core.registry.get("R1").current_task == task_label(held)
    assert (await core.store.get(newcomer)).status == RequestStatus.PENDING
