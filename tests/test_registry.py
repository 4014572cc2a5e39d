import pytest

from laundry_dispatch.enterprise.core import RobotStatus
from laundry_dispatch.services.registry import RobotRegistry

from conftest import FakeClock


def test_register_is_idempotent_and_updates_address():
    clock = FakeClock()
    registry = RobotRegistry(clock=clock)

    first = registry.register("R1", "10.0.0.5")
    clock.advance(3)
    second = registry.register("r1", "10.0.0.9")

    assert len(registry.list_all()) == 1
    assert second.name == "R1"
    assert second.address == "10.0.0.9"
    assert second.last_heartbeat > first.last_heartbeat
    assert second.status == RobotStatus.AVAILABLE


def test_register_rejects_blank_name():
    with pytest.raises(ValueError):
        RobotRegistry().register("  ")


def test_heartbeat_from_unknown_robot_returns_false():
    registry = RobotRegistry()
    assert registry.heartbeat("ghost") is False


def test_lapsed_heartbeat_excludes_robot_from_active_list():
    clock = FakeClock()
    registry = RobotRegistry(offline_threshold_s=5.0, clock=clock)
    registry.register("R1")
    registry.register("R2")

    clock.advance(4)
    registry.heartbeat("R2")
    clock.advance(2)

    active = [robot.name for robot in registry.list_active()]
    assert active == ["R2"]
    r1 = registry.get("R1")
    assert r1 is not None and r1.is_active
    assert [robot.name for robot in registry.offline_robots()] == ["R1"]


def test_inactive_robot_not_listed():
    registry = RobotRegistry()
    registry.register("R1")
    registry.register("R2")
    registry.set_active("R1", False)

    assert [robot.name for robot in registry.list_active()] == ["R2"]


def test_try_set_status_is_compare_and_set():
    registry = RobotRegistry()
    registry.register("R1")

    assert registry.try_set_status("R1", RobotStatus.AVAILABLE, RobotStatus.BUSY, task="Handling request #1")
    assert not registry.try_set_status("R1", RobotStatus.AVAILABLE, RobotStatus.BUSY, task="Handling request #2")

    robot = registry.get("R1")
    assert robot.status == RobotStatus.BUSY
    assert robot.current_task == "Handling request #1"

    assert not registry.try_set_status(
        "R1", RobotStatus.BUSY, RobotStatus.AVAILABLE, expected_task="Handling request #2"
    )
    assert registry.try_set_status("R1", RobotStatus.BUSY, RobotStatus.AVAILABLE, expected_task="Handling request #1")
    assert registry.get("R1").current_task is None


def test_snapshots_are_copies():
    registry = RobotRegistry()
    registry.register("R1")

    snapshot = registry.get("R1")
    snapshot.status = RobotStatus.MAINTENANCE

    assert registry.get("R1").status == RobotStatus.AVAILABLE


def test_maintenance_toggle_only_from_available():
    registry = RobotRegistry()
    registry.register("R1")

    assert registry.set_maintenance("R1", True)
    assert registry.get("R1").status == RobotStatus.MAINTENANCE
    assert registry.set_maintenance("R1", False)
    registry.try_set_status("R1", RobotStatus.AVAILABLE, RobotStatus.BUSY, task="Handling request #1")
    assert not registry.set_maintenance("R1", True)


def test_disconnect_removes_robot():
    registry = RobotRegistry()
    registry.register("R1")

    assert registry.disconnect("r1")
    assert registry.get("R1") is None
    assert not registry.disconnect("R1")
