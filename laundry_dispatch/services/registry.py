"""In-memory registry of connected robots."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import structlog

from laundry_dispatch.enterprise.core import Robot, RobotStatus
from laundry_dispatch.enterprise.core.models import utcnow

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


@dataclass
class _RobotEntry:
    robot: Robot
    lock: threading.Lock = field(default_factory=threading.Lock)


class RobotRegistry:
    """Single source of truth for robot presence and status.

    Each robot lives in its own entry guarded by its own lock, so heartbeats,
    liveness sweeps and dispatch decisions on different robots never wait on
    each other. Reads always hand out copies.
    """

    def __init__(self, offline_threshold_s: float = 5.0, clock: Optional[Clock] = None) -> None:
        self.offline_threshold = timedelta(seconds=offline_threshold_s)
        self._clock = clock or utcnow
        self._entries: Dict[str, _RobotEntry] = {}
        self._table_lock = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().lower()

    def _entry(self, name: str) -> Optional[_RobotEntry]:
        with self._table_lock:
            return self._entries.get(self._key(name))

    def _entries_snapshot(self) -> List[_RobotEntry]:
        with self._table_lock:
            return list(self._entries.values())

    def register(self, name: str, address: str = "") -> Robot:
        if not name or not name.strip():
            raise ValueError("Robot name must not be empty")
        now = self.now()
        with self._table_lock:
            entry = self._entries.get(self._key(name))
            if entry is None:
                robot = Robot(name=name, address=address, connected_at=now, last_heartbeat=now)
                entry = _RobotEntry(robot)
                self._entries[self._key(name)] = entry
                logger.info("robot_registered", robot=name, address=address)
                return robot.model_copy()

        with entry.lock:
            if entry.robot.address != address:
                logger.info("robot_address_changed", robot=name, address=address)
            entry.robot.address = address
            entry.robot.last_heartbeat = now
            logger.info("robot_reconnected", robot=entry.robot.name, address=address)
            return entry.robot.model_copy()

    def heartbeat(self, name: str, address: Optional[str] = None) -> bool:
        entry = self._entry(name)
        if entry is None:
            logger.warning("heartbeat_from_unknown_robot", robot=name)
            return False
        with entry.lock:
            entry.robot.last_heartbeat = self.now()
            if address:
                entry.robot.address = address
        return True

    def get(self, name: str) -> Optional[Robot]:
        entry = self._entry(name)
        if entry is None:
            return None
        with entry.lock:
            return entry.robot.model_copy()

    def list_all(self) -> List[Robot]:
        robots = []
        for entry in self._entries_snapshot():
            with entry.lock:
                robots.append(entry.robot.model_copy())
        return robots

    def is_offline(self, robot: Robot, now: Optional[datetime] = None) -> bool:
        return robot.is_offline(now or self.now(), self.offline_threshold)

    def list_active(self) -> List[Robot]:
        """Return active, online robots in registration order."""

        now = self.now()
        return [
            robot
            for robot in self.list_all()
            if robot.is_active and not robot.is_offline(now, self.offline_threshold)
        ]

    def offline_robots(self) -> List[Robot]:
        now = self.now()
        return [robot for robot in self.list_all() if robot.is_offline(now, self.offline_threshold)]

    def try_set_status(
        self,
        name: str,
        expected: RobotStatus,
        new: RobotStatus,
        task: Optional[str] = None,
        expected_task: Optional[str] = None,
    ) -> bool:
        """Compare-and-set the robot status; ``False`` when ``expected`` no longer holds.

        With ``expected_task`` the swap also requires the robot to still be
        working on that task.
        """

        entry = self._entry(name)
        if entry is None:
            return False
        with entry.lock:
            if entry.robot.status != expected:
                return False
            if expected_task is not None and entry.robot.current_task != expected_task:
                return False
            entry.robot.status = new
            entry.robot.current_task = task if new == RobotStatus.BUSY else None
        logger.debug("robot_status_changed", robot=name, old=expected.value, new=new.value, task=task)
        return True

    def set_active(self, name: str, active: bool) -> bool:
        entry = self._entry(name)
        if entry is None:
            return False
        with entry.lock:
            entry.robot.is_active = active
        logger.info("robot_active_toggled", robot=name, active=active)
        return True

    def set_accepting(self, name: str, accepting: bool) -> bool:
        entry = self._entry(name)
        if entry is None:
            return False
        with entry.lock:
            entry.robot.can_accept_requests = accepting
        logger.info("robot_accepting_toggled", robot=name, accepting=accepting)
        return True

    def set_maintenance(self, name: str, maintenance: bool) -> bool:
        expected, new = (
            (RobotStatus.AVAILABLE, RobotStatus.MAINTENANCE)
            if maintenance
            else (RobotStatus.MAINTENANCE, RobotStatus.AVAILABLE)
        )
        return self.try_set_status(name, expected, new)

    def disconnect(self, name: str) -> bool:
        with self._table_lock:
            entry = self._entries.pop(self._key(name), None)
        if entry is None:
            return False
        logger.info("robot_disconnected", robot=name)
        return True

    def reset(self) -> None:
        with self._table_lock:
            self._entries.clear()
