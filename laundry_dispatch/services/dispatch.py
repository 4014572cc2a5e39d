"""Robot assignment for requests entering a robot-owned state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import structlog

from laundry_dispatch.enterprise.core import (
    AuditAction,
    ConcurrentModification,
    LaundryRequest,
    NoRobotAvailable,
    RequestStatus,
    Robot,
    RobotStatus,
)
from laundry_dispatch.enterprise.core.states import ROBOT_OWNED_STATES
from laundry_dispatch.observability.metrics import record_assignment
from laundry_dispatch.observability.tracing import get_tracer
from laundry_dispatch.persistence.base import RequestStore

from .audit import AuditRecorder
from .registry import RobotRegistry

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


def task_label(request_id: int) -> str:
    return f"Handling request #{request_id}"


@dataclass
class Assignment:
    robot: Robot
    preempted_request_id: Optional[int] = None
    # victim as it was before the requeue, and as the requeue saved it
    preempted: Optional[LaundryRequest] = None
    requeued: Optional[LaundryRequest] = None


class DispatchEngine:
    """Picks a robot for a request.

    Available robots are taken in registry order. When none is free the busy
    robot that has gone longest without a heartbeat is reclaimed: its current
    request goes back to the queue and the robot is handed to the newcomer.
    If the newcomer's own save then fails, :meth:`undo` puts the robot back
    with the request it was taken from.
    """

    def __init__(
        self,
        registry: RobotRegistry,
        store: RequestStore,
        audit: AuditRecorder,
        preemption_enabled: bool = True,
    ) -> None:
        self.registry = registry
        self.store = store
        self.audit = audit
        self.preemption_enabled = preemption_enabled

    async def assign(
        self,
        request_id: int,
        actor: Optional[str] = None,
        allow_preemption: Optional[bool] = None,
        expected_status: Optional[RequestStatus] = None,
        expected_version: Optional[int] = None,
    ) -> Assignment:
        """Reserve a robot for ``request_id``.

        ``expected_status`` and ``expected_version`` describe the snapshot the
        caller is about to save; when given, the request is re-read before
        another request is preempted and :class:`ConcurrentModification` is
        raised if it has moved on.
        """

        with tracer.start_as_current_span("dispatch.assign") as span:
            span.set_attribute("laundry.request_id", request_id)
            assignment = await self._select(request_id, actor, allow_preemption, expected_status, expected_version)
            span.set_attribute("laundry.robot", assignment.robot.name)
            if assignment.preempted_request_id is not None:
                span.set_attribute("laundry.preempted_request_id", assignment.preempted_request_id)
            return assignment

    def _accepting(self) -> List[Robot]:
        return [robot for robot in self.registry.list_active() if robot.can_accept_requests]

    def _claim_available(self, candidates: List[Robot], request_id: int) -> Optional[Assignment]:
        task = task_label(request_id)
        for robot in candidates:
            if robot.status != RobotStatus.AVAILABLE:
                continue
            if self.registry.try_set_status(robot.name, RobotStatus.AVAILABLE, RobotStatus.BUSY, task=task):
                logger.info("robot_assigned", robot=robot.name, request_id=request_id)
                record_assignment("available")
                return Assignment(self.registry.get(robot.name) or robot)
        return None

    async def _select(
        self,
        request_id: int,
        actor: Optional[str],
        allow_preemption: Optional[bool],
        expected_status: Optional[RequestStatus],
        expected_version: Optional[int],
    ) -> Assignment:
        candidates = self._accepting()
        if not candidates:
            record_assignment("unavailable")
            raise NoRobotAvailable(request_id)

        assignment = self._claim_available(candidates, request_id)
        if assignment is not None:
            return assignment

        preempt = self.preemption_enabled if allow_preemption is None else allow_preemption
        if preempt:
            # the first snapshot may predate robots taken or freed since
            candidates = self._accepting()
            assignment = self._claim_available(candidates, request_id)
            if assignment is not None:
                return assignment

            if expected_status is not None:
                await self._check_unchanged(request_id, expected_status, expected_version)
            busy = sorted(
                (robot for robot in candidates if robot.status == RobotStatus.BUSY),
                key=lambda robot: robot.last_heartbeat,
            )
            for victim in busy:
                assignment = await self._preempt(victim, request_id, actor)
                if assignment is not None:
                    record_assignment("preempted")
                    return assignment

        record_assignment("unavailable")
        logger.warning("no_robot_available", request_id=request_id)
        raise NoRobotAvailable(request_id)

    async def _check_unchanged(
        self, request_id: int, expected_status: RequestStatus, expected_version: Optional[int]
    ) -> None:
        current = await self.store.get(request_id)
        if current.status != expected_status or (expected_version is not None and current.version != expected_version):
            raise ConcurrentModification(request_id, expected_status.value, current.status.value)

    async def _preempt(self, victim: Robot, request_id: int, actor: Optional[str]) -> Optional[Assignment]:
        bound = await self.bound_request(victim.name)
        requeued: Optional[LaundryRequest] = None
        if bound is not None:
            reason = f"Robot {victim.name} reassigned to request #{request_id}"
            try:
                requeued = await self.requeue(bound, reason=reason, actor=actor)
            except ConcurrentModification:
                logger.info("preemption_lost_race", robot=victim.name, request_id=bound.id)
                return None

        if not self.registry.try_set_status(
            victim.name,
            RobotStatus.BUSY,
            RobotStatus.BUSY,
            task=task_label(request_id),
            expected_task=victim.current_task,
        ):
            logger.warning(
                "preemption_handover_failed",
                robot=victim.name,
                request_id=request_id,
                requeued_request_id=bound.id if bound is not None else None,
            )
            if (
                bound is not None
                and requeued is not None
                and self.registry.try_set_status(
                    victim.name, RobotStatus.AVAILABLE, RobotStatus.BUSY, task=task_label(bound.id)
                )
            ):
                await self._restore(bound, requeued, victim.name, request_id)
            return None

        preempted_id = bound.id if bound is not None else None
        logger.info(
            "robot_preempted",
            robot=victim.name,
            request_id=request_id,
            preempted_request_id=preempted_id,
        )
        return Assignment(
            self.registry.get(victim.name) or victim,
            preempted_request_id=preempted_id,
            preempted=bound,
            requeued=requeued,
        )

    async def undo(self, assignment: Assignment, request_id: int) -> None:
        """Give back a robot reserved for ``request_id`` whose save did not go through."""

        robot_name = assignment.robot.name
        if assignment.preempted is None or assignment.requeued is None:
            self.release(robot_name, request_id)
            return
        if not self.registry.try_set_status(
            robot_name,
            RobotStatus.BUSY,
            RobotStatus.BUSY,
            task=task_label(assignment.preempted.id),
            expected_task=task_label(request_id),
        ):
            logger.warning("preemption_undo_robot_moved", robot=robot_name, request_id=request_id)
            return
        await self._restore(assignment.preempted, assignment.requeued, robot_name, request_id)

    async def _restore(
        self,
        previous: LaundryRequest,
        requeued: LaundryRequest,
        robot_name: str,
        request_id: int,
    ) -> None:
        """Rebind a requeued request to ``robot_name``, which already carries its task."""

        restored = requeued.model_copy(
            update={
                "status": previous.status,
                "assigned_robot_name": previous.assigned_robot_name,
                "accepted_at": previous.accepted_at,
            }
        )
        try:
            saved = await self.store.save(restored, RequestStatus.PENDING, requeued.version)
        except ConcurrentModification:
            logger.warning("preemption_restore_failed", robot=robot_name, request_id=previous.id)
            self.release(robot_name, previous.id)
            return
        await self.audit.record(
            AuditAction.REASSIGN,
            saved,
            old_status=RequestStatus.PENDING,
            new_status=previous.status,
            robot_name=robot_name,
            reason=f"Robot {robot_name} returned: request #{request_id} was not assigned",
        )
        logger.info("preemption_undone", robot=robot_name, request_id=previous.id, for_request_id=request_id)

    async def bound_request(self, robot_name: str) -> Optional[LaundryRequest]:
        """Most recently accepted live request still holding ``robot_name``."""

        for request in await self.store.list_by_robot(robot_name, exclude_terminal=True):
            if request.status in ROBOT_OWNED_STATES:
                return request
        return None

    async def requeue(
        self,
        request: LaundryRequest,
        reason: str,
        actor: Optional[str] = None,
    ) -> LaundryRequest:
        """Put a robot-owned request back to Pending and record the reassignment."""

        robot_name = request.assigned_robot_name
        reset = request.model_copy(
            update={
                "status": RequestStatus.PENDING,
                "assigned_robot_name": None,
                "accepted_at": None,
            }
        )
        saved = await self.store.save(reset, request.status, request.version)
        await self.audit.record(
            AuditAction.REASSIGN,
            saved,
            old_status=request.status,
            new_status=RequestStatus.PENDING,
            actor=actor,
            robot_name=robot_name,
            reason=reason,
        )
        logger.info("request_requeued", request_id=request.id, robot=robot_name, reason=reason)
        return saved

    def release(self, robot_name: Optional[str], request_id: int) -> bool:
        """Return the robot to Available if it is still working on ``request_id``."""

        if not robot_name:
            return False
        released = self.registry.try_set_status(
            robot_name,
            RobotStatus.BUSY,
            RobotStatus.AVAILABLE,
            expected_task=task_label(request_id),
        )
        if released:
            logger.info("robot_released", robot=robot_name, request_id=request_id)
        return released
