"""Background heartbeat sweep that flags robots which stopped reporting."""

from __future__ import annotations

import asyncio
import contextlib
from typing import List, Optional, Set

import structlog

from laundry_dispatch.enterprise.config.settings import LivenessSettings, OfflinePolicy
from laundry_dispatch.enterprise.core import DispatchError, Robot
from laundry_dispatch.observability.metrics import OFFLINE_ROBOTS_GAUGE

from .lifecycle import LifecycleController
from .messaging import MessageBus, MessageEnvelope
from .registry import RobotRegistry

logger = structlog.get_logger(__name__)


class LivenessMonitor:
    """Periodically compares robot heartbeats against the offline threshold.

    Only online-to-offline flips are acted on, so a robot that stays silent is
    reported once. What happens to its request is decided by the configured
    :class:`OfflinePolicy`.
    """

    def __init__(
        self,
        registry: RobotRegistry,
        controller: LifecycleController,
        settings: Optional[LivenessSettings] = None,
        bus: Optional[MessageBus] = None,
        topic_prefix: str = "laundry",
    ) -> None:
        self.registry = registry
        self.controller = controller
        self.settings = settings or LivenessSettings()
        self.bus = bus
        self.alert_topic = f"{topic_prefix}/alerts/robots"
        self._offline: Set[str] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name="liveness-monitor")
        logger.info(
            "liveness_monitor_started",
            interval=self.settings.sweep_interval_s,
            threshold=self.settings.offline_threshold_s,
            policy=self.settings.offline_policy.value,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("liveness_monitor_stopped")

    async def _run_loop(self) -> None:
        if self.settings.startup_delay_s:
            await asyncio.sleep(self.settings.startup_delay_s)
        while True:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("liveness_sweep_failed")
            await asyncio.sleep(self.settings.sweep_interval_s)

    async def sweep_once(self) -> List[Robot]:
        """Run one sweep and return the robots that just went offline."""

        offline = self.registry.offline_robots()
        OFFLINE_ROBOTS_GAUGE.set(len(offline))
        offline_keys = {robot.name.lower() for robot in offline}

        flipped = [robot for robot in offline if robot.name.lower() not in self._offline]
        recovered = self._offline - offline_keys
        for name in recovered:
            logger.info("robot_back_online", robot=name)
        self._offline = offline_keys

        for robot in flipped:
            await self._handle_offline(robot)
        return flipped

    async def _handle_offline(self, robot: Robot) -> None:
        age = (self.registry.now() - robot.last_heartbeat).total_seconds()
        logger.warning(
            "robot_went_offline",
            robot=robot.name,
            status=robot.status.value,
            task=robot.current_task,
            seconds_since_heartbeat=round(age, 1),
        )
        await self._publish_alert(robot, age)

        policy = self.settings.offline_policy
        if policy == OfflinePolicy.ALERT:
            return
        reason = f"Robot {robot.name} went offline"
        try:
            if policy == OfflinePolicy.REQUEUE:
                await self.controller.requeue_robot(robot.name, reason=reason)
            elif policy == OfflinePolicy.CANCEL:
                bound = await self.controller.dispatcher.bound_request(robot.name)
                if bound is not None:
                    await self.controller.force_cancel(bound.id, reason=reason, actor="liveness")
        except DispatchError as exc:
            logger.warning("offline_policy_failed", robot=robot.name, policy=policy.value, error=exc.detail)

    async def _publish_alert(self, robot: Robot, age: float) -> None:
        if self.bus is None:
            return
        payload = {
            "robot": robot.name,
            "event": "offline",
            "last_heartbeat": robot.last_heartbeat.isoformat(),
            "seconds_since_heartbeat": round(age, 1),
            "current_task": robot.current_task,
        }
        try:
            await self.bus.publish(MessageEnvelope(topic=self.alert_topic, payload=payload, qos=1))
        except Exception as exc:
            logger.warning("offline_alert_publish_failed", robot=robot.name, error=str(exc))
