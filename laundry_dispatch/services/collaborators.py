"""Outbound collaborators: robot navigation commands and customer notifications."""

from __future__ import annotations

from typing import Optional

import structlog

from laundry_dispatch.enterprise.core import LaundryRequest
from laundry_dispatch.enterprise.core.models import utcnow

from .messaging import MessageBus, MessageEnvelope

logger = structlog.get_logger(__name__)


class RobotTransport:
    async def notify_start_navigation(
        self, robot_name: str, target: str, request: Optional[LaundryRequest] = None
    ) -> bool:  # pragma: no cover - interface
        raise NotImplementedError


class NotificationCollaborator:
    async def notify(self, request: LaundryRequest, event: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class MessageBusRobotTransport(RobotTransport):
    """Publishes navigation commands on ``<prefix>/robots/<name>/navigate``."""

    def __init__(self, bus: MessageBus, topic_prefix: str = "laundry") -> None:
        self.bus = bus
        self.topic_prefix = topic_prefix

    def topic_for(self, robot_name: str) -> str:
        return f"{self.topic_prefix}/robots/{robot_name}/navigate"

    async def notify_start_navigation(
        self, robot_name: str, target: str, request: Optional[LaundryRequest] = None
    ) -> bool:
        payload = {
            "robot": robot_name,
            "target": target,
            "issued_at": utcnow().isoformat(),
        }
        if request is not None:
            payload.update(
                request_id=request.id,
                room_name=request.room_name,
                beacon_mac=request.assigned_beacon_mac,
            )
        await self.bus.publish(MessageEnvelope(topic=self.topic_for(robot_name), payload=payload, qos=1))
        logger.debug("navigation_published", robot=robot_name, target=target)
        return True


class MessageBusNotifier(NotificationCollaborator):
    """Publishes customer-facing events on ``<prefix>/customers/<id>/notifications``."""

    def __init__(self, bus: MessageBus, topic_prefix: str = "laundry") -> None:
        self.bus = bus
        self.topic_prefix = topic_prefix

    def topic_for(self, customer_id: str) -> str:
        return f"{self.topic_prefix}/customers/{customer_id}/notifications"

    async def notify(self, request: LaundryRequest, event: str) -> None:
        payload = {
            "request_id": request.id,
            "event": event,
            "status": request.status.value,
            "robot": request.assigned_robot_name,
            "total_cost": str(request.total_cost) if request.total_cost is not None else None,
            "sent_at": utcnow().isoformat(),
        }
        await self.bus.publish(MessageEnvelope(topic=self.topic_for(request.customer_id), payload=payload))
