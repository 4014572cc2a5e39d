"""Pydantic schemas for robot endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from laundry_dispatch.enterprise.core import Robot


class RobotSchema(BaseModel):
    name: str
    address: str
    is_active: bool
    can_accept_requests: bool
    status: str
    current_task: Optional[str]
    connected_at: datetime
    last_heartbeat: datetime
    is_offline: bool

    @classmethod
    def from_domain(cls, robot: Robot, offline: bool) -> "RobotSchema":
        return cls(
            name=robot.name,
            address=robot.address,
            is_active=robot.is_active,
            can_accept_requests=robot.can_accept_requests,
            status=robot.status.value,
            current_task=robot.current_task,
            connected_at=robot.connected_at,
            last_heartbeat=robot.last_heartbeat,
            is_offline=offline,
        )


class RegisterRobotBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    address: str = ""


class HeartbeatBody(BaseModel):
    address: Optional[str] = None


class ToggleBody(BaseModel):
    enabled: bool
