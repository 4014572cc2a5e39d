"""Robot presence and control endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from laundry_dispatch.enterprise.core import NotFound, PreconditionFailed, Robot
from laundry_dispatch.server.api.schemas.robots import HeartbeatBody, RegisterRobotBody, RobotSchema, ToggleBody
from laundry_dispatch.server.dependencies import get_registry
from laundry_dispatch.services import RobotRegistry

router = APIRouter(prefix="/robots", tags=["robots"])


def _registry(registry: RobotRegistry = Depends(get_registry)) -> RobotRegistry:
    return registry


def _schema(registry: RobotRegistry, robot: Robot) -> RobotSchema:
    return RobotSchema.from_domain(robot, registry.is_offline(robot))


def _require(registry: RobotRegistry, name: str) -> Robot:
    robot = registry.get(name)
    if robot is None:
        raise NotFound("Robot", name)
    return robot


@router.get("", response_model=List[RobotSchema])
async def list_robots(registry: RobotRegistry = Depends(_registry)) -> List[RobotSchema]:
    return [_schema(registry, robot) for robot in registry.list_all()]


@router.get("/active", response_model=List[RobotSchema])
async def list_active_robots(registry: RobotRegistry = Depends(_registry)) -> List[RobotSchema]:
    return [_schema(registry, robot) for robot in registry.list_active()]


@router.post("/register", response_model=RobotSchema, status_code=status.HTTP_201_CREATED)
async def register_robot(body: RegisterRobotBody, registry: RobotRegistry = Depends(_registry)) -> RobotSchema:
    return _schema(registry, registry.register(body.name, body.address))


@router.get("/{name}", response_model=RobotSchema)
async def get_robot(name: str, registry: RobotRegistry = Depends(_registry)) -> RobotSchema:
    return _schema(registry, _require(registry, name))


@router.post("/{name}/heartbeat", status_code=status.HTTP_204_NO_CONTENT)
async def heartbeat(name: str, body: HeartbeatBody | None = None, registry: RobotRegistry = Depends(_registry)) -> None:
    if not registry.heartbeat(name, body.address if body else None):
        raise NotFound("Robot", name)


@router.post("/{name}/active", response_model=RobotSchema)
async def set_active(name: str, body: ToggleBody, registry: RobotRegistry = Depends(_registry)) -> RobotSchema:
    if not registry.set_active(name, body.enabled):
        raise NotFound("Robot", name)
    return _schema(registry, _require(registry, name))


@router.post("/{name}/accepting", response_model=RobotSchema)
async def set_accepting(name: str, body: ToggleBody, registry: RobotRegistry = Depends(_registry)) -> RobotSchema:
    if not registry.set_accepting(name, body.enabled):
        raise NotFound("Robot", name)
    return _schema(registry, _require(registry, name))


@router.post("/{name}/maintenance", response_model=RobotSchema)
async def set_maintenance(name: str, body: ToggleBody, registry: RobotRegistry = Depends(_registry)) -> RobotSchema:
    robot = _require(registry, name)
    if not registry.set_maintenance(name, body.enabled):
        raise PreconditionFailed(f"Robot {name} is {robot.status.value} and cannot change maintenance mode now.")
    return _schema(registry, _require(registry, name))


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_robot(name: str, registry: RobotRegistry = Depends(_registry)) -> None:
    if not registry.disconnect(name):
        raise NotFound("Robot", name)
