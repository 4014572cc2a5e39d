"""Exception hierarchy for dispatch and lifecycle failures.

Every error carries a short human-readable ``detail`` plus an HTTP status and
a stable ``error_code`` so the API layer can render it without inspecting the
type.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


class DispatchError(Exception):
    """Base exception for all dispatch core errors."""

    def __init__(self, detail: str, status_code: int = 500, error_code: str = "INTERNAL_ERROR"):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(detail)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API response."""
        return {
            "error": self.error_code,
            "detail": self.detail,
            "status_code": self.status_code,
            "timestamp": self.timestamp,
        }


class InvalidTransition(DispatchError):
    """Raised when a move is not in the transition table or starts from a terminal state."""

    def __init__(self, request_id: int, current: str, target: str, reason: Optional[str] = None):
        self.request_id = request_id
        self.current = current
        self.target = target
        detail = reason or f"Request #{request_id} cannot move from {current} to {target}."
        super().__init__(detail=detail, status_code=409, error_code="INVALID_TRANSITION")


class NoRobotAvailable(DispatchError):
    """Raised when dispatch finds no eligible robot."""

    def __init__(self, request_id: Optional[int] = None):
        self.request_id = request_id
        super().__init__(
            detail="No robots available for assignment.",
            status_code=409,
            error_code="NO_ROBOT_AVAILABLE",
        )


class NoActiveRobots(DispatchError):
    """Raised when a delivery cannot start because its robot is not online."""

    def __init__(self, request_id: int, robot_name: Optional[str] = None):
        self.request_id = request_id
        self.robot_name = robot_name
        if robot_name:
            detail = f"Robot {robot_name} is not active - cannot start delivery for request #{request_id}."
        else:
            detail = "No bots active - cannot start delivery. Please wait for a robot to come online."
        super().__init__(detail=detail, status_code=409, error_code="NO_ACTIVE_ROBOTS")


class ConcurrentModification(DispatchError):
    """Raised when a save is based on a stale status or version."""

    def __init__(self, request_id: int, expected: str, actual: str):
        self.request_id = request_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            detail=f"Request #{request_id} was modified concurrently (expected {expected}, found {actual}).",
            status_code=409,
            error_code="CONCURRENT_MODIFICATION",
        )


class NotFound(DispatchError):
    """Raised when a request or robot is unknown."""

    def __init__(self, kind: str, identifier: object):
        self.kind = kind
        self.identifier = identifier
        super().__init__(
            detail=f"{kind} {identifier} not found.",
            status_code=404,
            error_code="NOT_FOUND",
        )


class PreconditionFailed(DispatchError):
    """Raised when an operation's business precondition does not hold."""

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=422, error_code="PRECONDITION_FAILED")
