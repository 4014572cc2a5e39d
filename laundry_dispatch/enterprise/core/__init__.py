"""Core domain package for the laundry dispatch platform."""

from .errors import (
    ConcurrentModification,
    DispatchError,
    InvalidTransition,
    NoActiveRobots,
    NoRobotAvailable,
    NotFound,
    PreconditionFailed,
)
from .models import (
    AuditAction,
    AuditEntry,
    BulkCancelResult,
    DeliveryOption,
    LaundryRequest,
    ManualRequest,
    ManualRequestType,
    NewRequest,
    PendingPayment,
    RequestStatus,
    RequestType,
    Robot,
    RobotStatus,
    TransitionResult,
)
from .states import (
    ACTIVE_STATES,
    CANCELLABLE_STATES,
    ROBOT_OWNED_STATES,
    TERMINAL_STATES,
    TRANSITIONS,
)

__all__ = [
    "AuditAction",
    "AuditEntry",
    "BulkCancelResult",
    "DeliveryOption",
    "LaundryRequest",
    "ManualRequest",
    "ManualRequestType",
    "NewRequest",
    "PendingPayment",
    "RequestStatus",
    "RequestType",
    "Robot",
    "RobotStatus",
    "TransitionResult",
    "DispatchError",
    "InvalidTransition",
    "NoRobotAvailable",
    "NoActiveRobots",
    "ConcurrentModification",
    "NotFound",
    "PreconditionFailed",
    "ACTIVE_STATES",
    "CANCELLABLE_STATES",
    "ROBOT_OWNED_STATES",
    "TERMINAL_STATES",
    "TRANSITIONS",
]
