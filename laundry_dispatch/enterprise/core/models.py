"""Domain models for the laundry dispatch platform.

These models provide a typed representation of the entities the dispatch
core works with. They are framework-agnostic so services, APIs and the
persistence layer can share them.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStatus(str, enum.Enum):
    """Lifecycle states for a laundry request."""

    PENDING = "Pending"
    ACCEPTED = "Accepted"
    IN_PROGRESS = "InProgress"
    ROBOT_EN_ROUTE = "RobotEnRoute"
    ARRIVED_AT_ROOM = "ArrivedAtRoom"
    LAUNDRY_LOADED = "LaundryLoaded"
    RETURNED_TO_BASE = "ReturnedToBase"
    WEIGHING_COMPLETE = "WeighingComplete"
    PAYMENT_PENDING = "PaymentPending"
    WASHING = "Washing"
    FINISHED_WASHING = "FinishedWashing"
    FINISHED_WASHING_READY_TO_DELIVER = "FinishedWashingReadyToDeliver"
    FINISHED_WASHING_GOING_TO_ROOM = "FinishedWashingGoingToRoom"
    FINISHED_WASHING_ARRIVED_AT_ROOM = "FinishedWashingArrivedAtRoom"
    FINISHED_WASHING_GOING_TO_BASE = "FinishedWashingGoingToBase"
    FINISHED_WASHING_AT_BASE = "FinishedWashingAtBase"
    FINISHED_WASHING_AWAITING_PICKUP = "FinishedWashingAwaitingPickup"
    COMPLETED = "Completed"
    DECLINED = "Declined"
    CANCELLED = "Cancelled"


class RequestType(str, enum.Enum):
    """Service the customer asked for."""

    PICKUP = "Pickup"
    DELIVERY = "Delivery"
    PICKUP_AND_DELIVERY = "PickupAndDelivery"


class RobotStatus(str, enum.Enum):
    """Operational states for a robot."""

    AVAILABLE = "Available"
    BUSY = "Busy"
    MAINTENANCE = "Maintenance"


class AuditAction(str, enum.Enum):
    """Closed set of actions that end up in the request audit trail."""

    CREATE = "Create"
    MANUAL_CREATE = "ManualCreate"
    ACCEPT = "Accept"
    DECLINE = "Decline"
    REASSIGN = "Reassign"
    ADVANCE = "Advance"
    MARK_FOR_PICKUP = "MarkForPickup"
    READY_TO_DELIVER = "ReadyToDeliver"
    SELECT_PICKUP = "SelectPickup"
    START_DELIVERY = "StartDelivery"
    COMPLETE = "Complete"
    CANCEL = "Cancel"
    FORCE_CANCEL = "ForceCancel"
    FORCE_CANCEL_ALL = "ForceCancelAll"


class ManualRequestType(str, enum.Enum):
    ROBOT_DELIVERY = "RobotDelivery"
    WALK_IN = "WalkIn"


class DeliveryOption(str, enum.Enum):
    DELIVERY = "Delivery"
    PICKUP = "Pickup"


class LaundryRequest(BaseModel):
    """One laundry job and its full lifecycle bookkeeping."""

    model_config = ConfigDict(validate_assignment=True)

    id: Optional[int] = None
    customer_id: str
    customer_name: str
    customer_phone: str = ""
    address: str = ""
    room_name: Optional[str] = None
    instructions: Optional[str] = None
    assigned_beacon_mac: Optional[str] = None
    type: RequestType = RequestType.PICKUP_AND_DELIVERY
    status: RequestStatus = RequestStatus.PENDING
    assigned_robot_name: Optional[str] = None
    weight: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    decline_reason: Optional[str] = None
    handled_by: Optional[str] = None

    requested_at: datetime = Field(default_factory=utcnow)
    accepted_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    robot_dispatched_at: Optional[datetime] = None
    arrived_at_room_at: Optional[datetime] = None
    laundry_loaded_at: Optional[datetime] = None
    returned_to_base_at: Optional[datetime] = None
    weighing_completed_at: Optional[datetime] = None
    payment_requested_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    version: int = 0

    def latest_timestamp(self) -> datetime:
        """Return the most recent instant recorded on this request."""

        stamps = [
            self.requested_at,
            self.accepted_at,
            self.processed_at,
            self.robot_dispatched_at,
            self.arrived_at_room_at,
            self.laundry_loaded_at,
            self.returned_to_base_at,
            self.weighing_completed_at,
            self.payment_requested_at,
            self.completed_at,
        ]
        return max(stamp for stamp in stamps if stamp is not None)


class Robot(BaseModel):
    """Snapshot of one connected delivery robot."""

    name: str
    address: str = ""
    is_active: bool = True
    can_accept_requests: bool = True
    status: RobotStatus = RobotStatus.AVAILABLE
    current_task: Optional[str] = None
    connected_at: datetime = Field(default_factory=utcnow)
    last_heartbeat: datetime = Field(default_factory=utcnow)

    def is_offline(self, now: datetime, threshold: timedelta) -> bool:
        return now - self.last_heartbeat > threshold


class AuditEntry(BaseModel):
    """Immutable record of one lifecycle action."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    action: AuditAction
    request_id: int
    customer_id: str = ""
    customer_name: str = ""
    old_status: Optional[RequestStatus] = None
    new_status: Optional[RequestStatus] = None
    actor: Optional[str] = None
    robot_name: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    total_cost: Optional[Decimal] = None
    actioned_at: datetime = Field(default_factory=utcnow)


class PendingPayment(BaseModel):
    """Payment record handed to the payment collaborator on completion."""

    request_id: int
    customer_id: str
    customer_name: str
    amount: Decimal
    transaction_id: str
    status: str = "Pending"
    notes: Optional[str] = None
    processed_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class NewRequest(BaseModel):
    """Customer submission payload."""

    customer_id: str
    customer_name: str
    customer_phone: str = ""
    address: str = ""
    room_name: Optional[str] = None
    instructions: Optional[str] = None
    assigned_beacon_mac: Optional[str] = None
    type: RequestType = RequestType.PICKUP_AND_DELIVERY


class ManualRequest(NewRequest):
    """Admin-created request, either a robot pickup or a walk-in drop-off."""

    request_type: ManualRequestType = ManualRequestType.ROBOT_DELIVERY
    weight_kg: Optional[Decimal] = None
    notes: Optional[str] = None


class TransitionResult(BaseModel):
    """Outcome of a lifecycle operation."""

    request: LaundryRequest
    old_status: RequestStatus
    changed: bool = True
    robot_name: Optional[str] = None
    preempted_request_id: Optional[int] = None
    message: str = ""


class BulkCancelResult(BaseModel):
    """Aggregate outcome of a bulk cancellation."""

    cancelled: int = 0
    failed: int = 0
    errors: dict[int, str] = Field(default_factory=dict)

    @property
    def message(self) -> str:
        if not self.cancelled and not self.failed:
            return "No active requests to cancel."
        text = f"Force cancelled {self.cancelled} request(s)."
        if self.failed:
            text += f" {self.failed} could not be cancelled."
        return text
