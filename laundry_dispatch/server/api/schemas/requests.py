"""Pydantic schemas for laundry request endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, Field

from laundry_dispatch.enterprise.core import (
    AuditEntry,
    BulkCancelResult,
    DeliveryOption,
    LaundryRequest,
    RequestStatus,
    TransitionResult,
)


class RequestSchema(BaseModel):
    id: int
    customer_id: str
    customer_name: str
    customer_phone: str
    address: str
    room_name: Optional[str]
    instructions: Optional[str]
    type: str
    status: str
    assigned_robot_name: Optional[str]
    weight: Optional[Decimal]
    total_cost: Optional[Decimal]
    decline_reason: Optional[str]
    handled_by: Optional[str]
    requested_at: datetime
    accepted_at: Optional[datetime]
    completed_at: Optional[datetime]
    version: int

    @classmethod
    def from_domain(cls, request: LaundryRequest) -> "RequestSchema":
        return cls(
            **request.model_dump(
                include={
                    "id",
                    "customer_id",
                    "customer_name",
                    "customer_phone",
                    "address",
                    "room_name",
                    "instructions",
                    "assigned_robot_name",
                    "weight",
                    "total_cost",
                    "decline_reason",
                    "handled_by",
                    "requested_at",
                    "accepted_at",
                    "completed_at",
                    "version",
                }
            ),
            type=request.type.value,
            status=request.status.value,
        )


class TransitionResponse(BaseModel):
    request: RequestSchema
    old_status: str
    changed: bool
    robot_name: Optional[str]
    preempted_request_id: Optional[int]
    message: str

    @classmethod
    def from_domain(cls, result: TransitionResult) -> "TransitionResponse":
        return cls(
            request=RequestSchema.from_domain(result.request),
            old_status=result.old_status.value,
            changed=result.changed,
            robot_name=result.robot_name,
            preempted_request_id=result.preempted_request_id,
            message=result.message,
        )


class BulkCancelResponse(BaseModel):
    cancelled: int
    failed: int
    errors: Dict[int, str]
    message: str

    @classmethod
    def from_domain(cls, result: BulkCancelResult) -> "BulkCancelResponse":
        return cls(cancelled=result.cancelled, failed=result.failed, errors=result.errors, message=result.message)


class AuditEntrySchema(BaseModel):
    id: Optional[int]
    action: str
    request_id: int
    old_status: Optional[str]
    new_status: Optional[str]
    actor: Optional[str]
    robot_name: Optional[str]
    reason: Optional[str]
    notes: Optional[str]
    actioned_at: datetime

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditEntrySchema":
        return cls(
            id=entry.id,
            action=entry.action.value,
            request_id=entry.request_id,
            old_status=entry.old_status.value if entry.old_status else None,
            new_status=entry.new_status.value if entry.new_status else None,
            actor=entry.actor,
            robot_name=entry.robot_name,
            reason=entry.reason,
            notes=entry.notes,
            actioned_at=entry.actioned_at,
        )


class ReasonBody(BaseModel):
    reason: str = Field(..., min_length=1)


class OptionalReasonBody(BaseModel):
    reason: Optional[str] = None


class AdvanceBody(BaseModel):
    target: RequestStatus


class ConfirmLoadedBody(BaseModel):
    weight: Optional[Decimal] = Field(None, gt=0)


class DeliveryOptionBody(BaseModel):
    option: DeliveryOption
    customer_id: Optional[str] = None
