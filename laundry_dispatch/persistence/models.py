"""SQLAlchemy ORM models for laundry requests, audit trail and payments."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from laundry_dispatch.enterprise.core import AuditAction, RequestStatus, RequestType
from laundry_dispatch.enterprise.core.models import utcnow

from .database import Base


class RequestRecord(Base):
    __tablename__ = "laundry_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(32), default="")
    address: Mapped[str] = mapped_column(String(256), default="")
    room_name: Mapped[Optional[str]] = mapped_column(String(64))
    instructions: Mapped[Optional[str]] = mapped_column(Text)
    assigned_beacon_mac: Mapped[Optional[str]] = mapped_column(String(32))
    type: Mapped[RequestType] = mapped_column(Enum(RequestType), nullable=False)
    status: Mapped[RequestStatus] = mapped_column(Enum(RequestStatus), nullable=False, index=True)
    assigned_robot_name: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2))
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    decline_reason: Mapped[Optional[str]] = mapped_column(Text)
    handled_by: Mapped[Optional[str]] = mapped_column(String(64))

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    robot_dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    arrived_at_room_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    laundry_loaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    returned_to_base_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    weighing_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    payment_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class AuditRecord(Base):
    __tablename__ = "request_audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction), nullable=False)
    request_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    customer_id: Mapped[str] = mapped_column(String(64), default="")
    customer_name: Mapped[str] = mapped_column(String(128), default="")
    old_status: Mapped[Optional[RequestStatus]] = mapped_column(Enum(RequestStatus))
    new_status: Mapped[Optional[RequestStatus]] = mapped_column(Enum(RequestStatus))
    actor: Mapped[Optional[str]] = mapped_column(String(64))
    robot_name: Mapped[Optional[str]] = mapped_column(String(64))
    reason: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    actioned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)


class PaymentRecord(Base):
    __tablename__ = "pending_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(16), default="Pending")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    processed_by: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
