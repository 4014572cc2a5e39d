"""Request state machine: status groups and the permitted transition table.

The table is the single source of truth for which moves the lifecycle
controller accepts and which audit action documents each of them. Moves that
need administrative override (force cancellation) are deliberately absent.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Mapping, Optional

from .models import AuditAction, RequestStatus

S = RequestStatus

TERMINAL_STATES: FrozenSet[RequestStatus] = frozenset({S.COMPLETED, S.DECLINED, S.CANCELLED})

# A robot name is bound to the request exactly while it sits in one of these.
ROBOT_OWNED_STATES: FrozenSet[RequestStatus] = frozenset(
    {
        S.ACCEPTED,
        S.IN_PROGRESS,
        S.ROBOT_EN_ROUTE,
        S.ARRIVED_AT_ROOM,
        S.LAUNDRY_LOADED,
        S.FINISHED_WASHING_READY_TO_DELIVER,
        S.FINISHED_WASHING_GOING_TO_ROOM,
        S.FINISHED_WASHING_ARRIVED_AT_ROOM,
        S.FINISHED_WASHING_GOING_TO_BASE,
    }
)

# Plain cancellation stops once washing has begun.
CANCELLABLE_STATES: FrozenSet[RequestStatus] = frozenset(
    {
        S.PENDING,
        S.ACCEPTED,
        S.IN_PROGRESS,
        S.ROBOT_EN_ROUTE,
        S.ARRIVED_AT_ROOM,
        S.LAUNDRY_LOADED,
        S.RETURNED_TO_BASE,
        S.WEIGHING_COMPLETE,
        S.PAYMENT_PENDING,
    }
)

ACTIVE_STATES: FrozenSet[RequestStatus] = frozenset(set(RequestStatus) - TERMINAL_STATES)

# Targets that put a robot on the move; the value is the navigation goal.
NAVIGATION_TARGETS: Mapping[RequestStatus, str] = {
    S.ACCEPTED: "room",
    S.LAUNDRY_LOADED: "base",
    S.FINISHED_WASHING_GOING_TO_ROOM: "room",
    S.FINISHED_WASHING_GOING_TO_BASE: "base",
}

# Customer-facing events worth a notification.
NOTIFY_ON: FrozenSet[RequestStatus] = frozenset(
    {
        S.ACCEPTED,
        S.DECLINED,
        S.ARRIVED_AT_ROOM,
        S.FINISHED_WASHING,
        S.FINISHED_WASHING_ARRIVED_AT_ROOM,
        S.COMPLETED,
        S.CANCELLED,
    }
)

TIMESTAMP_FIELDS: Mapping[RequestStatus, str] = {
    S.ACCEPTED: "accepted_at",
    S.IN_PROGRESS: "processed_at",
    S.ROBOT_EN_ROUTE: "robot_dispatched_at",
    S.ARRIVED_AT_ROOM: "arrived_at_room_at",
    S.LAUNDRY_LOADED: "laundry_loaded_at",
    S.RETURNED_TO_BASE: "returned_to_base_at",
    S.WEIGHING_COMPLETE: "weighing_completed_at",
    S.PAYMENT_PENDING: "payment_requested_at",
    S.WASHING: "processed_at",
    S.FINISHED_WASHING: "processed_at",
    S.FINISHED_WASHING_READY_TO_DELIVER: "processed_at",
    S.FINISHED_WASHING_GOING_TO_ROOM: "processed_at",
    S.FINISHED_WASHING_ARRIVED_AT_ROOM: "processed_at",
    S.FINISHED_WASHING_GOING_TO_BASE: "processed_at",
    S.FINISHED_WASHING_AT_BASE: "processed_at",
    S.FINISHED_WASHING_AWAITING_PICKUP: "processed_at",
    S.COMPLETED: "completed_at",
    S.DECLINED: "processed_at",
    S.CANCELLED: "processed_at",
}


def _build_table() -> Dict[RequestStatus, Dict[RequestStatus, AuditAction]]:
    advance = AuditAction.ADVANCE
    table: Dict[RequestStatus, Dict[RequestStatus, AuditAction]] = {
        S.PENDING: {S.ACCEPTED: AuditAction.ACCEPT, S.DECLINED: AuditAction.DECLINE},
        S.ACCEPTED: {S.IN_PROGRESS: advance, S.ROBOT_EN_ROUTE: advance, S.ARRIVED_AT_ROOM: advance},
        S.IN_PROGRESS: {S.ROBOT_EN_ROUTE: advance, S.ARRIVED_AT_ROOM: advance},
        S.ROBOT_EN_ROUTE: {S.ARRIVED_AT_ROOM: advance},
        S.ARRIVED_AT_ROOM: {S.LAUNDRY_LOADED: advance},
        S.LAUNDRY_LOADED: {S.RETURNED_TO_BASE: advance},
        S.RETURNED_TO_BASE: {S.WEIGHING_COMPLETE: advance, S.WASHING: advance},
        S.WEIGHING_COMPLETE: {S.PAYMENT_PENDING: advance, S.WASHING: advance},
        S.PAYMENT_PENDING: {S.WASHING: advance},
        S.WASHING: {S.FINISHED_WASHING: AuditAction.MARK_FOR_PICKUP},
        S.FINISHED_WASHING: {
            S.FINISHED_WASHING_READY_TO_DELIVER: AuditAction.READY_TO_DELIVER,
            S.FINISHED_WASHING_AWAITING_PICKUP: AuditAction.SELECT_PICKUP,
        },
        S.FINISHED_WASHING_READY_TO_DELIVER: {S.FINISHED_WASHING_GOING_TO_ROOM: AuditAction.START_DELIVERY},
        S.FINISHED_WASHING_GOING_TO_ROOM: {S.FINISHED_WASHING_ARRIVED_AT_ROOM: advance},
        S.FINISHED_WASHING_ARRIVED_AT_ROOM: {S.FINISHED_WASHING_GOING_TO_BASE: advance},
        S.FINISHED_WASHING_GOING_TO_BASE: {
            S.COMPLETED: AuditAction.COMPLETE,
            S.FINISHED_WASHING_AT_BASE: advance,
        },
        S.FINISHED_WASHING_AT_BASE: {S.COMPLETED: AuditAction.COMPLETE},
        S.FINISHED_WASHING_AWAITING_PICKUP: {S.COMPLETED: AuditAction.COMPLETE},
        S.COMPLETED: {},
        S.DECLINED: {},
        S.CANCELLED: {},
    }
    for status in CANCELLABLE_STATES:
        table[status][S.CANCELLED] = AuditAction.CANCEL
    return table


TRANSITIONS: Mapping[RequestStatus, Mapping[RequestStatus, AuditAction]] = _build_table()


def is_terminal(status: RequestStatus) -> bool:
    return status in TERMINAL_STATES


def action_for(current: RequestStatus, target: RequestStatus) -> Optional[AuditAction]:
    """Return the audit action for ``current -> target`` or ``None`` when not permitted."""

    return TRANSITIONS[current].get(target)


def acquires_robot(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ROBOT_OWNED_STATES and current not in ROBOT_OWNED_STATES


def releases_robot(current: RequestStatus, target: RequestStatus) -> bool:
    return current in ROBOT_OWNED_STATES and target not in ROBOT_OWNED_STATES
