"""Laundry request lifecycle endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status

from laundry_dispatch.enterprise.core import ManualRequest, NewRequest, RequestStatus
from laundry_dispatch.server.api.schemas.requests import (
    AdvanceBody,
    AuditEntrySchema,
    BulkCancelResponse,
    ConfirmLoadedBody,
    DeliveryOptionBody,
    OptionalReasonBody,
    ReasonBody,
    RequestSchema,
    TransitionResponse,
)
from laundry_dispatch.server.dependencies import get_controller
from laundry_dispatch.services import LifecycleController

router = APIRouter(prefix="/requests", tags=["requests"])


def _controller(controller: LifecycleController = Depends(get_controller)) -> LifecycleController:
    return controller


def _actor(x_actor: Optional[str] = Header(None)) -> Optional[str]:
    return x_actor


@router.get("", response_model=List[RequestSchema])
async def list_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    controller: LifecycleController = Depends(_controller),
) -> List[RequestSchema]:
    requests = await controller.list_requests(status=status_filter, limit=limit)
    return [RequestSchema.from_domain(request) for request in requests]


@router.post("", response_model=TransitionResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    body: NewRequest,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.create_request(body, actor=actor))


@router.post("/manual", response_model=TransitionResponse, status_code=status.HTTP_201_CREATED)
async def create_manual_request(
    body: ManualRequest,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.create_manual_request(body, actor=actor))


@router.get("/audit-log", response_model=List[AuditEntrySchema])
async def audit_log(
    limit: int = Query(50, ge=1, le=500),
    controller: LifecycleController = Depends(_controller),
) -> List[AuditEntrySchema]:
    return [AuditEntrySchema.from_domain(entry) for entry in await controller.audit_trail(limit=limit)]


@router.post("/force-cancel-all", response_model=BulkCancelResponse)
async def force_cancel_all(
    body: ReasonBody,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> BulkCancelResponse:
    return BulkCancelResponse.from_domain(await controller.force_cancel_all(body.reason, actor=actor))


@router.post("/process-next", response_model=Optional[TransitionResponse])
async def process_next_pending(controller: LifecycleController = Depends(_controller)) -> Optional[TransitionResponse]:
    result = await controller.process_next_pending()
    return TransitionResponse.from_domain(result) if result else None


@router.get("/customers/{customer_id}/active", response_model=Optional[RequestSchema])
async def active_request(
    customer_id: str,
    controller: LifecycleController = Depends(_controller),
) -> Optional[RequestSchema]:
    request = await controller.active_request_for(customer_id)
    return RequestSchema.from_domain(request) if request else None


@router.get("/{request_id}", response_model=RequestSchema)
async def get_request(request_id: int, controller: LifecycleController = Depends(_controller)) -> RequestSchema:
    return RequestSchema.from_domain(await controller.get_request(request_id))


@router.get("/{request_id}/audit", response_model=List[AuditEntrySchema])
async def request_audit(
    request_id: int,
    controller: LifecycleController = Depends(_controller),
) -> List[AuditEntrySchema]:
    await controller.get_request(request_id)
    return [AuditEntrySchema.from_domain(entry) for entry in await controller.audit_trail(request_id=request_id)]


@router.post("/{request_id}/accept", response_model=TransitionResponse)
async def accept_request(
    request_id: int,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.accept_request(request_id, actor=actor))


@router.post("/{request_id}/decline", response_model=TransitionResponse)
async def decline_request(
    request_id: int,
    body: ReasonBody,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.decline_request(request_id, body.reason, actor=actor))


@router.post("/{request_id}/complete", response_model=TransitionResponse)
async def complete_request(
    request_id: int,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.complete_request(request_id, actor=actor))


@router.post("/{request_id}/mark-ready", response_model=TransitionResponse)
async def mark_ready_for_pickup(
    request_id: int,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.mark_ready_for_pickup(request_id, actor=actor))


@router.post("/{request_id}/ready-to-deliver", response_model=TransitionResponse)
async def ready_to_deliver(
    request_id: int,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.ready_to_deliver(request_id, actor=actor))


@router.post("/{request_id}/start-delivery", response_model=TransitionResponse)
async def start_delivery(
    request_id: int,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.start_delivery(request_id, actor=actor))


@router.post("/{request_id}/cancel", response_model=TransitionResponse)
async def cancel_request(
    request_id: int,
    body: Optional[OptionalReasonBody] = None,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    reason = body.reason if body else None
    return TransitionResponse.from_domain(await controller.cancel_request(request_id, actor=actor, reason=reason))


@router.post("/{request_id}/force-cancel", response_model=TransitionResponse)
async def force_cancel(
    request_id: int,
    body: ReasonBody,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.force_cancel(request_id, body.reason, actor=actor))


@router.post("/{request_id}/advance", response_model=TransitionResponse)
async def advance(
    request_id: int,
    body: AdvanceBody,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.advance(request_id, body.target, actor=actor))


@router.post("/{request_id}/confirm-loaded", response_model=TransitionResponse)
async def confirm_loaded(
    request_id: int,
    body: Optional[ConfirmLoadedBody] = None,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    weight = body.weight if body else None
    return TransitionResponse.from_domain(await controller.confirm_loaded(request_id, weight=weight, actor=actor))


@router.post("/{request_id}/confirm-unloaded", response_model=TransitionResponse)
async def confirm_unloaded(
    request_id: int,
    controller: LifecycleController = Depends(_controller),
    actor: Optional[str] = Depends(_actor),
) -> TransitionResponse:
    return TransitionResponse.from_domain(await controller.confirm_unloaded(request_id, actor=actor))


@router.post("/{request_id}/delivery-option", response_model=TransitionResponse)
async def select_delivery_option(
    request_id: int,
    body: DeliveryOptionBody,
    controller: LifecycleController = Depends(_controller),
) -> TransitionResponse:
    result = await controller.select_delivery_option(request_id, body.option, customer_id=body.customer_id)
    return TransitionResponse.from_domain(result)
