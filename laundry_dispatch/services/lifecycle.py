"""Request lifecycle orchestration.

:class:`LifecycleController` is the only writer of request status. Every
operation follows the same shape: validate the move against the transition
table, obtain or give back a robot as the robot-owned set dictates, commit the
new snapshot with an optimistic check, then write the audit entry and fire the
outbound side effects.
"""

from __future__ import annotations

import asyncio
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Awaitable, Callable, Collection, Dict, List, Optional

import structlog

from laundry_dispatch.enterprise.config.settings import AppSettings, get_settings
from laundry_dispatch.enterprise.core import (
    AuditAction,
    AuditEntry,
    BulkCancelResult,
    ConcurrentModification,
    DeliveryOption,
    DispatchError,
    InvalidTransition,
    LaundryRequest,
    ManualRequest,
    ManualRequestType,
    NewRequest,
    NoActiveRobots,
    NoRobotAvailable,
    NotFound,
    PreconditionFailed,
    RequestStatus,
    RequestType,
    TransitionResult,
)
from laundry_dispatch.enterprise.core.models import utcnow
from laundry_dispatch.enterprise.core.states import (
    NAVIGATION_TARGETS,
    NOTIFY_ON,
    ROBOT_OWNED_STATES,
    TERMINAL_STATES,
    TIMESTAMP_FIELDS,
    acquires_robot,
    action_for,
    releases_robot,
)
from laundry_dispatch.observability.metrics import record_transition
from laundry_dispatch.persistence.base import PaymentLedger, RequestStore

from .audit import AuditRecorder
from .collaborators import NotificationCollaborator, RobotTransport
from .dispatch import Assignment, DispatchEngine
from .registry import RobotRegistry

logger = structlog.get_logger(__name__)

S = RequestStatus

Mutator = Callable[[LaundryRequest, Dict[str, Any]], None]

# Moves a robot or the customer app may drive directly.
_ROBOT_ACTIONS = frozenset({AuditAction.ADVANCE, AuditAction.COMPLETE})

_CENT = Decimal("0.01")


class LifecycleController:
    def __init__(
        self,
        store: RequestStore,
        registry: RobotRegistry,
        dispatcher: DispatchEngine,
        audit: AuditRecorder,
        payments: PaymentLedger,
        transport: Optional[RobotTransport] = None,
        notifier: Optional[NotificationCollaborator] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.dispatcher = dispatcher
        self.audit = audit
        self.payments = payments
        self.transport = transport
        self.notifier = notifier
        self.settings = settings or get_settings()

    # -- queries -----------------------------------------------------------

    async def get_request(self, request_id: int) -> LaundryRequest:
        return await self.store.get(request_id)

    async def list_requests(self, status: Optional[RequestStatus] = None, limit: int = 100) -> List[LaundryRequest]:
        return await self.store.list_requests(status=status, limit=limit)

    async def active_request_for(self, customer_id: str) -> Optional[LaundryRequest]:
        active = await self.store.list_by_customer(customer_id, active_only=True)
        return active[0] if active else None

    async def audit_trail(self, request_id: Optional[int] = None, limit: int = 50) -> List[AuditEntry]:
        return await self.audit.list_entries(request_id=request_id, limit=limit)

    # -- creation ----------------------------------------------------------

    async def create_request(self, dto: NewRequest, actor: Optional[str] = None) -> TransitionResult:
        """Submit a customer request; it starts Pending."""

        existing = await self.active_request_for(dto.customer_id)
        if existing is not None:
            raise PreconditionFailed(
                f"Customer {dto.customer_id} already has an active request (#{existing.id}, {existing.status.value})."
            )
        limit = self.settings.intake.max_requests_per_day
        if limit is not None:
            start_of_day = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
            if await self.store.count_requested_since(dto.customer_id, start_of_day) >= limit:
                raise PreconditionFailed(f"Daily request limit of {limit} reached for customer {dto.customer_id}.")

        request = await self.store.add(LaundryRequest(**dto.model_dump(), status=S.PENDING))
        await self.audit.record(AuditAction.CREATE, request, old_status=None, actor=actor or dto.customer_id)
        record_transition(AuditAction.CREATE.value, request.status.value)
        logger.info("request_created", request_id=request.id, customer_id=request.customer_id)

        result = TransitionResult(request=request, old_status=request.status, message="Request submitted.")
        if self.settings.dispatch.auto_accept:
            accepted = await self.process_next_pending()
            if accepted is not None and accepted.request.id == request.id:
                return accepted
        return result

    async def create_manual_request(self, dto: ManualRequest, actor: Optional[str] = None) -> TransitionResult:
        """Admin-created request: a walk-in drop-off or an immediate robot pickup."""

        if dto.request_type == ManualRequestType.WALK_IN:
            weight = self._validate_weight(dto.weight_kg)
            now = utcnow()
            request = LaundryRequest(
                **dto.model_dump(include=set(NewRequest.model_fields)),
                status=S.WASHING,
                weight=weight,
                total_cost=self.price_for(weight),
                handled_by=actor,
                requested_at=now,
                accepted_at=now,
                processed_at=now,
            )
            request = await self.store.add(request)
            await self.audit.record(
                AuditAction.MANUAL_CREATE,
                request,
                old_status=None,
                actor=actor,
                notes=dto.notes or "Walk-in drop-off",
            )
            record_transition(AuditAction.MANUAL_CREATE.value, request.status.value)
            logger.info("walk_in_created", request_id=request.id, weight=str(weight))
            return TransitionResult(request=request, old_status=request.status, message="Walk-in request created.")

        if not dto.assigned_beacon_mac:
            raise PreconditionFailed(
                f"Customer {dto.customer_id} has no assigned beacon; a robot cannot locate the room."
            )
        request = await self.store.add(
            LaundryRequest(**dto.model_dump(include=set(NewRequest.model_fields)), status=S.PENDING, handled_by=actor)
        )
        await self.audit.record(
            AuditAction.MANUAL_CREATE,
            request,
            old_status=None,
            actor=actor,
            notes=dto.notes or "Manual robot pickup",
        )
        record_transition(AuditAction.MANUAL_CREATE.value, request.status.value)
        try:
            return await self.accept_request(request.id, actor=actor)
        except NoRobotAvailable:
            logger.warning("manual_request_queued", request_id=request.id)
            return TransitionResult(
                request=await self.store.get(request.id),
                old_status=S.PENDING,
                message="Request created; no robot available, left in the queue.",
            )

    # -- admin surface -----------------------------------------------------

    async def accept_request(self, request_id: int, actor: Optional[str] = None) -> TransitionResult:
        return await self._transition(request_id, S.ACCEPTED, actor=actor)

    async def decline_request(self, request_id: int, reason: str, actor: Optional[str] = None) -> TransitionResult:
        if not reason or not reason.strip():
            raise PreconditionFailed("A reason is required to decline a request.")
        reason = reason.strip()

        def mutate(_request: LaundryRequest, updates: Dict[str, Any]) -> None:
            updates["decline_reason"] = reason

        return await self._transition(request_id, S.DECLINED, actor=actor, reason=reason, mutate=mutate)

    async def complete_request(self, request_id: int, actor: Optional[str] = None) -> TransitionResult:
        return await self._transition(request_id, S.COMPLETED, actor=actor)

    async def mark_ready_for_pickup(self, request_id: int, actor: Optional[str] = None) -> TransitionResult:
        return await self._transition(request_id, S.FINISHED_WASHING, actor=actor)

    async def ready_to_deliver(self, request_id: int, actor: Optional[str] = None) -> TransitionResult:
        return await self._transition(request_id, S.FINISHED_WASHING_READY_TO_DELIVER, actor=actor)

    async def start_delivery(self, request_id: int, actor: Optional[str] = None) -> TransitionResult:
        request = await self.store.get(request_id)
        if request.status == S.FINISHED_WASHING_READY_TO_DELIVER:
            robot_name = request.assigned_robot_name
            active = {robot.name.lower() for robot in self.registry.list_active()}
            if not robot_name or robot_name.lower() not in active:
                raise NoActiveRobots(request_id, robot_name)
        return await self._transition(request_id, S.FINISHED_WASHING_GOING_TO_ROOM, actor=actor)

    async def cancel_request(
        self, request_id: int, actor: Optional[str] = None, reason: Optional[str] = None
    ) -> TransitionResult:
        request = await self.store.get(request_id)
        if request.status not in TERMINAL_STATES and action_for(request.status, S.CANCELLED) is None:
            raise InvalidTransition(
                request_id,
                request.status.value,
                S.CANCELLED.value,
                reason=f"Request #{request_id} is already {request.status.value}; only a force cancel can stop it now.",
            )
        return await self._transition(request_id, S.CANCELLED, actor=actor, reason=reason)

    async def force_cancel(self, request_id: int, reason: str, actor: Optional[str] = None) -> TransitionResult:
        if not reason or not reason.strip():
            raise PreconditionFailed("A reason is required to force cancel a request.")
        return await self._transition(
            request_id,
            S.CANCELLED,
            actor=actor,
            reason=reason.strip(),
            forced_action=AuditAction.FORCE_CANCEL,
        )

    async def force_cancel_all(
        self, reason: str = "Bulk force cancel", actor: Optional[str] = None
    ) -> BulkCancelResult:
        """Force cancel every non-terminal request, continuing past individual failures."""

        result = BulkCancelResult()
        for request in await self.store.list_active():
            try:
                await self._transition(
                    request.id,
                    S.CANCELLED,
                    actor=actor,
                    reason=reason,
                    forced_action=AuditAction.FORCE_CANCEL_ALL,
                )
            except DispatchError as exc:
                result.failed += 1
                result.errors[request.id] = exc.detail
                logger.warning("bulk_cancel_failed", request_id=request.id, error=exc.detail)
            else:
                result.cancelled += 1
        logger.info("bulk_cancel_finished", cancelled=result.cancelled, failed=result.failed)
        return result

    # -- robot / customer surface ------------------------------------------

    async def advance(self, request_id: int, target: RequestStatus, actor: Optional[str] = None) -> TransitionResult:
        return await self._transition(request_id, target, actor=actor, allowed_actions=_ROBOT_ACTIONS)

    async def confirm_loaded(
        self, request_id: int, weight: Optional[Decimal] = None, actor: Optional[str] = None
    ) -> TransitionResult:
        """Robot reports the laundry is on board; a weight prices the job."""

        mutate: Optional[Mutator] = None
        if weight is not None:
            weight = self._validate_weight(weight)
            cost = self.price_for(weight)

            def mutate(_request: LaundryRequest, updates: Dict[str, Any]) -> None:
                updates["weight"] = weight
                updates["total_cost"] = cost

        return await self._transition(
            request_id,
            S.LAUNDRY_LOADED,
            actor=actor,
            mutate=mutate,
            allowed_actions=_ROBOT_ACTIONS,
        )

    async def confirm_unloaded(self, request_id: int, actor: Optional[str] = None) -> TransitionResult:
        return await self._transition(
            request_id,
            S.FINISHED_WASHING_GOING_TO_BASE,
            actor=actor,
            allowed_actions=_ROBOT_ACTIONS,
        )

    async def select_delivery_option(
        self,
        request_id: int,
        option: DeliveryOption,
        customer_id: Optional[str] = None,
    ) -> TransitionResult:
        request = await self.store.get(request_id)
        if customer_id is not None and request.customer_id != customer_id:
            raise NotFound("Request", request_id)
        if option == DeliveryOption.DELIVERY:
            target, new_type = S.FINISHED_WASHING_READY_TO_DELIVER, RequestType.DELIVERY
        else:
            target, new_type = S.FINISHED_WASHING_AWAITING_PICKUP, RequestType.PICKUP

        def mutate(_request: LaundryRequest, updates: Dict[str, Any]) -> None:
            updates["type"] = new_type

        return await self._transition(
            request_id,
            target,
            actor=customer_id or request.customer_id,
            mutate=mutate,
            notes=f"Customer selected {option.value.lower()}",
        )

    async def process_next_pending(self) -> Optional[TransitionResult]:
        """Accept the oldest queued request when auto-accept is on and a robot is free."""

        if not self.settings.dispatch.auto_accept:
            return None
        pending = await self.store.list_pending()
        if not pending:
            return None
        try:
            return await self._transition(pending[0].id, S.ACCEPTED, actor="auto-accept", allow_preemption=False)
        except (NoRobotAvailable, ConcurrentModification) as exc:
            logger.debug("auto_accept_skipped", request_id=pending[0].id, reason=exc.detail)
            return None

    async def requeue_robot(self, robot_name: str, reason: str) -> Optional[TransitionResult]:
        """Give the request held by ``robot_name`` back to the queue and try another robot."""

        bound = await self.dispatcher.bound_request(robot_name)
        if bound is None:
            return None
        saved = await self.dispatcher.requeue(bound, reason=reason, actor="liveness")
        self.dispatcher.release(robot_name, bound.id)
        try:
            return await self.accept_request(bound.id, actor="liveness")
        except NoRobotAvailable:
            logger.warning("requeued_request_waiting", request_id=bound.id, robot=robot_name)
            return TransitionResult(request=saved, old_status=bound.status, robot_name=None, message=reason)

    # -- pricing -----------------------------------------------------------

    def price_for(self, weight: Decimal) -> Decimal:
        pricing = self.settings.pricing
        cost = max(Decimal(weight) * pricing.rate_per_kg, pricing.minimum_charge)
        return cost.quantize(_CENT, rounding=ROUND_HALF_UP)

    def _validate_weight(self, weight: Optional[Decimal]) -> Decimal:
        pricing = self.settings.pricing
        if weight is None:
            raise PreconditionFailed("A weight is required.")
        weight = Decimal(weight)
        if not pricing.min_weight_kg <= weight <= pricing.max_weight_kg:
            raise PreconditionFailed(
                f"Weight must be between {pricing.min_weight_kg} and {pricing.max_weight_kg} kg."
            )
        return weight

    # -- core transition ---------------------------------------------------

    async def _transition(
        self,
        request_id: int,
        target: RequestStatus,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        mutate: Optional[Mutator] = None,
        forced_action: Optional[AuditAction] = None,
        allowed_actions: Optional[Collection[AuditAction]] = None,
        allow_preemption: Optional[bool] = None,
    ) -> TransitionResult:
        request = await self.store.get(request_id)
        current = request.status

        if current in TERMINAL_STATES:
            raise InvalidTransition(
                request_id,
                current.value,
                target.value,
                reason=f"Request #{request_id} is already {current.value} and can no longer change.",
            )
        if current == target:
            return TransitionResult(
                request=request,
                old_status=current,
                changed=False,
                robot_name=request.assigned_robot_name,
                message=f"Request #{request_id} is already {current.value}.",
            )

        if forced_action is not None and target == S.CANCELLED:
            action = forced_action
        else:
            action = action_for(current, target)
            if action is None or (allowed_actions is not None and action not in allowed_actions):
                raise InvalidTransition(request_id, current.value, target.value)

        assignment: Optional[Assignment] = None
        robot_name = request.assigned_robot_name
        if acquires_robot(current, target):
            try:
                assignment = await self.dispatcher.assign(
                    request_id,
                    actor=actor,
                    allow_preemption=allow_preemption,
                    expected_status=current,
                    expected_version=request.version,
                )
            except ConcurrentModification:
                return await self._already_applied(request_id, current, target)
            robot_name = assignment.robot.name

        now = max(utcnow(), request.latest_timestamp())
        updates: Dict[str, Any] = {"status": target, TIMESTAMP_FIELDS[target]: now}
        if actor:
            updates["handled_by"] = actor
        if target in ROBOT_OWNED_STATES:
            updates["assigned_robot_name"] = robot_name
        else:
            updates["assigned_robot_name"] = None
        if mutate is not None:
            mutate(request, updates)
        updated = request.model_copy(update=updates)

        try:
            saved = await self.store.save(updated, current, request.version)
        except ConcurrentModification:
            if assignment is not None:
                await self.dispatcher.undo(assignment, request_id)
            return await self._already_applied(request_id, current, target)
        except Exception:
            if assignment is not None:
                await self.dispatcher.undo(assignment, request_id)
            raise

        if releases_robot(current, target):
            self.dispatcher.release(request.assigned_robot_name, request_id)

        await self.audit.record(
            action,
            saved,
            old_status=current,
            new_status=target,
            actor=actor,
            robot_name=robot_name,
            reason=reason,
            notes=notes,
        )
        record_transition(action.value, target.value)
        logger.info(
            "request_transitioned",
            request_id=request_id,
            action=action.value,
            old=current.value,
            new=target.value,
            robot=robot_name,
        )

        await self._after_commit(saved, target)
        if target == S.COMPLETED:
            await self._create_payment(saved, actor)
        if releases_robot(current, target) and self.settings.dispatch.auto_accept:
            await self.process_next_pending()

        return TransitionResult(
            request=saved,
            old_status=current,
            changed=True,
            robot_name=robot_name,
            preempted_request_id=assignment.preempted_request_id if assignment else None,
            message=f"Request #{request_id} moved from {current.value} to {target.value}.",
        )

    async def _already_applied(
        self, request_id: int, current: RequestStatus, target: RequestStatus
    ) -> TransitionResult:
        """Resolve a lost race: a no-op if the winner reached ``target``, otherwise re-raise."""

        latest = await self.store.get(request_id)
        if latest.status != target:
            raise ConcurrentModification(request_id, current.value, latest.status.value)
        logger.info("transition_already_applied", request_id=request_id, status=target.value)
        return TransitionResult(
            request=latest,
            old_status=current,
            changed=False,
            robot_name=latest.assigned_robot_name,
            message=f"Request #{request_id} is already {target.value}.",
        )

    async def _after_commit(self, request: LaundryRequest, target: RequestStatus) -> None:
        if self.transport is not None and target in NAVIGATION_TARGETS and request.assigned_robot_name:
            await self._fire(
                "navigation",
                request.id,
                self.transport.notify_start_navigation(
                    request.assigned_robot_name, NAVIGATION_TARGETS[target], request
                ),
            )
        if self.notifier is not None and target in NOTIFY_ON:
            await self._fire("notification", request.id, self.notifier.notify(request, target.value))

    async def _fire(self, kind: str, request_id: Optional[int], call: Awaitable[Any]) -> None:
        timeout = self.settings.mqtt.publish_timeout_s
        try:
            await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("side_effect_timed_out", kind=kind, request_id=request_id, timeout=timeout)
        except Exception as exc:
            logger.warning("side_effect_failed", kind=kind, request_id=request_id, error=str(exc))

    async def _create_payment(self, request: LaundryRequest, actor: Optional[str]) -> None:
        if not request.total_cost or request.total_cost <= 0:
            return
        try:
            payment = await self.payments.create_pending_payment(request, processed_by=actor)
        except Exception:
            logger.exception("pending_payment_failed", request_id=request.id)
            return
        logger.info(
            "pending_payment_created",
            request_id=request.id,
            amount=str(payment.amount),
            transaction_id=payment.transaction_id,
        )
