"""Audit trail writer used after every committed lifecycle action."""

from __future__ import annotations

from typing import List, Optional

import structlog

from laundry_dispatch.enterprise.core import AuditAction, AuditEntry, LaundryRequest, RequestStatus
from laundry_dispatch.persistence.base import AuditStore

logger = structlog.get_logger(__name__)


class AuditRecorder:
    """Builds audit entries from request snapshots and appends them.

    Writes are best-effort: the state change they document has already been
    committed, so a failing store is logged and the entry dropped.
    """

    def __init__(self, store: AuditStore) -> None:
        self.store = store

    async def record(
        self,
        action: AuditAction,
        request: LaundryRequest,
        old_status: Optional[RequestStatus],
        new_status: Optional[RequestStatus] = None,
        actor: Optional[str] = None,
        robot_name: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[AuditEntry]:
        entry = AuditEntry(
            action=action,
            request_id=request.id,
            customer_id=request.customer_id,
            customer_name=request.customer_name,
            old_status=old_status,
            new_status=new_status if new_status is not None else request.status,
            actor=actor,
            robot_name=robot_name,
            reason=reason,
            notes=notes,
            total_cost=request.total_cost,
        )
        try:
            return await self.store.append(entry)
        except Exception:
            logger.exception("audit_write_failed", action=action.value, request_id=request.id)
            return None

    async def list_entries(
        self,
        request_id: Optional[int] = None,
        action: Optional[AuditAction] = None,
        limit: int = 50,
    ) -> List[AuditEntry]:
        return await self.store.list_entries(request_id=request_id, action=action, limit=limit)
