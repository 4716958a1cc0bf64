"""บันทึกการดำเนินการ"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_admin
from warehouse.models.audit_log import AuditLog
from warehouse.models.user import User
from warehouse.schemas.audit_log import AuditLogResponse
from warehouse.schemas.common import ActionResult, PaginatedResult, ok, paginate

router = APIRouter()


def build_log_response(log: AuditLog) -> AuditLogResponse:
    return AuditLogResponse(
        id=log.id,
        actor_id=log.actor_id,
        actor_name=log.actor.name if log.actor else "",
        action=log.action,
        action_display=log.action_display,
        ref_type=log.ref_type,
        ref_id=log.ref_id,
        old_data=log.old_data,
        new_data=log.new_data,
        created_at=log.created_at)


@router.get("/", response_model=ActionResult[PaginatedResult[AuditLogResponse]])
async def list_logs(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ref_type: Optional[str] = Query(None),
    ref_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None)) -> Any:
    """รายการบันทึกการดำเนินการ (ADMIN)"""
    conditions = []
    if ref_type:
        conditions.append(AuditLog.ref_type == ref_type)
    if ref_id:
        conditions.append(AuditLog.ref_id == ref_id)
    if action:
        conditions.append(AuditLog.action == action)

    count_query = select(func.count(AuditLog.id))
    query = select(AuditLog).options(selectinload(AuditLog.actor))
    if conditions:
        count_query = count_query.where(and_(*conditions))
        query = query.where(and_(*conditions))
    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    logs = (await db.execute(query)).scalars().all()

    return ok(paginate([build_log_response(log) for log in logs], total, page, limit))


# ใช้ร่วมกับ endpoint อื่น
async def create_audit_log(
    db: AsyncSession,
    actor_id: int,
    action: str,
    ref_type: str,
    ref_id: Optional[int] = None,
    new_data: Optional[Any] = None,
    old_data: Optional[Any] = None) -> AuditLog:
    """เพิ่ม AuditLog ใน transaction เดียวกับการดำเนินการ"""
    log = AuditLog(
        actor_id=actor_id,
        action=action,
        ref_type=ref_type,
        ref_id=ref_id,
        old_data=jsonable_encoder(old_data) if old_data is not None else None,
        new_data=jsonable_encoder(new_data) if new_data is not None else None)
    db.add(log)
    return log
