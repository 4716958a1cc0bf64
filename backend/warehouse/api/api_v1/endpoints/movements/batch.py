"""
การเคลื่อนไหวสต๊อค - ดำเนินการหลายรายการพร้อมกัน

แต่ละรายการทำใน savepoint ของตัวเอง รายการที่ล้มเหลวไม่กระทบรายการอื่น
"""

import logging
from typing import Any, Awaitable, Callable
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import AppError, NotFoundError, ValidationError
from warehouse.models.movement import StockMovement
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, BatchItemResult, BatchResult, ok
from warehouse.schemas.movement import BatchIds
from warehouse.api.api_v1.endpoints.movements.core import (
    MAX_BATCH_SIZE, load_movement,
    approve_movement, reject_movement, post_movement, cancel_movement
)

logger = logging.getLogger(__name__)

router = APIRouter()

MovementAction = Callable[[AsyncSession, StockMovement], Awaitable[None]]


async def run_batch(
    db: AsyncSession,
    batch_in: BatchIds,
    action: MovementAction,
    empty_message: str) -> BatchResult:
    if not batch_in.ids:
        raise ValidationError(empty_message, "ids")
    if len(batch_in.ids) > MAX_BATCH_SIZE:
        raise ValidationError(f"เลือกได้สูงสุด {MAX_BATCH_SIZE} รายการ", "ids")

    results = []
    for movement_id in dict.fromkeys(batch_in.ids):
        try:
            movement = await load_movement(db, movement_id)
        except NotFoundError:
            results.append(BatchItemResult(id=movement_id, success=False, error="ไม่พบรายการ"))
            continue

        doc_number = movement.doc_number
        try:
            async with db.begin_nested():
                await action(db, movement)
        except AppError as e:
            results.append(BatchItemResult(id=movement_id, doc_number=doc_number, success=False, error=e.message))
        else:
            results.append(BatchItemResult(id=movement_id, doc_number=doc_number, success=True))

    await db.commit()
    succeeded = sum(1 for r in results if r.success)
    logger.info(f"📋 ดำเนินการแบบกลุ่ม สำเร็จ {succeeded}/{len(results)}")
    return BatchResult(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results)


@router.post("/batch/approve", response_model=ActionResult[BatchResult])
async def batch_approve(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:approve")),
    batch_in: BatchIds) -> Any:
    async def action(session: AsyncSession, movement: StockMovement) -> None:
        await approve_movement(session, movement, current_user)

    return ok(await run_batch(db, batch_in, action, "กรุณาเลือกรายการที่ต้องการอนุมัติ"))


@router.post("/batch/reject", response_model=ActionResult[BatchResult])
async def batch_reject(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:approve")),
    batch_in: BatchIds) -> Any:
    async def action(session: AsyncSession, movement: StockMovement) -> None:
        await reject_movement(session, movement, current_user, batch_in.reason)

    return ok(await run_batch(db, batch_in, action, "กรุณาเลือกรายการที่ต้องการปฏิเสธ"))


@router.post("/batch/post", response_model=ActionResult[BatchResult])
async def batch_post(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:approve")),
    batch_in: BatchIds) -> Any:
    async def action(session: AsyncSession, movement: StockMovement) -> None:
        await post_movement(session, movement, current_user)

    return ok(await run_batch(db, batch_in, action, "กรุณาเลือกรายการที่ต้องการบันทึก"))


@router.post("/batch/cancel", response_model=ActionResult[BatchResult])
async def batch_cancel(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
    batch_in: BatchIds) -> Any:
    async def action(session: AsyncSession, movement: StockMovement) -> None:
        await cancel_movement(session, movement, current_user, batch_in.reason)

    return ok(await run_batch(db, batch_in, action, "กรุณาเลือกรายการที่ต้องการยกเลิก"))
