"""
การเคลื่อนไหวสต๊อค - ขั้นตอนอนุมัติ

submit → approve/reject → post รวมถึงยกเลิก กลับรายการ และสร้างรายการคืนจากใบเบิก
"""

from typing import Any, List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import BusinessError, NotFoundError, ValidationError
from warehouse.models.movement import StockMovement, MovementLine
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, OptionalReasonInput, ReasonInput, ok
from warehouse.schemas.movement import (
    MovementDetailResponse, ReturnFromIssueCreate, ReturnableLine
)
from warehouse.api.api_v1.endpoints.movements.core import (
    REVERSE_TYPE_MAP, load_movement, build_movement_detail, create_movement_record,
    submit_movement, approve_movement, reject_movement, post_movement, cancel_movement,
    INACTIVE_STATUSES, ReturnedQty, get_returned_qty_map, build_returnable_lines
)

router = APIRouter()


async def _detail(db: AsyncSession, movement_id: int) -> MovementDetailResponse:
    return await build_movement_detail(db, await load_movement(db, movement_id))


@router.post("/{movement_id}/submit", response_model=ActionResult[MovementDetailResponse])
async def submit(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
    movement_id: int) -> Any:
    movement = await load_movement(db, movement_id)
    await submit_movement(db, movement, current_user)
    await db.commit()
    return ok(await _detail(db, movement_id))


@router.post("/{movement_id}/approve", response_model=ActionResult[MovementDetailResponse])
async def approve(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:approve")),
    movement_id: int) -> Any:
    movement = await load_movement(db, movement_id)
    await approve_movement(db, movement, current_user)
    await db.commit()
    return ok(await _detail(db, movement_id))


@router.post("/{movement_id}/reject", response_model=ActionResult[MovementDetailResponse])
async def reject(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:approve")),
    movement_id: int,
    reject_in: ReasonInput) -> Any:
    movement = await load_movement(db, movement_id)
    await reject_movement(db, movement, current_user, reject_in.reason)
    await db.commit()
    return ok(await _detail(db, movement_id))


@router.post("/{movement_id}/post", response_model=ActionResult[MovementDetailResponse])
async def post(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:approve")),
    movement_id: int) -> Any:
    """บันทึกลงสต๊อคทุกบรรทัดใน transaction เดียว"""
    movement = await load_movement(db, movement_id)
    await post_movement(db, movement, current_user)
    await db.commit()
    return ok(await _detail(db, movement_id))


@router.post("/{movement_id}/cancel", response_model=ActionResult[MovementDetailResponse])
async def cancel(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
    movement_id: int,
    cancel_in: Optional[OptionalReasonInput] = None) -> Any:
    movement = await load_movement(db, movement_id)
    await cancel_movement(db, movement, current_user, cancel_in.reason if cancel_in else None)
    await db.commit()
    return ok(await _detail(db, movement_id))


def _reverse_line(movement_type: str, line: MovementLine) -> MovementLine:
    """สร้างบรรทัดที่หักล้างบรรทัดเดิม"""
    reversed_line = MovementLine(
        product_id=line.product_id,
        variant_id=line.variant_id,
        lot_id=line.lot_id,
        qty=line.qty,
        unit_cost=line.unit_cost,
        note=line.note,
        order_ref=line.order_ref)
    if movement_type in ("RECEIVE", "RETURN"):
        reversed_line.from_location_id = line.to_location_id
    elif movement_type == "ISSUE":
        reversed_line.to_location_id = line.from_location_id
    elif movement_type == "TRANSFER":
        reversed_line.from_location_id = line.to_location_id
        reversed_line.to_location_id = line.from_location_id
    else:
        reversed_line.to_location_id = line.to_location_id
        reversed_line.qty = -line.qty
    return reversed_line


@router.post("/{movement_id}/reverse", response_model=ActionResult[MovementDetailResponse])
async def reverse(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
    movement_id: int) -> Any:
    """สร้างเอกสารกลับรายการ (ฉบับร่าง) จากเอกสารที่บันทึกแล้ว"""
    original = await load_movement(db, movement_id)
    if original.status != "POSTED":
        raise BusinessError("สามารถกลับรายการได้เฉพาะเอกสารที่ Post แล้วเท่านั้น")

    existing = await db.scalar(
        select(StockMovement.id).where(
            StockMovement.ref_type == "REVERSAL",
            StockMovement.ref_id == original.id,
            StockMovement.status.notin_(INACTIVE_STATUSES),
        ).limit(1)
    )
    if existing:
        raise BusinessError("รายการนี้ถูกกลับรายการแล้ว")

    lines = [_reverse_line(original.type, line) for line in original.lines]
    reversal = await create_movement_record(
        db, REVERSE_TYPE_MAP[original.type], lines, current_user.id,
        note=f"กลับรายการ {original.doc_number}",
        reason="กลับรายการ (Reversal)",
        ref_type="REVERSAL",
        ref_id=original.id)
    await db.commit()
    return ok(await _detail(db, reversal.id))


async def get_returned_qty(db: AsyncSession, issue_id: int) -> ReturnedQty:
    return (await get_returned_qty_map(db, [issue_id]))[issue_id]


async def load_posted_issue(db: AsyncSession, movement_id: int) -> StockMovement:
    try:
        movement = await load_movement(db, movement_id)
    except NotFoundError:
        raise NotFoundError("รายการเบิกออก")
    if movement.type != "ISSUE":
        raise BusinessError("สามารถสร้างรายการคืนได้จากรายการเบิกออกเท่านั้น")
    if movement.status != "POSTED":
        raise BusinessError("สามารถสร้างรายการคืนได้จากรายการที่ Post แล้วเท่านั้น")
    return movement


@router.get("/{movement_id}/returnable", response_model=ActionResult[List[ReturnableLine]])
async def get_returnable_lines(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:read")),
    movement_id: int) -> Any:
    """บรรทัดของใบเบิกที่ยังคืนได้"""
    issue = await load_posted_issue(db, movement_id)
    returned = await get_returned_qty(db, issue.id)
    return ok(build_returnable_lines(issue, returned))


@router.post("/{movement_id}/return", response_model=ActionResult[MovementDetailResponse])
async def create_return_from_issue(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
    movement_id: int,
    return_in: ReturnFromIssueCreate) -> Any:
    """สร้างรายการคืนของ (ฉบับร่าง) กลับเข้าตำแหน่งที่เบิกออกไป"""
    if not return_in.lines:
        raise ValidationError("กรุณาระบุรายการที่ต้องการคืน", "lines")
    issue = await load_posted_issue(db, movement_id)
    issue_lines = {line.id: line for line in issue.lines}
    returned = await get_returned_qty(db, issue.id)

    new_lines = []
    for item in return_in.lines:
        source = issue_lines.get(item.line_id)
        if source is None:
            raise ValidationError(f"ไม่พบรายการที่ต้องการคืน: {item.line_id}", "lines")
        if item.qty <= 0:
            raise ValidationError("จำนวนที่คืนต้องมากกว่า 0", "qty")
        key = (source.product_id, source.variant_id)
        if item.qty > source.qty - returned[key]:
            raise BusinessError(f"จำนวนที่คืนมากกว่าจำนวนที่เบิก ({source.product.name})")
        returned[key] += item.qty
        new_lines.append(MovementLine(
            product_id=source.product_id,
            variant_id=source.variant_id,
            lot_id=source.lot_id,
            to_location_id=source.from_location_id,
            qty=item.qty,
            unit_cost=source.unit_cost,
            order_ref=source.order_ref))

    movement = await create_movement_record(
        db, "RETURN", new_lines, current_user.id,
        note=return_in.note or f"คืนสินค้าจาก {issue.doc_number}",
        reason="คืนสินค้าจากการเบิก",
        ref_type="RETURN_FROM",
        ref_id=issue.id)
    await db.commit()
    return ok(await _detail(db, movement.id))
