"""การเคลื่อนไหวสต๊อค - รายการ / สร้าง / แก้ไข / ลบ"""

from datetime import date, datetime, time
from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import BusinessError
from warehouse.models.movement import StockMovement, MovementLine
from warehouse.models.warehouse import Location
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, MessageData, PaginatedResult, ok, paginate
from warehouse.schemas.movement import (
    MovementCreate, MovementUpdate, MovementResponse, MovementDetailResponse,
    VariantMovementEntry, IssuedMovement
)
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log
from warehouse.api.api_v1.endpoints.movements.core import (
    base_movement_query, load_movement, build_movement_response, build_movement_detail,
    validate_lines, check_line_references, build_lines, create_movement_record,
    get_returned_qty_map, build_returnable_lines
)

router = APIRouter()


@router.get("/", response_model=ActionResult[PaginatedResult[MovementResponse]])
async def list_movements(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:read")),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    type: Optional[str] = Query(None, description="ประเภท"),
    status: Optional[str] = Query(None, description="สถานะ"),
    search: Optional[str] = Query(None, description="ค้นหาเลขที่เอกสาร / หมายเหตุ"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None)) -> Any:
    conditions = []
    if type:
        conditions.append(StockMovement.type == type)
    if status:
        conditions.append(StockMovement.status == status)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            StockMovement.doc_number.ilike(pattern),
            StockMovement.note.ilike(pattern),
        ))
    if date_from:
        conditions.append(StockMovement.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        conditions.append(StockMovement.created_at <= datetime.combine(date_to, time.max))

    total = await db.scalar(select(func.count(StockMovement.id)).where(*conditions))
    result = await db.execute(
        base_movement_query()
        .where(*conditions)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [build_movement_response(m) for m in result.scalars().all()]
    return ok(paginate(items, total or 0, page, limit))


def _location_parts(location: Optional[Location]):
    if location is None:
        return None, None
    return location.code, location.warehouse.name if location.warehouse else None


@router.get("/by-variant", response_model=ActionResult[PaginatedResult[VariantMovementEntry]])
async def list_movements_by_variant(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:read")),
    product_id: int = Query(...),
    variant_id: Optional[int] = Query(None, description="ไม่ระบุ = สินค้าที่ไม่มี variant"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None)) -> Any:
    """ประวัติรายการที่ Post แล้วของสินค้า/variant"""
    conditions = [
        MovementLine.product_id == product_id,
        MovementLine.variant_id == variant_id if variant_id else MovementLine.variant_id.is_(None),
        StockMovement.status == "POSTED",
    ]
    if date_from:
        conditions.append(StockMovement.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        conditions.append(StockMovement.created_at <= datetime.combine(date_to, time.max))

    total = await db.scalar(
        select(func.count(MovementLine.id)).join(MovementLine.movement).where(*conditions)
    )
    result = await db.execute(
        select(MovementLine)
        .join(MovementLine.movement)
        .options(
            selectinload(MovementLine.movement).selectinload(StockMovement.created_by),
            selectinload(MovementLine.lot),
            selectinload(MovementLine.from_location).selectinload(Location.warehouse),
            selectinload(MovementLine.to_location).selectinload(Location.warehouse),
        )
        .where(*conditions)
        .order_by(StockMovement.created_at.desc(), MovementLine.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = []
    for line in result.scalars().all():
        movement = line.movement
        from_code, from_warehouse = _location_parts(line.from_location)
        to_code, to_warehouse = _location_parts(line.to_location)
        items.append(VariantMovementEntry(
            id=movement.id,
            doc_number=movement.doc_number,
            type=movement.type,
            type_display=movement.type_display,
            status=movement.status,
            qty=float(line.qty),
            lot_number=line.lot.lot_number if line.lot else None,
            from_location_code=from_code,
            from_warehouse_name=from_warehouse,
            to_location_code=to_code,
            to_warehouse_name=to_warehouse,
            note=movement.note,
            created_by_name=movement.created_by.name if movement.created_by else "",
            created_at=movement.created_at,
            posted_at=movement.posted_at))
    return ok(paginate(items, total or 0, page, limit))


@router.get("/issued", response_model=ActionResult[PaginatedResult[IssuedMovement]])
async def list_issued_movements(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:read")),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    search: Optional[str] = Query(None, description="ค้นหาเลขที่เอกสาร / หมายเหตุ")) -> Any:
    """ใบเบิกที่ Post แล้วและยังคืนของได้ สำหรับเลือกทำรายการคืน"""
    conditions = [StockMovement.type == "ISSUE", StockMovement.status == "POSTED"]
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            StockMovement.doc_number.ilike(pattern),
            StockMovement.note.ilike(pattern),
        ))
    result = await db.execute(
        base_movement_query()
        .where(*conditions)
        .order_by(StockMovement.posted_at.desc(), StockMovement.id.desc())
    )
    issues = result.scalars().all()
    returned = await get_returned_qty_map(db, [m.id for m in issues])

    items = []
    for issue in issues:
        lines = build_returnable_lines(issue, returned[issue.id])
        if not any(line.remaining_qty > 0 for line in lines):
            continue
        items.append(IssuedMovement(
            id=issue.id,
            doc_number=issue.doc_number,
            note=issue.note,
            created_by_name=issue.created_by.name if issue.created_by else "",
            created_at=issue.created_at,
            posted_at=issue.posted_at,
            lines=lines))
    start = (page - 1) * limit
    return ok(paginate(items[start:start + limit], len(items), page, limit))


@router.get("/{movement_id}", response_model=ActionResult[MovementDetailResponse])
async def get_movement(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:read")),
    movement_id: int) -> Any:
    movement = await load_movement(db, movement_id)
    return ok(await build_movement_detail(db, movement))


@router.post("/", response_model=ActionResult[MovementDetailResponse])
async def create_movement(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
    movement_in: MovementCreate) -> Any:
    validate_lines(movement_in.type, movement_in.lines)
    await check_line_references(db, movement_in.lines)
    movement = await create_movement_record(
        db, movement_in.type, build_lines(movement_in.lines), current_user.id,
        note=movement_in.note, reason=movement_in.reason)
    await db.commit()
    movement = await load_movement(db, movement.id)
    return ok(await build_movement_detail(db, movement))


@router.put("/{movement_id}", response_model=ActionResult[MovementDetailResponse])
async def update_movement(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
    movement_id: int,
    movement_in: MovementUpdate) -> Any:
    """แก้ไขได้เฉพาะฉบับร่างหรือที่ถูกปฏิเสธ รายการสินค้าถูกแทนที่ทั้งหมด"""
    movement = await load_movement(db, movement_id)
    if movement.status not in ("DRAFT", "REJECTED"):
        raise BusinessError("ไม่สามารถแก้ไขรายการที่ไม่ใช่ฉบับร่างได้")
    validate_lines(movement.type, movement_in.lines)
    await check_line_references(db, movement_in.lines)

    old_data = {"note": movement.note, "reason": movement.reason, "lines": len(movement.lines)}
    movement.note = movement_in.note
    movement.reason = movement_in.reason
    movement.lines = build_lines(movement_in.lines)
    await db.flush()
    await create_audit_log(db, current_user.id, "UPDATE", "MOVEMENT", movement.id,
                           movement_in.model_dump(), old_data)
    await db.commit()
    movement = await load_movement(db, movement_id)
    return ok(await build_movement_detail(db, movement))


@router.delete("/{movement_id}", response_model=ActionResult[MessageData])
async def delete_movement(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("movements:write")),
    movement_id: int) -> Any:
    movement = await load_movement(db, movement_id)
    if movement.status != "DRAFT":
        raise BusinessError("ลบได้เฉพาะรายการที่เป็นฉบับร่างเท่านั้น")
    await create_audit_log(db, current_user.id, "DELETE", "MOVEMENT", movement.id,
                           old_data={"doc_number": movement.doc_number})
    await db.delete(movement)
    await db.commit()
    return ok(MessageData(message="ลบรายการสำเร็จ"))
