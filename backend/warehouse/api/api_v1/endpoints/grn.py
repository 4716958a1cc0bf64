"""
ใบรับสินค้า (GRN)

การรับสินค้าทำใน transaction เดียว:
เพิ่มยอดรับของ PO line, สร้าง movement RECEIVE ที่บันทึกแล้ว, อัปเดตสต๊อค/ต้นทุน และสถานะ PO
"""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import BusinessError, NotFoundError, ValidationError
from warehouse.models.movement import StockMovement, MovementLine
from warehouse.models.purchase_order import PurchaseOrder, GRN, GRNLine
from warehouse.models.stock import Lot
from warehouse.models.user import User
from warehouse.models.warehouse import Location
from warehouse.schemas.common import ActionResult, OptionalReasonInput, PaginatedResult, ok, paginate
from warehouse.schemas.purchasing import GRNCreate, GRNResponse, GRNDetailResponse, GRNLineResponse
from warehouse.services.doc_numbers import generate_doc_number
from warehouse.services.notifications import dispatch_notification, find_user_ids_with_permission
from warehouse.services.stock_ledger import apply_movement
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log
from warehouse.api.api_v1.endpoints.movements.core import load_movement
from warehouse.api.api_v1.endpoints.po.core import load_po, add_timeline

logger = logging.getLogger(__name__)

router = APIRouter()

ZERO = Decimal("0")
RECEIVABLE_PO_STATUSES = ("SENT", "IN_PROGRESS", "PARTIALLY_RECEIVED")


def base_grn_query():
    return select(GRN).options(
        selectinload(GRN.po).selectinload(PurchaseOrder.supplier),
        selectinload(GRN.received_by),
        selectinload(GRN.lines).selectinload(GRNLine.product),
        selectinload(GRN.lines).selectinload(GRNLine.variant),
        selectinload(GRN.lines).selectinload(GRNLine.location),
    )


async def load_grn(db: AsyncSession, grn_id: int) -> GRN:
    result = await db.execute(
        base_grn_query()
        .where(GRN.id == grn_id)
        .execution_options(populate_existing=True)
    )
    grn = result.scalar_one_or_none()
    if not grn:
        raise NotFoundError("ใบรับสินค้า")
    return grn


def build_grn_response(grn: GRN) -> GRNResponse:
    return GRNResponse(
        id=grn.id,
        grn_number=grn.grn_number,
        status=grn.status,
        status_display=grn.status_display,
        po_id=grn.po_id,
        po_number=grn.po.po_number,
        supplier_name=grn.po.supplier.name if grn.po.supplier else "",
        received_by_id=grn.received_by_id,
        received_by_name=grn.received_by.name if grn.received_by else "",
        received_at=grn.received_at,
        note=grn.note,
        created_at=grn.created_at)


async def build_grn_detail(db: AsyncSession, grn: GRN) -> GRNDetailResponse:
    movement_id = await db.scalar(
        select(StockMovement.id).where(
            StockMovement.ref_type == "GRN",
            StockMovement.ref_id == grn.id,
        )
    )
    return GRNDetailResponse(
        **build_grn_response(grn).model_dump(),
        lines=[
            GRNLineResponse(
                id=line.id,
                po_line_id=line.po_line_id,
                product_id=line.product_id,
                product_sku=line.product.sku,
                product_name=line.product.name,
                variant_id=line.variant_id,
                variant_name=line.variant.name if line.variant else None,
                location_id=line.location_id,
                location_code=line.location.code,
                lot_id=line.lot_id,
                qty_received=float(line.qty_received),
                unit_cost=float(line.unit_cost or 0))
            for line in grn.lines
        ],
        movement_id=movement_id)


def check_remaining(po: PurchaseOrder, qty_by_po_line: Dict[int, Decimal]) -> None:
    po_lines = {line.id: line for line in po.lines}
    for po_line_id, qty in qty_by_po_line.items():
        po_line = po_lines.get(po_line_id)
        if po_line is None:
            raise ValidationError("รายการไม่อยู่ใน PO นี้", "po_line_id")
        if qty > po_line.qty_remaining:
            raise BusinessError("จำนวนรับเกินจำนวนคงค้าง")


async def receive_grn(db: AsyncSession, grn: GRN, po: PurchaseOrder, user: User) -> StockMovement:
    """
    บันทึกการรับสินค้าของ GRN ลงสต๊อคและอัปเดต PO

    po ต้องโหลดด้วย load_po และ grn.lines ต้องอยู่ในหน่วยความจำ
    """
    po_lines = {line.id: line for line in po.lines}
    for line in grn.lines:
        po_line = po_lines[line.po_line_id]
        po_line.qty_received = (po_line.qty_received or ZERO) + line.qty_received
        if line.lot_id:
            lot = await db.get(Lot, line.lot_id)
            lot.qty_received = (lot.qty_received or ZERO) + line.qty_received

    now = datetime.utcnow()
    movement = StockMovement(
        doc_number=await generate_doc_number(db, "MOVEMENT"),
        type="RECEIVE",
        status="APPROVED",
        ref_type="GRN",
        ref_id=grn.id,
        note=f"รับสินค้าตาม {po.po_number} ({grn.grn_number})",
        created_by_id=user.id,
        approved_by_id=user.id,
        approved_at=now,
        lines=[
            MovementLine(
                product_id=line.product_id,
                variant_id=line.variant_id,
                lot_id=line.lot_id,
                to_location_id=line.location_id,
                qty=line.qty_received,
                unit_cost=line.unit_cost)
            for line in grn.lines
        ])
    db.add(movement)
    await db.flush()

    movement = await load_movement(db, movement.id)
    await apply_movement(db, movement)
    movement.status = "POSTED"
    movement.posted_by_id = user.id
    movement.posted_at = now

    grn.status = "POSTED"
    fully_received = all((l.qty_received or ZERO) >= l.qty for l in po.lines)
    po.status = "FULLY_RECEIVED" if fully_received else "PARTIALLY_RECEIVED"
    add_timeline(po, "รับสินค้าครบ" if fully_received else "รับสินค้าบางส่วน", user.id, grn.grn_number)

    await dispatch_notification(
        db, [po.created_by_id], "poReceived",
        f"รับสินค้าตาม PO {po.po_number}",
        f"{grn.grn_number}: {po.status_display}",
        f"/po/{po.id}")
    recipients = await find_user_ids_with_permission(db, "po:write")
    await dispatch_notification(
        db, [uid for uid in recipients if uid != user.id], "grnCreated",
        f"สร้างใบรับสินค้า {grn.grn_number}",
        f"{user.name} รับสินค้าตาม PO {po.po_number} จำนวน {len(grn.lines)} รายการ",
        f"/grn/{grn.id}")
    logger.info(f"📥 รับสินค้า {grn.grn_number} ตาม {po.po_number} → {po.status}")
    return movement


@router.get("/", response_model=ActionResult[PaginatedResult[GRNResponse]])
async def list_grns(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("grn:read")),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    status: Optional[str] = Query(None),
    po_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="ค้นหาเลขที่ GRN / หมายเหตุ")) -> Any:
    conditions = []
    if status:
        conditions.append(GRN.status == status)
    if po_id:
        conditions.append(GRN.po_id == po_id)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(GRN.grn_number.ilike(pattern), GRN.note.ilike(pattern)))
    total = await db.scalar(select(func.count(GRN.id)).where(*conditions))
    result = await db.execute(
        base_grn_query()
        .where(*conditions)
        .order_by(GRN.created_at.desc(), GRN.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [build_grn_response(g) for g in result.scalars().all()]
    return ok(paginate(items, total or 0, page, limit))


@router.get("/{grn_id}", response_model=ActionResult[GRNDetailResponse])
async def get_grn(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("grn:read")),
    grn_id: int) -> Any:
    return ok(await build_grn_detail(db, await load_grn(db, grn_id)))


@router.post("/", response_model=ActionResult[GRNDetailResponse])
async def create_grn(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("grn:write")),
    grn_in: GRNCreate) -> Any:
    po = await load_po(db, grn_in.po_id)
    if po.status not in RECEIVABLE_PO_STATUSES:
        raise BusinessError("ไม่สามารถรับสินค้าจาก PO นี้ได้")

    lines_in = [line for line in grn_in.lines if line.qty_received > 0]
    if not lines_in:
        raise ValidationError("กรุณาระบุจำนวนรับอย่างน้อย 1 รายการ", "lines")

    qty_by_po_line: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for line in lines_in:
        qty_by_po_line[line.po_line_id] += line.qty_received
    check_remaining(po, qty_by_po_line)

    location_ids = {line.location_id for line in lines_in}
    found = await db.execute(select(Location.id).where(Location.id.in_(location_ids)))
    if len(set(found.scalars().all())) != len(location_ids):
        raise NotFoundError("ตำแหน่งจัดเก็บ")

    po_lines = {line.id: line for line in po.lines}
    grn_lines = []
    for line in lines_in:
        po_line = po_lines[line.po_line_id]
        if line.lot_id:
            lot = await db.get(Lot, line.lot_id)
            if not lot or lot.product_id != po_line.product_id:
                raise ValidationError("Lot ไม่ตรงกับสินค้า", "lot_id")
        grn_lines.append(GRNLine(
            po_line_id=po_line.id,
            product_id=po_line.product_id,
            variant_id=po_line.variant_id,
            location_id=line.location_id,
            lot_id=line.lot_id,
            qty_received=line.qty_received,
            unit_cost=line.unit_cost if line.unit_cost is not None else po_line.unit_price))

    grn = GRN(
        grn_number=await generate_doc_number(db, "GRN"),
        po_id=po.id,
        status="DRAFT",
        received_by_id=current_user.id,
        received_at=grn_in.received_at or datetime.utcnow(),
        note=grn_in.note,
        lines=grn_lines)
    db.add(grn)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "GRN", grn.id, grn_in.model_dump())
    if not grn_in.as_draft:
        await receive_grn(db, grn, po, current_user)
    await db.commit()
    return ok(await build_grn_detail(db, await load_grn(db, grn.id)))


@router.post("/{grn_id}/post", response_model=ActionResult[GRNDetailResponse])
async def post_grn(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("grn:write")),
    grn_id: int) -> Any:
    """บันทึกใบรับสินค้าฉบับร่างลงสต๊อค"""
    grn = await load_grn(db, grn_id)
    if grn.status != "DRAFT":
        raise BusinessError("บันทึกได้เฉพาะใบรับสินค้าที่เป็นร่างเท่านั้น")
    po = await load_po(db, grn.po_id)
    if po.status not in RECEIVABLE_PO_STATUSES:
        raise BusinessError("ไม่สามารถรับสินค้าจาก PO นี้ได้")

    qty_by_po_line: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for line in grn.lines:
        qty_by_po_line[line.po_line_id] += line.qty_received
    check_remaining(po, qty_by_po_line)

    await receive_grn(db, grn, po, current_user)
    await create_audit_log(db, current_user.id, "POST", "GRN", grn.id)
    await db.commit()
    return ok(await build_grn_detail(db, await load_grn(db, grn_id)))


@router.post("/{grn_id}/cancel", response_model=ActionResult[GRNDetailResponse])
async def cancel_grn(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("grn:write")),
    grn_id: int,
    cancel_in: Optional[OptionalReasonInput] = None) -> Any:
    grn = await load_grn(db, grn_id)
    if grn.status != "DRAFT":
        raise BusinessError("ยกเลิกได้เฉพาะใบรับสินค้าที่เป็นร่างเท่านั้น")
    reason = cancel_in.reason if cancel_in else None
    grn.status = "CANCELLED"
    if reason:
        grn.note = f"{grn.note or ''}\n[ยกเลิก] {reason}".lstrip("\n")
    await create_audit_log(db, current_user.id, "CANCEL", "GRN", grn.id, {"reason": reason})
    await db.commit()
    return ok(await build_grn_detail(db, await load_grn(db, grn_id)))
