"""
ฟังก์ชันกลางของการเคลื่อนไหวสต๊อค

การเปลี่ยนสถานะแต่ละขั้นอยู่ที่นี่เพื่อใช้ร่วมกันระหว่าง endpoint ทีละรายการ,
endpoint แบบกลุ่ม และ ERP API
"""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.errors import BusinessError, NotFoundError, ValidationError
from warehouse.models.movement import StockMovement, MovementLine, MOVEMENT_TYPE_LABELS
from warehouse.models.product import Product, ProductVariant
from warehouse.models.stock import Lot
from warehouse.models.user import User
from warehouse.models.warehouse import Location
from warehouse.schemas.movement import (
    MovementLineInput, MovementResponse, MovementDetailResponse,
    MovementLineResponse, LinkedMovement, ReturnableLine
)
from warehouse.services.doc_numbers import generate_doc_number
from warehouse.services.notifications import dispatch_notification, find_user_ids_with_permission
from warehouse.services.stock_ledger import apply_movement
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50

ZERO = Decimal("0")
INACTIVE_STATUSES = ("CANCELLED", "REJECTED")

# ประเภทที่กลับรายการ
REVERSE_TYPE_MAP = {
    "RECEIVE": "ISSUE",
    "ISSUE": "RECEIVE",
    "TRANSFER": "TRANSFER",
    "ADJUST": "ADJUST",
    "RETURN": "ISSUE",
}


def base_movement_query():
    return select(StockMovement).options(
        selectinload(StockMovement.created_by),
        selectinload(StockMovement.approved_by),
        selectinload(StockMovement.posted_by),
        selectinload(StockMovement.lines).selectinload(MovementLine.product),
        selectinload(StockMovement.lines).selectinload(MovementLine.variant),
        selectinload(StockMovement.lines).selectinload(MovementLine.lot),
        selectinload(StockMovement.lines).selectinload(MovementLine.from_location),
        selectinload(StockMovement.lines).selectinload(MovementLine.to_location),
    )


async def load_movement(db: AsyncSession, movement_id: int) -> StockMovement:
    result = await db.execute(
        base_movement_query()
        .where(StockMovement.id == movement_id)
        .execution_options(populate_existing=True)
    )
    movement = result.scalar_one_or_none()
    if not movement:
        raise NotFoundError("รายการ")
    return movement


def build_movement_response(movement: StockMovement) -> MovementResponse:
    return MovementResponse(
        id=movement.id,
        doc_number=movement.doc_number,
        type=movement.type,
        type_display=movement.type_display,
        status=movement.status,
        status_display=movement.status_display,
        ref_type=movement.ref_type,
        ref_id=movement.ref_id,
        note=movement.note,
        reason=movement.reason,
        created_by_id=movement.created_by_id,
        created_by_name=movement.created_by.name if movement.created_by else "",
        approved_by_id=movement.approved_by_id,
        approved_by_name=movement.approved_by.name if movement.approved_by else None,
        approved_at=movement.approved_at,
        posted_by_id=movement.posted_by_id,
        posted_by_name=movement.posted_by.name if movement.posted_by else None,
        posted_at=movement.posted_at,
        created_at=movement.created_at,
        line_count=len(movement.lines),
        total_qty=float(sum((abs(line.qty) for line in movement.lines), Decimal("0"))))


def build_line_response(line: MovementLine) -> MovementLineResponse:
    return MovementLineResponse(
        id=line.id,
        product_id=line.product_id,
        product_sku=line.product.sku,
        product_name=line.product.name,
        variant_id=line.variant_id,
        variant_sku=line.variant.sku if line.variant else None,
        variant_name=line.variant.name if line.variant else None,
        lot_id=line.lot_id,
        lot_number=line.lot.lot_number if line.lot else None,
        from_location_id=line.from_location_id,
        from_location_name=line.from_location.name if line.from_location else None,
        to_location_id=line.to_location_id,
        to_location_name=line.to_location.name if line.to_location else None,
        qty=float(line.qty),
        unit_cost=float(line.unit_cost or 0),
        note=line.note,
        order_ref=line.order_ref)


async def get_linked_movements(db: AsyncSession, movement: StockMovement) -> List[LinkedMovement]:
    """เอกสารกลับรายการ/คืนของที่อ้างถึงรายการนี้ และเอกสารต้นทางของรายการนี้"""
    conditions = [
        (StockMovement.ref_type.in_(["REVERSAL", "RETURN_FROM"])) & (StockMovement.ref_id == movement.id)
    ]
    if movement.ref_type in ("REVERSAL", "RETURN_FROM") and movement.ref_id:
        conditions.append(StockMovement.id == movement.ref_id)
    result = await db.execute(
        select(StockMovement).where(or_(*conditions)).order_by(StockMovement.created_at)
    )
    return [
        LinkedMovement(id=m.id, doc_number=m.doc_number, type=m.type, status=m.status, ref_type=m.ref_type)
        for m in result.scalars().all()
    ]


async def build_movement_detail(db: AsyncSession, movement: StockMovement) -> MovementDetailResponse:
    base = build_movement_response(movement)
    return MovementDetailResponse(
        **base.model_dump(),
        lines=[build_line_response(line) for line in movement.lines],
        linked_movements=await get_linked_movements(db, movement))


ReturnedQty = Dict[Tuple[int, Optional[int]], Decimal]


async def get_returned_qty_map(db: AsyncSession, issue_ids: Iterable[int]) -> Dict[int, ReturnedQty]:
    """จำนวนที่คืนแล้ว (หรือกำลังคืน) ต่อ (สินค้า, variant) ของแต่ละใบเบิก"""
    ids = list(issue_ids)
    returned: Dict[int, ReturnedQty] = {issue_id: defaultdict(lambda: ZERO) for issue_id in ids}
    if not ids:
        return returned
    result = await db.execute(
        select(StockMovement)
        .options(selectinload(StockMovement.lines))
        .where(
            StockMovement.type == "RETURN",
            StockMovement.ref_type == "RETURN_FROM",
            StockMovement.ref_id.in_(ids),
            StockMovement.status.notin_(INACTIVE_STATUSES),
        )
    )
    for movement in result.scalars().all():
        for line in movement.lines:
            returned[movement.ref_id][(line.product_id, line.variant_id)] += line.qty
    return returned


def build_returnable_lines(issue: StockMovement, returned: ReturnedQty) -> List[ReturnableLine]:
    items = []
    for line in issue.lines:
        returned_qty = returned.get((line.product_id, line.variant_id), ZERO)
        items.append(ReturnableLine(
            line_id=line.id,
            product_id=line.product_id,
            product_sku=line.product.sku,
            product_name=line.product.name,
            variant_id=line.variant_id,
            variant_name=line.variant.name if line.variant else None,
            from_location_id=line.from_location_id,
            from_location_name=line.from_location.name if line.from_location else None,
            issued_qty=float(line.qty),
            returned_qty=float(returned_qty),
            remaining_qty=float(max(line.qty - returned_qty, ZERO))))
    return items


def validate_lines(movement_type: str, lines: Sequence[MovementLineInput]) -> None:
    """ตรวจตำแหน่งและจำนวนตามประเภทการเคลื่อนไหว"""
    if not lines:
        raise ValidationError("กรุณาเพิ่มรายการสินค้า", "lines")
    for index, line in enumerate(lines, start=1):
        prefix = f"รายการที่ {index}: "
        if movement_type in ("RECEIVE", "RETURN", "ADJUST") and not line.to_location_id:
            raise ValidationError(prefix + "กรุณาระบุตำแหน่งปลายทาง", "to_location_id")
        if movement_type == "ISSUE" and not line.from_location_id:
            raise ValidationError(prefix + "กรุณาระบุตำแหน่งต้นทาง", "from_location_id")
        if movement_type == "TRANSFER":
            if not line.from_location_id or not line.to_location_id:
                raise ValidationError(prefix + "กรุณาระบุตำแหน่งต้นทางและปลายทาง", "lines")
            if line.from_location_id == line.to_location_id:
                raise ValidationError(prefix + "ตำแหน่งต้นทางและปลายทางต้องไม่ซ้ำกัน", "to_location_id")
        if movement_type == "ADJUST":
            if line.qty == 0:
                raise ValidationError(prefix + "จำนวนปรับปรุงต้องไม่เป็น 0", "qty")
        elif line.qty <= 0:
            raise ValidationError(prefix + "จำนวนต้องมากกว่า 0", "qty")


async def check_line_references(db: AsyncSession, lines: Sequence[MovementLineInput]) -> None:
    """สินค้า variant ตำแหน่ง และ Lot ที่อ้างถึงต้องมีอยู่จริง"""
    product_ids = {line.product_id for line in lines}
    found = await db.execute(
        select(Product.id).where(Product.id.in_(product_ids), Product.deleted_at.is_(None))
    )
    if len(set(found.scalars().all())) != len(product_ids):
        raise NotFoundError("สินค้า")

    variant_pairs = {(line.variant_id, line.product_id) for line in lines if line.variant_id}
    if variant_pairs:
        result = await db.execute(
            select(ProductVariant.id, ProductVariant.product_id)
            .where(ProductVariant.id.in_([v for v, _ in variant_pairs]))
        )
        owners = {row[0]: row[1] for row in result.all()}
        for variant_id, product_id in variant_pairs:
            if owners.get(variant_id) != product_id:
                raise ValidationError("variant ไม่ตรงกับสินค้า", "variant_id")

    location_ids = {
        loc for line in lines for loc in (line.from_location_id, line.to_location_id) if loc
    }
    if location_ids:
        found = await db.execute(select(Location.id).where(Location.id.in_(location_ids)))
        if len(set(found.scalars().all())) != len(location_ids):
            raise NotFoundError("ตำแหน่งจัดเก็บ")

    lot_ids = {line.lot_id for line in lines if line.lot_id}
    if lot_ids:
        found = await db.execute(select(Lot.id).where(Lot.id.in_(lot_ids)))
        if len(set(found.scalars().all())) != len(lot_ids):
            raise NotFoundError("Lot")


def build_lines(lines: Sequence[MovementLineInput]) -> List[MovementLine]:
    return [
        MovementLine(
            product_id=line.product_id,
            variant_id=line.variant_id,
            lot_id=line.lot_id,
            from_location_id=line.from_location_id,
            to_location_id=line.to_location_id,
            qty=line.qty,
            unit_cost=line.unit_cost,
            note=line.note,
            order_ref=line.order_ref)
        for line in lines
    ]


async def create_movement_record(
    db: AsyncSession,
    movement_type: str,
    lines: List[MovementLine],
    created_by_id: int,
    note: Optional[str] = None,
    reason: Optional[str] = None,
    ref_type: Optional[str] = None,
    ref_id: Optional[int] = None) -> StockMovement:
    """สร้างเอกสารสถานะ DRAFT พร้อมเลขที่เอกสาร"""
    movement = StockMovement(
        doc_number=await generate_doc_number(db, "MOVEMENT"),
        type=movement_type,
        status="DRAFT",
        note=note,
        reason=reason,
        ref_type=ref_type,
        ref_id=ref_id,
        created_by_id=created_by_id,
        lines=lines)
    db.add(movement)
    await db.flush()
    await create_audit_log(db, created_by_id, "CREATE", "MOVEMENT", movement.id,
                           {"doc_number": movement.doc_number, "type": movement_type})
    return movement


def _type_key(movement: StockMovement) -> str:
    return movement.type.lower()


async def notify_pending(db: AsyncSession, movement: StockMovement) -> None:
    user_ids = await find_user_ids_with_permission(db, "movements:approve")
    label = MOVEMENT_TYPE_LABELS.get(movement.type, movement.type)
    await dispatch_notification(
        db, [uid for uid in user_ids if uid != movement.created_by_id],
        f"{_type_key(movement)}Pending",
        f"{label} {movement.doc_number} รออนุมัติ",
        f"มีรายการ{label}รออนุมัติ เลขที่ {movement.doc_number}",
        f"/movements/{movement.id}")


async def notify_posted(db: AsyncSession, movement: StockMovement) -> None:
    label = MOVEMENT_TYPE_LABELS.get(movement.type, movement.type)
    await dispatch_notification(
        db, [movement.created_by_id],
        f"{_type_key(movement)}Posted",
        f"{label} {movement.doc_number} บันทึกแล้ว",
        f"รายการ{label} {movement.doc_number} ถูกบันทึกลงสต๊อคแล้ว",
        f"/movements/{movement.id}")


# ========== การเปลี่ยนสถานะ ==========

async def submit_movement(db: AsyncSession, movement: StockMovement, user: User) -> None:
    if movement.status not in ("DRAFT", "REJECTED"):
        raise BusinessError("ไม่สามารถส่งรายการที่ส่งอนุมัติหรือดำเนินการแล้วได้")
    if not movement.lines:
        raise BusinessError("กรุณาเพิ่มรายการสินค้าก่อนส่ง")
    movement.status = "SUBMITTED"
    await create_audit_log(db, user.id, "SUBMIT", "MOVEMENT", movement.id)
    await notify_pending(db, movement)


async def approve_movement(db: AsyncSession, movement: StockMovement, user: User) -> None:
    if movement.status != "SUBMITTED":
        raise BusinessError("ไม่สามารถอนุมัติรายการที่ไม่ใช่ Submitted ได้")
    movement.status = "APPROVED"
    movement.approved_by_id = user.id
    movement.approved_at = datetime.utcnow()
    await create_audit_log(db, user.id, "APPROVE", "MOVEMENT", movement.id)


async def reject_movement(db: AsyncSession, movement: StockMovement, user: User, reason: Optional[str]) -> None:
    if movement.status != "SUBMITTED":
        raise BusinessError("ไม่สามารถปฏิเสธรายการที่ไม่ใช่ Submitted ได้")
    movement.status = "REJECTED"
    if reason:
        movement.note = f"{movement.note or ''}\n[ปฏิเสธ] {reason}".lstrip("\n")
    await create_audit_log(db, user.id, "REJECT", "MOVEMENT", movement.id, {"reason": reason})


async def post_movement(db: AsyncSession, movement: StockMovement, user: User) -> None:
    """
    บันทึกลงสต๊อค ต้องโหลด movement ด้วย load_movement

    ถ้าบรรทัดใดสต๊อคไม่พอจะ raise BusinessError ผู้เรียกต้อง rollback
    """
    if movement.status != "APPROVED":
        raise BusinessError("ไม่สามารถ Post รายการที่ยังไม่อนุมัติได้")
    await apply_movement(db, movement)
    movement.status = "POSTED"
    movement.posted_by_id = user.id
    movement.posted_at = datetime.utcnow()
    await create_audit_log(db, user.id, "POST", "MOVEMENT", movement.id)
    await notify_posted(db, movement)
    logger.info(f"📦 บันทึก {movement.doc_number} ({movement.type}) {len(movement.lines)} รายการ")


async def cancel_movement(db: AsyncSession, movement: StockMovement, user: User, reason: Optional[str] = None) -> None:
    if movement.status == "POSTED":
        raise BusinessError("ไม่สามารถยกเลิกรายการที่ลงบัญชีแล้ว")
    if movement.status == "CANCELLED":
        raise BusinessError("รายการนี้ถูกยกเลิกแล้ว")
    movement.status = "CANCELLED"
    if reason:
        movement.note = f"{movement.note or ''}\n[ยกเลิก] {reason}".lstrip("\n")
    await create_audit_log(db, user.id, "CANCEL", "MOVEMENT", movement.id, {"reason": reason})
