"""
ฟังก์ชันกลางของใบสั่งซื้อ

การคำนวณ VAT
- EXCLUDED: VAT = ยอดรวม × อัตรา / 100, สุทธิ = ยอดรวม + VAT
- INCLUDED: ราคารวม VAT แล้ว VAT = ยอดรวม − ยอดรวม / (1 + อัตรา/100), สุทธิ = ยอดรวม
- NO_VAT: ไม่มี VAT
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Sequence
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.errors import NotFoundError, ValidationError
from warehouse.models.product import Product, ProductVariant
from warehouse.models.purchase_order import PurchaseOrder, POLine, POTimeline
from warehouse.schemas.purchasing import (
    POLineInput, POTotals, POResponse, PODetailResponse,
    POLineResponse, POTimelineResponse, GRNBrief
)

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def _round(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calculate_po_totals(lines: Iterable, vat_type: str, vat_rate) -> dict:
    """lines ต้องมี qty และ unit_price"""
    subtotal = sum(
        (Decimal(str(line.qty)) * Decimal(str(line.unit_price or 0)) for line in lines),
        ZERO,
    )
    rate = Decimal(str(vat_rate or 0))
    if vat_type == "EXCLUDED":
        vat_amount = subtotal * rate / 100
        total = subtotal + vat_amount
    elif vat_type == "INCLUDED":
        vat_amount = subtotal - subtotal / (1 + rate / 100)
        total = subtotal
    else:
        vat_amount = ZERO
        total = subtotal
    return {
        "subtotal": _round(subtotal),
        "vat_amount": _round(vat_amount),
        "total": _round(total),
    }


def apply_totals(po: PurchaseOrder) -> None:
    totals = calculate_po_totals(po.lines, po.vat_type, po.vat_rate)
    po.subtotal = totals["subtotal"]
    po.vat_amount = totals["vat_amount"]
    po.total = totals["total"]


def base_po_query():
    return select(PurchaseOrder).options(
        selectinload(PurchaseOrder.supplier),
        selectinload(PurchaseOrder.pr),
        selectinload(PurchaseOrder.created_by),
        selectinload(PurchaseOrder.grns),
        selectinload(PurchaseOrder.timelines).selectinload(POTimeline.actor),
        selectinload(PurchaseOrder.lines).selectinload(POLine.product),
        selectinload(PurchaseOrder.lines).selectinload(POLine.variant),
    )


async def load_po(db: AsyncSession, po_id: int) -> PurchaseOrder:
    result = await db.execute(
        base_po_query()
        .where(PurchaseOrder.id == po_id)
        .execution_options(populate_existing=True)
    )
    po = result.scalar_one_or_none()
    if not po:
        raise NotFoundError("PO")
    return po


def build_po_response(po: PurchaseOrder) -> POResponse:
    return POResponse(
        id=po.id,
        po_number=po.po_number,
        status=po.status,
        status_display=po.status_display,
        supplier_id=po.supplier_id,
        supplier_name=po.supplier.name if po.supplier else "",
        pr_id=po.pr_id,
        pr_number=po.pr.pr_number if po.pr else None,
        vat_type=po.vat_type,
        vat_type_display=po.vat_type_display,
        vat_rate=float(po.vat_rate or 0),
        subtotal=float(po.subtotal or 0),
        vat_amount=float(po.vat_amount or 0),
        total=float(po.total or 0),
        eta=po.eta,
        terms=po.terms,
        note=po.note,
        created_by_id=po.created_by_id,
        created_by_name=po.created_by.name if po.created_by else "",
        approved_by_id=po.approved_by_id,
        approved_at=po.approved_at,
        sent_at=po.sent_at,
        created_at=po.created_at)


def build_po_detail(po: PurchaseOrder) -> PODetailResponse:
    return PODetailResponse(
        **build_po_response(po).model_dump(),
        lines=[
            POLineResponse(
                id=line.id,
                product_id=line.product_id,
                product_sku=line.product.sku,
                product_name=line.product.name,
                variant_id=line.variant_id,
                variant_name=line.variant.name if line.variant else None,
                qty=float(line.qty),
                unit_price=float(line.unit_price or 0),
                amount=float(line.amount),
                qty_received=float(line.qty_received or 0),
                qty_remaining=float(line.qty_remaining),
                note=line.note)
            for line in po.lines
        ],
        timelines=[
            POTimelineResponse(
                id=t.id,
                action=t.action,
                note=t.note,
                actor_id=t.actor_id,
                actor_name=t.actor.name if t.actor else "",
                created_at=t.created_at)
            for t in po.timelines
        ],
        grns=[
            GRNBrief(id=g.id, grn_number=g.grn_number, status=g.status, received_at=g.received_at)
            for g in po.grns
        ])


async def build_po_lines(db: AsyncSession, lines: Sequence[POLineInput]) -> List[POLine]:
    if not lines:
        raise ValidationError("กรุณาเพิ่มรายการสินค้า", "lines")
    product_ids = {line.product_id for line in lines}
    found = await db.execute(
        select(Product.id).where(Product.id.in_(product_ids), Product.deleted_at.is_(None))
    )
    if len(set(found.scalars().all())) != len(product_ids):
        raise NotFoundError("สินค้า")
    variant_ids = {line.variant_id for line in lines if line.variant_id}
    if variant_ids:
        found = await db.execute(select(ProductVariant.id).where(ProductVariant.id.in_(variant_ids)))
        if len(set(found.scalars().all())) != len(variant_ids):
            raise NotFoundError("variant")
    return [
        POLine(
            product_id=line.product_id,
            variant_id=line.variant_id,
            qty=line.qty,
            unit_price=line.unit_price,
            qty_received=ZERO,
            note=line.note)
        for line in lines
    ]


def add_timeline(po: PurchaseOrder, action: str, actor_id: int, note: str = None) -> POTimeline:
    timeline = POTimeline(action=action, note=note, actor_id=actor_id)
    po.timelines.append(timeline)
    return timeline


def totals_response(totals: dict) -> POTotals:
    return POTotals(**{k: float(v) for k, v in totals.items()})
