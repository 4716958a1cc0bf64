"""
การแจ้งเตือนตามรอบเวลา และข้อมูลที่ใช้ร่วมกับรายงาน

- สินค้าใกล้หมด (ยอดรวมทุกตำแหน่ง ≤ ROP)
- Lot ใกล้หมดอายุ
- งานค้างที่รอการดำเนินการ
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.models.movement import StockMovement, MOVEMENT_TYPE_LABELS
from warehouse.models.notification import Notification
from warehouse.models.product import Product, ProductVariant
from warehouse.models.purchase_order import PurchaseOrder, GRN
from warehouse.models.purchase_requisition import PurchaseRequisition
from warehouse.models.stock import StockBalance, Lot, LotBalance
from warehouse.services.notifications import dispatch_notification, find_user_ids_by_roles
from warehouse.services.stock_ledger import fmt_qty

logger = logging.getLogger(__name__)

ALERT_ROLES = ["ADMIN", "APPROVER", "INVENTORY"]
ZERO = Decimal("0")


async def get_low_stock_items(
    db: AsyncSession,
    stocked_only: bool = True,
    category_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    รายการสินค้า/variant ที่ยอดรวมทุกตำแหน่ง ≤ ROP (ROP > 0)
    ใช้ ROP ของ variant เมื่อเป็นยอดของ variant
    """
    query = (
        select(
            StockBalance.product_id,
            StockBalance.variant_id,
            func.coalesce(func.sum(StockBalance.qty_on_hand), 0),
        )
        .join(Product, Product.id == StockBalance.product_id)
        .where(Product.active.is_(True), Product.deleted_at.is_(None))
        .group_by(StockBalance.product_id, StockBalance.variant_id)
    )
    if category_id:
        query = query.where(Product.category_id == category_id)
    totals = {(row[0], row[1]): Decimal(str(row[2])) for row in (await db.execute(query)).all()}

    products_result = await db.execute(
        select(Product)
        .options(selectinload(Product.variants), selectinload(Product.category))
        .where(Product.active.is_(True), Product.deleted_at.is_(None))
    )
    items: List[Dict[str, Any]] = []
    for product in products_result.scalars().all():
        if category_id and product.category_id != category_id:
            continue
        active_variants = [v for v in product.variants if v.active and v.deleted_at is None]
        if product.has_variants and active_variants:
            targets = [(v, v.reorder_point, v.stock_type) for v in active_variants if v.low_stock_alert]
        else:
            targets = [(None, product.reorder_point, product.stock_type)]

        for variant, rop, stock_type in targets:
            rop = Decimal(str(rop or 0))
            if rop <= 0:
                continue
            if stocked_only and stock_type != "STOCKED":
                continue
            qty = totals.get((product.id, variant.id if variant else None), ZERO)
            if qty > rop:
                continue
            items.append({
                "product_id": product.id,
                "variant_id": variant.id if variant else None,
                "sku": variant.sku if variant else product.sku,
                "name": f"{product.name} ({variant.name})" if variant and variant.name else product.name,
                "category": product.category.name if product.category else None,
                "current_qty": float(qty),
                "reorder_point": float(rop),
                "min_qty": float((variant or product).min_qty or 0),
                "max_qty": float((variant or product).max_qty or 0),
            })

    items.sort(key=lambda x: x["current_qty"])
    return items


async def get_expiring_lots(db: AsyncSession, days: int = 30) -> List[Dict[str, Any]]:
    """Lot ที่หมดอายุภายใน N วันข้างหน้าและยังมีของเหลือ"""
    now = datetime.utcnow()
    cutoff = now + timedelta(days=days)
    return await _lots_with_stock(db, Lot.expiry_date >= now, Lot.expiry_date <= cutoff)


async def get_expired_lots(db: AsyncSession) -> List[Dict[str, Any]]:
    return await _lots_with_stock(db, Lot.expiry_date < datetime.utcnow())


async def _lots_with_stock(db: AsyncSession, *conditions) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(Lot)
        .options(
            selectinload(Lot.product),
            selectinload(Lot.variant),
            selectinload(Lot.balances).selectinload(LotBalance.location),
        )
        .where(Lot.expiry_date.is_not(None), *conditions)
        .where(Lot.id.in_(select(LotBalance.lot_id).where(LotBalance.qty_on_hand > 0)))
        .order_by(Lot.expiry_date.asc())
    )
    now = datetime.utcnow()
    items = []
    for lot in result.scalars().all():
        balances = [b for b in lot.balances if (b.qty_on_hand or ZERO) > 0]
        # ปัดขึ้นเป็นจำนวนวันเต็ม
        seconds_left = (lot.expiry_date - now).total_seconds()
        days_left = int(-(-seconds_left // 86400))
        items.append({
            "id": lot.id,
            "lot_number": lot.lot_number,
            "product_id": lot.product_id,
            "product_sku": lot.product.sku if lot.product else "",
            "product_name": lot.product.name if lot.product else "",
            "variant_name": lot.variant.name if lot.variant else None,
            "expiry_date": lot.expiry_date,
            "days_until_expiry": days_left,
            "total_qty_on_hand": float(sum((b.qty_on_hand for b in balances), ZERO)),
            "balances": [
                {"location_id": b.location_id, "location_code": b.location.code, "qty": float(b.qty_on_hand)}
                for b in balances
            ],
        })
    return items


def _days_between(later: datetime, earlier: datetime) -> int:
    return int((later - earlier).total_seconds() // 86400)


async def get_pending_actions(db: AsyncSession) -> Dict[str, Any]:
    """สรุปเอกสารที่ค้างรอการดำเนินการ"""
    now = datetime.utcnow()
    actions: List[Dict[str, Any]] = []

    grns = (await db.execute(
        select(GRN)
        .options(selectinload(GRN.po).selectinload(PurchaseOrder.supplier))
        .where(GRN.status == "DRAFT")
        .order_by(GRN.created_at.asc())
    )).scalars().all()
    for grn in grns:
        days_old = _days_between(now, grn.created_at)
        actions.append({
            "id": grn.id,
            "type": "grn_draft",
            "doc_number": grn.grn_number,
            "title": f"GRN {grn.grn_number} รอบันทึกสต๊อค",
            "description": f"จาก {grn.po.supplier.name} - สร้างเมื่อ {days_old} วันที่แล้ว",
            "url": f"/grn/{grn.id}",
            "created_at": grn.created_at,
            "days_old": days_old,
        })

    approved_pos = (await db.execute(
        select(PurchaseOrder)
        .options(selectinload(PurchaseOrder.supplier))
        .where(PurchaseOrder.status == "APPROVED")
        .order_by(PurchaseOrder.created_at.asc())
    )).scalars().all()
    for po in approved_pos:
        actions.append({
            "id": po.id,
            "type": "po_approved",
            "doc_number": po.po_number,
            "title": f"PO {po.po_number} รอส่งให้ Supplier",
            "description": f"{po.supplier.name} - อนุมัติแล้ว รอส่ง",
            "url": f"/po/{po.id}",
            "created_at": po.created_at,
            "days_old": _days_between(now, po.created_at),
        })

    sent_pos = (await db.execute(
        select(PurchaseOrder)
        .options(selectinload(PurchaseOrder.supplier))
        .where(PurchaseOrder.status == "SENT")
        .order_by(PurchaseOrder.eta.asc())
    )).scalars().all()
    for po in sent_pos:
        overdue = _days_between(now, po.eta) if po.eta else 0
        description = po.supplier.name + (f" - เลย ETA {overdue} วัน" if overdue > 0 else "")
        actions.append({
            "id": po.id,
            "type": "po_sent",
            "doc_number": po.po_number,
            "title": f"PO {po.po_number} รอรับของ",
            "description": description,
            "url": f"/po/{po.id}",
            "created_at": po.created_at,
            "days_old": max(overdue, 0),
        })

    prs = (await db.execute(
        select(PurchaseRequisition)
        .options(selectinload(PurchaseRequisition.requester))
        .where(PurchaseRequisition.status == "SUBMITTED")
        .order_by(PurchaseRequisition.created_at.asc())
    )).scalars().all()
    for pr in prs:
        days_old = _days_between(now, pr.created_at)
        actions.append({
            "id": pr.id,
            "type": "pr_submitted",
            "doc_number": pr.pr_number,
            "title": f"PR {pr.pr_number} รออนุมัติ",
            "description": f"จาก {pr.requester.name} - รอ {days_old} วัน",
            "url": f"/pr/{pr.id}",
            "created_at": pr.created_at,
            "days_old": days_old,
        })

    movements = (await db.execute(
        select(StockMovement)
        .where(StockMovement.status.in_(["SUBMITTED", "APPROVED"]))
        .order_by(StockMovement.created_at.asc())
    )).scalars().all()
    for movement in movements:
        waiting = "รออนุมัติ" if movement.status == "SUBMITTED" else "รอบันทึก"
        actions.append({
            "id": movement.id,
            "type": "movement_submitted" if movement.status == "SUBMITTED" else "movement_approved",
            "doc_number": movement.doc_number,
            "title": f"{MOVEMENT_TYPE_LABELS.get(movement.type, movement.type)} {movement.doc_number} {waiting}",
            "description": movement.note or "",
            "url": f"/movements/{movement.id}",
            "created_at": movement.created_at,
            "days_old": _days_between(now, movement.created_at),
        })

    actions.sort(key=lambda a: a["created_at"])
    counts: Dict[str, int] = {}
    for action in actions:
        counts[action["type"]] = counts.get(action["type"], 0) + 1
    return {"total": len(actions), "counts": counts, "actions": actions}


async def send_low_stock_alert(db: AsyncSession) -> Dict[str, Any]:
    items = await get_low_stock_items(db)
    if not items:
        logger.info("📦 ไม่มีสินค้าต่ำกว่าจุดสั่งซื้อ")
        return {"items": 0, "sent": 0}

    recipients = await find_user_ids_by_roles(db, ALERT_ROLES)
    lines = [
        f"- {i['sku']} {i['name']}: คงเหลือ {fmt_qty(i['current_qty'])} (ROP {fmt_qty(i['reorder_point'])})"
        for i in items[:10]
    ]
    if len(items) > 10:
        lines.append(f"และอีก {len(items) - 10} รายการ")
    summary = await dispatch_notification(
        db, recipients, "lowStock",
        f"[แจ้งเตือน] สินค้าใกล้หมด {len(items)} รายการ",
        "\n".join(lines),
        "/reports/low-stock")
    logger.info(f"📦 แจ้งเตือนสินค้าใกล้หมด {len(items)} รายการ ถึง {len(recipients)} คน")
    return {"items": len(items), **summary}


async def send_expiring_alert(db: AsyncSession, days: int = 30) -> Dict[str, Any]:
    lots = await get_expiring_lots(db, days)
    if not lots:
        return {"items": 0, "sent": 0}

    recipients = await find_user_ids_by_roles(db, ALERT_ROLES)
    lines = [
        f"- Lot {lot['lot_number']} {lot['product_name']}: อีก {lot['days_until_expiry']} วัน "
        f"(คงเหลือ {fmt_qty(lot['total_qty_on_hand'])})"
        for lot in lots[:10]
    ]
    summary = await dispatch_notification(
        db, recipients, "expiring",
        f"[แจ้งเตือน] สินค้าใกล้หมดอายุ {len(lots)} Lot",
        "\n".join(lines),
        "/reports/expiring")
    return {"items": len(lots), **summary}


async def send_pending_actions_digest(db: AsyncSession) -> Dict[str, Any]:
    pending = await get_pending_actions(db)
    if not pending["total"]:
        return {"items": 0, "sent": 0}
    recipients = await find_user_ids_by_roles(db, ["ADMIN"])
    lines = [f"- {a['title']}" for a in pending["actions"][:15]]
    summary = await dispatch_notification(
        db, recipients, "pendingActions",
        f"งานค้าง {pending['total']} รายการ",
        "\n".join(lines),
        "/dashboard")
    return {"items": pending["total"], **summary}


async def cleanup_old_notifications(db: AsyncSession, days_old: int = 30) -> int:
    """ลบการแจ้งเตือนที่อ่านแล้วและเก่ากว่า N วัน"""
    cutoff = datetime.utcnow() - timedelta(days=days_old)
    result = await db.execute(
        delete(Notification).where(Notification.read.is_(True), Notification.created_at < cutoff)
    )
    return result.rowcount or 0
