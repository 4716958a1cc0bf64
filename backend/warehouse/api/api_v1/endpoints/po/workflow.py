"""
ใบสั่งซื้อ - ขั้นตอนอนุมัติและส่ง

DRAFT/REJECTED → SUBMITTED → APPROVED → SENT → (รับสินค้าผ่าน GRN) → CLOSED
"""

import logging
from datetime import datetime
from typing import Any, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import BusinessError
from warehouse.models.purchase_order import PurchaseOrder
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, OptionalReasonInput, ReasonInput, ok
from warehouse.schemas.purchasing import PODetailResponse
from warehouse.services.notifications import dispatch_notification, find_user_ids_with_permission
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log
from warehouse.api.api_v1.endpoints.po.core import load_po, build_po_detail, add_timeline

logger = logging.getLogger(__name__)

router = APIRouter()


async def _finish(db: AsyncSession, po: PurchaseOrder, action: str, actor: User, data: Optional[dict] = None):
    await create_audit_log(db, actor.id, action, "PO", po.id, data)
    await db.commit()
    return ok(build_po_detail(await load_po(db, po.id)))


@router.post("/{po_id}/submit", response_model=ActionResult[PODetailResponse])
async def submit_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:write")),
    po_id: int) -> Any:
    po = await load_po(db, po_id)
    if po.status not in ("DRAFT", "REJECTED"):
        raise BusinessError("ไม่สามารถส่ง PO ที่ส่งอนุมัติหรือดำเนินการแล้วได้")
    if not po.lines:
        raise BusinessError("กรุณาเพิ่มรายการสินค้าก่อนส่ง")
    po.status = "SUBMITTED"
    add_timeline(po, "ส่งอนุมัติ", current_user.id)
    approver_ids = await find_user_ids_with_permission(db, "po:approve")
    await dispatch_notification(
        db, [uid for uid in approver_ids if uid != current_user.id], "poPending",
        f"PO {po.po_number} รออนุมัติ",
        f"PO {po.po_number} ({po.supplier.name}) ยอดรวม {po.total:,.2f} บาท รออนุมัติ",
        f"/po/{po.id}")
    return await _finish(db, po, "SUBMIT", current_user)


@router.post("/{po_id}/approve", response_model=ActionResult[PODetailResponse])
async def approve_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:approve")),
    po_id: int) -> Any:
    po = await load_po(db, po_id)
    if po.status != "SUBMITTED":
        raise BusinessError("ไม่สามารถอนุมัติ PO ที่ไม่ใช่สถานะรออนุมัติได้")
    po.status = "APPROVED"
    po.approved_by_id = current_user.id
    po.approved_at = datetime.utcnow()
    add_timeline(po, "อนุมัติ PO", current_user.id)
    await dispatch_notification(
        db, [po.created_by_id], "poApproved",
        f"PO {po.po_number} อนุมัติแล้ว",
        f"PO {po.po_number} ได้รับการอนุมัติโดย {current_user.name}",
        f"/po/{po.id}")
    return await _finish(db, po, "APPROVE", current_user)


@router.post("/{po_id}/reject", response_model=ActionResult[PODetailResponse])
async def reject_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:approve")),
    po_id: int,
    reject_in: ReasonInput) -> Any:
    po = await load_po(db, po_id)
    if po.status != "SUBMITTED":
        raise BusinessError("ไม่สามารถปฏิเสธ PO ที่ไม่ใช่สถานะรออนุมัติได้")
    po.status = "REJECTED"
    add_timeline(po, "ไม่อนุมัติ", current_user.id, reject_in.reason)
    await dispatch_notification(
        db, [po.created_by_id], "poRejected",
        f"PO {po.po_number} ไม่อนุมัติ",
        f"PO {po.po_number} ไม่ได้รับการอนุมัติ เหตุผล: {reject_in.reason}",
        f"/po/{po.id}")
    return await _finish(db, po, "REJECT", current_user, {"reason": reject_in.reason})


@router.post("/{po_id}/send", response_model=ActionResult[PODetailResponse])
async def send_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:write")),
    po_id: int) -> Any:
    po = await load_po(db, po_id)
    if po.status != "APPROVED":
        raise BusinessError("ส่งได้เฉพาะ PO ที่อนุมัติแล้วเท่านั้น")
    po.status = "SENT"
    po.sent_at = datetime.utcnow()
    add_timeline(po, "ส่ง PO ให้ Supplier", current_user.id)
    recipients = await find_user_ids_with_permission(db, "grn:write")
    await dispatch_notification(
        db, recipients + [po.created_by_id], "poSent",
        f"ส่ง PO {po.po_number} แล้ว",
        f"ส่ง PO {po.po_number} ให้ {po.supplier.name} แล้ว รอรับสินค้า",
        f"/po/{po.id}")
    return await _finish(db, po, "SEND", current_user)


@router.post("/{po_id}/cancel", response_model=ActionResult[PODetailResponse])
async def cancel_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:write")),
    po_id: int,
    cancel_in: Optional[OptionalReasonInput] = None) -> Any:
    po = await load_po(db, po_id)
    if any(grn.status != "CANCELLED" for grn in po.grns):
        raise BusinessError("ไม่สามารถยกเลิก PO ที่มีการรับสินค้าแล้ว")
    if po.status in ("CLOSED", "CANCELLED"):
        raise BusinessError("ไม่สามารถยกเลิก PO ที่ปิดหรือยกเลิกแล้ว")
    reason = cancel_in.reason if cancel_in else None
    po.status = "CANCELLED"
    add_timeline(po, "ยกเลิก PO", current_user.id, reason)
    await dispatch_notification(
        db, [po.created_by_id], "poCancelled",
        f"ยกเลิก PO {po.po_number}",
        f"PO {po.po_number} ถูกยกเลิก" + (f" เหตุผล: {reason}" if reason else ""),
        f"/po/{po.id}")
    return await _finish(db, po, "CANCEL", current_user, {"reason": reason})


@router.post("/{po_id}/close", response_model=ActionResult[PODetailResponse])
async def close_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:write")),
    po_id: int) -> Any:
    po = await load_po(db, po_id)
    if po.status not in ("FULLY_RECEIVED", "PARTIALLY_RECEIVED"):
        raise BusinessError("ปิดได้เฉพาะ PO ที่รับสินค้าแล้วเท่านั้น")
    po.status = "CLOSED"
    add_timeline(po, "ปิด PO", current_user.id)
    logger.info(f"📁 ปิด {po.po_number}")
    return await _finish(db, po, "CLOSE", current_user)
