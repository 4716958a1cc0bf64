"""ใบขอซื้อ (PR)"""

import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import BusinessError, NotFoundError, PermissionDeniedError, ValidationError
from warehouse.models.product import Product, ProductVariant
from warehouse.models.purchase_requisition import PurchaseRequisition, PRLine
from warehouse.models.stock import StockBalance
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, OptionalReasonInput, PaginatedResult, ReasonInput, ok, paginate
from warehouse.schemas.purchasing import (
    PRCreate, PRUpdate, PRResponse, PRDetailResponse, PRLineInput, PRLineResponse,
    AutoPRCreate, LowStockSuggestion
)
from warehouse.services.doc_numbers import generate_doc_number
from warehouse.services.notifications import dispatch_notification, find_user_ids_by_roles
from warehouse.services.stock_ledger import fmt_qty
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

logger = logging.getLogger(__name__)

router = APIRouter()

ZERO = Decimal("0")
PR_APPROVER_ROLES = ["ADMIN", "APPROVER"]


def base_pr_query():
    return select(PurchaseRequisition).options(
        selectinload(PurchaseRequisition.requester),
        selectinload(PurchaseRequisition.approver),
        selectinload(PurchaseRequisition.pos),
        selectinload(PurchaseRequisition.lines).selectinload(PRLine.product),
        selectinload(PurchaseRequisition.lines).selectinload(PRLine.variant),
    )


async def load_pr(db: AsyncSession, pr_id: int) -> PurchaseRequisition:
    result = await db.execute(
        base_pr_query()
        .where(PurchaseRequisition.id == pr_id)
        .execution_options(populate_existing=True)
    )
    pr = result.scalar_one_or_none()
    if not pr:
        raise NotFoundError("PR")
    return pr


def build_pr_response(pr: PurchaseRequisition) -> PRResponse:
    return PRResponse(
        id=pr.id,
        pr_number=pr.pr_number,
        status=pr.status,
        status_display=pr.status_display,
        priority=pr.priority,
        priority_display=pr.priority_display,
        need_by_date=pr.need_by_date,
        note=pr.note,
        requester_id=pr.requester_id,
        requester_name=pr.requester.name if pr.requester else "",
        approver_id=pr.approver_id,
        approver_name=pr.approver.name if pr.approver else None,
        approved_at=pr.approved_at,
        rejected_reason=pr.rejected_reason,
        line_count=len(pr.lines),
        created_at=pr.created_at)


def build_pr_detail(pr: PurchaseRequisition) -> PRDetailResponse:
    return PRDetailResponse(
        **build_pr_response(pr).model_dump(),
        lines=[
            PRLineResponse(
                id=line.id,
                product_id=line.product_id,
                product_sku=line.product.sku,
                product_name=line.product.name,
                variant_id=line.variant_id,
                variant_name=line.variant.name if line.variant else None,
                qty=float(line.qty),
                note=line.note)
            for line in pr.lines
        ],
        po_ids=[po.id for po in pr.pos])


async def build_pr_lines(db: AsyncSession, lines: Sequence[PRLineInput]) -> List[PRLine]:
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
        PRLine(product_id=line.product_id, variant_id=line.variant_id, qty=line.qty, note=line.note)
        for line in lines
    ]


async def get_reorder_suggestions(db: AsyncSession, product_ids: Optional[List[int]] = None) -> List[LowStockSuggestion]:
    """
    สินค้าที่ยอดรวมทุกตำแหน่ง ≤ ROP

    จำนวนแนะนำ = ceil(max((max_qty หรือ rop*3) - คงเหลือ, min_qty หรือ rop))
    """
    stock_sub = (
        select(
            StockBalance.product_id.label("product_id"),
            func.sum(StockBalance.qty_on_hand).label("qty"),
        )
        .group_by(StockBalance.product_id)
        .subquery()
    )
    query = (
        select(Product, func.coalesce(stock_sub.c.qty, 0))
        .outerjoin(stock_sub, stock_sub.c.product_id == Product.id)
        .where(
            Product.active.is_(True),
            Product.deleted_at.is_(None),
            Product.reorder_point > 0,
        )
    )
    if product_ids is not None:
        query = query.where(Product.id.in_(product_ids))

    suggestions = []
    for product, qty in (await db.execute(query)).all():
        current = Decimal(str(qty or 0))
        rop = Decimal(str(product.reorder_point or 0))
        if current > rop:
            continue
        max_qty = Decimal(str(product.max_qty or 0))
        min_qty = Decimal(str(product.min_qty or 0))
        target = max_qty if max_qty > 0 else rop * 3
        floor = min_qty if min_qty > 0 else rop
        suggestions.append(LowStockSuggestion(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            current_qty=float(current),
            reorder_point=float(rop),
            min_qty=float(min_qty),
            max_qty=float(max_qty),
            suggested_qty=math.ceil(max(target - current, floor))))
    suggestions.sort(key=lambda s: s.current_qty)
    return suggestions


@router.get("/", response_model=ActionResult[PaginatedResult[PRResponse]])
async def list_prs(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:read")),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="ค้นหาเลขที่ PR / หมายเหตุ")) -> Any:
    conditions = []
    if status:
        conditions.append(PurchaseRequisition.status == status)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            PurchaseRequisition.pr_number.ilike(pattern),
            PurchaseRequisition.note.ilike(pattern),
        ))
    total = await db.scalar(select(func.count(PurchaseRequisition.id)).where(*conditions))
    result = await db.execute(
        base_pr_query()
        .where(*conditions)
        .order_by(PurchaseRequisition.created_at.desc(), PurchaseRequisition.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [build_pr_response(pr) for pr in result.scalars().all()]
    return ok(paginate(items, total or 0, page, limit))


@router.get("/low-stock-suggestions", response_model=ActionResult[List[LowStockSuggestion]])
async def list_low_stock_suggestions(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:read"))) -> Any:
    return ok(await get_reorder_suggestions(db))


@router.post("/auto", response_model=ActionResult[PRDetailResponse])
async def create_auto_pr(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:write")),
    auto_in: AutoPRCreate) -> Any:
    """สร้าง PR จากสินค้าใกล้หมดที่เลือก"""
    if not auto_in.product_ids:
        raise ValidationError("กรุณาเลือกสินค้า", "product_ids")
    suggestions = await get_reorder_suggestions(db, auto_in.product_ids)
    if not suggestions:
        raise BusinessError("ไม่พบสินค้าที่ต้องสั่งซื้อ")

    pr = PurchaseRequisition(
        pr_number=await generate_doc_number(db, "PR"),
        status="DRAFT",
        priority="HIGH",
        note="Auto-generated PR จากระบบแจ้งเตือนสินค้าใกล้หมด",
        requester_id=current_user.id,
        lines=[
            PRLine(
                product_id=s.product_id,
                qty=Decimal(str(s.suggested_qty)),
                note=f"คงเหลือ: {fmt_qty(s.current_qty)}, ROP: {fmt_qty(s.reorder_point)}")
            for s in suggestions
        ])
    db.add(pr)
    await db.flush()
    await create_audit_log(db, current_user.id, "AUTO_CREATE", "PR", pr.id,
                           {"pr_number": pr.pr_number, "product_ids": [s.product_id for s in suggestions]})
    await db.commit()
    logger.info(f"🛒 สร้าง PR อัตโนมัติ {pr.pr_number} ({len(suggestions)} รายการ)")
    return ok(build_pr_detail(await load_pr(db, pr.id)))


@router.get("/{pr_id}", response_model=ActionResult[PRDetailResponse])
async def get_pr(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:read")),
    pr_id: int) -> Any:
    return ok(build_pr_detail(await load_pr(db, pr_id)))


@router.post("/", response_model=ActionResult[PRDetailResponse])
async def create_pr(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:write")),
    pr_in: PRCreate) -> Any:
    lines = await build_pr_lines(db, pr_in.lines)
    pr = PurchaseRequisition(
        pr_number=await generate_doc_number(db, "PR"),
        status="DRAFT",
        priority=pr_in.priority,
        need_by_date=pr_in.need_by_date,
        note=pr_in.note,
        requester_id=current_user.id,
        lines=lines)
    db.add(pr)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "PR", pr.id, pr_in.model_dump())
    await db.commit()
    return ok(build_pr_detail(await load_pr(db, pr.id)))


@router.put("/{pr_id}", response_model=ActionResult[PRDetailResponse])
async def update_pr(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:write")),
    pr_id: int,
    pr_in: PRUpdate) -> Any:
    pr = await load_pr(db, pr_id)
    if pr.status not in ("DRAFT", "REJECTED"):
        raise BusinessError("ไม่สามารถแก้ไข PR ที่ไม่ใช่สถานะร่างได้")
    if pr.requester_id != current_user.id and not current_user.is_admin:
        raise PermissionDeniedError("คุณไม่มีสิทธิ์แก้ไข PR นี้")

    old_data = build_pr_response(pr).model_dump()
    pr.lines = await build_pr_lines(db, pr_in.lines)
    pr.priority = pr_in.priority
    pr.need_by_date = pr_in.need_by_date
    pr.note = pr_in.note
    await db.flush()
    await create_audit_log(db, current_user.id, "UPDATE", "PR", pr.id, pr_in.model_dump(), old_data)
    await db.commit()
    return ok(build_pr_detail(await load_pr(db, pr_id)))


@router.post("/{pr_id}/submit", response_model=ActionResult[PRDetailResponse])
async def submit_pr(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:write")),
    pr_id: int) -> Any:
    pr = await load_pr(db, pr_id)
    if pr.status not in ("DRAFT", "REJECTED"):
        raise BusinessError("ไม่สามารถส่ง PR ที่ส่งอนุมัติหรือดำเนินการแล้วได้")
    if not pr.lines:
        raise BusinessError("กรุณาเพิ่มรายการสินค้าก่อนส่ง")
    pr.status = "SUBMITTED"
    pr.rejected_reason = None
    await create_audit_log(db, current_user.id, "SUBMIT", "PR", pr.id)
    approver_ids = await find_user_ids_by_roles(db, PR_APPROVER_ROLES)
    await dispatch_notification(
        db, [uid for uid in approver_ids if uid != current_user.id], "prPending",
        f"PR {pr.pr_number} รออนุมัติ",
        f"{current_user.name} ส่ง PR {pr.pr_number} จำนวน {len(pr.lines)} รายการ รออนุมัติ",
        f"/pr/{pr.id}")
    await db.commit()
    return ok(build_pr_detail(await load_pr(db, pr_id)))


@router.post("/{pr_id}/approve", response_model=ActionResult[PRDetailResponse])
async def approve_pr(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:approve")),
    pr_id: int) -> Any:
    pr = await load_pr(db, pr_id)
    if pr.status != "SUBMITTED":
        raise BusinessError("ไม่สามารถอนุมัติ PR ที่ไม่ใช่สถานะรออนุมัติได้")
    pr.status = "APPROVED"
    pr.approver_id = current_user.id
    pr.approved_at = datetime.utcnow()
    await create_audit_log(db, current_user.id, "APPROVE", "PR", pr.id)
    await dispatch_notification(
        db, [pr.requester_id], "prApproved",
        f"PR {pr.pr_number} อนุมัติแล้ว",
        f"PR {pr.pr_number} ได้รับการอนุมัติโดย {current_user.name}",
        f"/pr/{pr.id}")
    await db.commit()
    return ok(build_pr_detail(await load_pr(db, pr_id)))


@router.post("/{pr_id}/reject", response_model=ActionResult[PRDetailResponse])
async def reject_pr(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:approve")),
    pr_id: int,
    reject_in: ReasonInput) -> Any:
    pr = await load_pr(db, pr_id)
    if pr.status != "SUBMITTED":
        raise BusinessError("ไม่สามารถปฏิเสธ PR ที่ไม่ใช่สถานะรออนุมัติได้")
    pr.status = "REJECTED"
    pr.rejected_reason = reject_in.reason
    await create_audit_log(db, current_user.id, "REJECT", "PR", pr.id, {"reason": reject_in.reason})
    await dispatch_notification(
        db, [pr.requester_id], "prRejected",
        f"PR {pr.pr_number} ไม่อนุมัติ",
        f"PR {pr.pr_number} ไม่ได้รับการอนุมัติ เหตุผล: {reject_in.reason}",
        f"/pr/{pr.id}")
    await db.commit()
    return ok(build_pr_detail(await load_pr(db, pr_id)))


@router.post("/{pr_id}/cancel", response_model=ActionResult[PRDetailResponse])
async def cancel_pr(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("pr:write")),
    pr_id: int,
    cancel_in: Optional[OptionalReasonInput] = None) -> Any:
    pr = await load_pr(db, pr_id)
    if pr.status not in ("DRAFT", "SUBMITTED", "REJECTED"):
        raise BusinessError("ไม่สามารถยกเลิก PR ในสถานะนี้ได้")
    pr.status = "CANCELLED"
    reason = cancel_in.reason if cancel_in else None
    if reason:
        pr.note = f"{pr.note or ''}\n[ยกเลิก] {reason}".lstrip("\n")
    await create_audit_log(db, current_user.id, "CANCEL", "PR", pr.id, {"reason": reason})
    await db.commit()
    return ok(build_pr_detail(await load_pr(db, pr_id)))
