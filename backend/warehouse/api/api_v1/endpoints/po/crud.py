"""ใบสั่งซื้อ - รายการ / สร้าง / แก้ไข"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import BusinessError, NotFoundError
from warehouse.models.purchase_order import PurchaseOrder
from warehouse.models.purchase_requisition import PurchaseRequisition
from warehouse.models.supplier import Supplier
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, PaginatedResult, ok, paginate
from warehouse.schemas.purchasing import (
    POCreate, POUpdate, POResponse, PODetailResponse, POTotals
)
from warehouse.services.doc_numbers import generate_doc_number
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log
from warehouse.api.api_v1.endpoints.po.core import (
    base_po_query, load_po, build_po_response, build_po_detail, build_po_lines,
    add_timeline, apply_totals, calculate_po_totals, totals_response
)

router = APIRouter()


async def get_active_supplier(db: AsyncSession, supplier_id: int) -> Supplier:
    supplier = await db.get(Supplier, supplier_id)
    if not supplier or supplier.deleted_at is not None:
        raise NotFoundError("ผู้จัดจำหน่าย")
    if not supplier.active:
        raise BusinessError("ผู้จัดจำหน่ายนี้ถูกปิดใช้งาน")
    return supplier


@router.get("/", response_model=ActionResult[PaginatedResult[POResponse]])
async def list_pos(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:read")),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    status: Optional[str] = Query(None),
    supplier_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="ค้นหาเลขที่ PO")) -> Any:
    conditions = []
    if status:
        conditions.append(PurchaseOrder.status == status)
    if supplier_id:
        conditions.append(PurchaseOrder.supplier_id == supplier_id)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            PurchaseOrder.po_number.ilike(pattern),
            PurchaseOrder.note.ilike(pattern),
        ))
    total = await db.scalar(select(func.count(PurchaseOrder.id)).where(*conditions))
    result = await db.execute(
        base_po_query()
        .where(*conditions)
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [build_po_response(po) for po in result.scalars().all()]
    return ok(paginate(items, total or 0, page, limit))


@router.post("/calculate", response_model=ActionResult[POTotals])
async def calculate_totals(
    *,
    current_user: User = Depends(require_permission("po:read")),
    po_in: POCreate) -> Any:
    """คำนวณยอดโดยไม่บันทึก"""
    return ok(totals_response(calculate_po_totals(po_in.lines, po_in.vat_type, po_in.vat_rate)))


@router.get("/{po_id}", response_model=ActionResult[PODetailResponse])
async def get_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:read")),
    po_id: int) -> Any:
    return ok(build_po_detail(await load_po(db, po_id)))


@router.post("/", response_model=ActionResult[PODetailResponse])
async def create_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:write")),
    po_in: POCreate) -> Any:
    await get_active_supplier(db, po_in.supplier_id)
    lines = await build_po_lines(db, po_in.lines)

    pr = None
    if po_in.pr_id:
        pr = await db.get(PurchaseRequisition, po_in.pr_id)
        if not pr:
            raise NotFoundError("PR")
        if pr.status != "APPROVED":
            raise BusinessError("PR ต้องได้รับการอนุมัติก่อน")

    po = PurchaseOrder(
        po_number=await generate_doc_number(db, "PO"),
        status="DRAFT",
        supplier_id=po_in.supplier_id,
        pr_id=po_in.pr_id,
        vat_type=po_in.vat_type,
        vat_rate=po_in.vat_rate,
        eta=po_in.eta,
        terms=po_in.terms,
        note=po_in.note,
        created_by_id=current_user.id,
        lines=lines,
        timelines=[])
    apply_totals(po)
    add_timeline(po, "สร้าง PO", current_user.id, f"จาก PR {pr.pr_number}" if pr else None)
    db.add(po)
    if pr:
        pr.status = "CONVERTED"
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "PO", po.id, po_in.model_dump())
    if pr:
        await create_audit_log(db, current_user.id, "CONVERT", "PR", pr.id, {"po_number": po.po_number})
    await db.commit()
    return ok(build_po_detail(await load_po(db, po.id)))


@router.put("/{po_id}", response_model=ActionResult[PODetailResponse])
async def update_po(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("po:write")),
    po_id: int,
    po_in: POUpdate) -> Any:
    po = await load_po(db, po_id)
    if po.status not in ("DRAFT", "REJECTED"):
        raise BusinessError("ไม่สามารถแก้ไข PO ที่ไม่ใช่สถานะร่างหรือถูกปฏิเสธได้")

    old_data = build_po_response(po).model_dump()
    data = po_in.model_dump(exclude_unset=True, exclude={"lines"})
    if data.get("supplier_id") and data["supplier_id"] != po.supplier_id:
        await get_active_supplier(db, data["supplier_id"])
    for field, value in data.items():
        if field in ("supplier_id", "vat_type", "vat_rate") and value is None:
            continue
        setattr(po, field, value)
    if po_in.lines is not None:
        po.lines = await build_po_lines(db, po_in.lines)

    apply_totals(po)
    add_timeline(po, "แก้ไข PO", current_user.id)
    await db.flush()
    await create_audit_log(db, current_user.id, "UPDATE", "PO", po.id,
                           po_in.model_dump(exclude_unset=True), old_data)
    await db.commit()
    return ok(build_po_detail(await load_po(db, po_id)))
