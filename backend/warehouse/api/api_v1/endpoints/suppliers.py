"""ผู้จัดจำหน่าย"""

from datetime import datetime
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import ConflictError, NotFoundError
from warehouse.models.purchase_order import PurchaseOrder
from warehouse.models.supplier import Supplier
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, MessageData, ok
from warehouse.schemas.supplier import SupplierCreate, SupplierUpdate, SupplierResponse
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()

SUPPLIER_FIELDS = [
    "code", "name", "contact_name", "phone", "email", "address",
    "tax_id", "terms", "lead_time_days", "note",
]


async def _po_count(db: AsyncSession, supplier_id: int) -> int:
    result = await db.execute(
        select(func.count(PurchaseOrder.id)).where(PurchaseOrder.supplier_id == supplier_id)
    )
    return result.scalar() or 0


def build_supplier_response(supplier: Supplier, po_count: int = 0) -> SupplierResponse:
    return SupplierResponse(
        id=supplier.id,
        active=supplier.active,
        po_count=po_count,
        created_at=supplier.created_at,
        **{f: getattr(supplier, f) for f in SUPPLIER_FIELDS})


async def _ensure_unique_code(db: AsyncSession, code: str, exclude_id: Optional[int] = None) -> None:
    query = select(Supplier.id).where(Supplier.code == code)
    if exclude_id:
        query = query.where(Supplier.id != exclude_id)
    if (await db.execute(query)).first():
        raise ConflictError("รหัสผู้จัดจำหน่ายนี้มีอยู่แล้ว")


async def load_supplier(db: AsyncSession, supplier_id: int) -> Supplier:
    supplier = await db.get(Supplier, supplier_id)
    if not supplier or supplier.deleted_at is not None:
        raise NotFoundError("ผู้จัดจำหน่าย")
    return supplier


@router.get("/", response_model=ActionResult[List[SupplierResponse]])
async def list_suppliers(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("suppliers:read", "po:read")),
    search: Optional[str] = Query(None),
    include_inactive: bool = Query(False)) -> Any:
    """ผู้จัดจำหน่ายที่ใช้งานอยู่ พร้อมจำนวน PO"""
    po_counts = (
        select(PurchaseOrder.supplier_id, func.count(PurchaseOrder.id).label("po_count"))
        .group_by(PurchaseOrder.supplier_id)
        .subquery()
    )
    query = (
        select(Supplier, func.coalesce(po_counts.c.po_count, 0))
        .outerjoin(po_counts, po_counts.c.supplier_id == Supplier.id)
        .where(Supplier.deleted_at.is_(None))
    )
    if not include_inactive:
        query = query.where(Supplier.active.is_(True))
    if search:
        query = query.where(or_(Supplier.code.ilike(f"%{search}%"), Supplier.name.ilike(f"%{search}%")))
    rows = (await db.execute(query.order_by(Supplier.name))).all()
    return ok([build_supplier_response(s, count) for s, count in rows])


@router.get("/{supplier_id}", response_model=ActionResult[SupplierResponse])
async def get_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("suppliers:read", "po:read")),
    supplier_id: int) -> Any:
    supplier = await load_supplier(db, supplier_id)
    return ok(build_supplier_response(supplier, await _po_count(db, supplier_id)))


@router.post("/", response_model=ActionResult[SupplierResponse])
async def create_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("suppliers:write")),
    supplier_in: SupplierCreate) -> Any:
    await _ensure_unique_code(db, supplier_in.code)
    supplier = Supplier(**supplier_in.model_dump())
    db.add(supplier)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "SUPPLIER", supplier.id, supplier_in.model_dump())
    await db.commit()
    await db.refresh(supplier)
    return ok(build_supplier_response(supplier))


@router.put("/{supplier_id}", response_model=ActionResult[SupplierResponse])
async def update_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("suppliers:write")),
    supplier_id: int,
    supplier_in: SupplierUpdate) -> Any:
    supplier = await load_supplier(db, supplier_id)
    data = supplier_in.model_dump(exclude_unset=True)
    if data.get("code") and data["code"] != supplier.code:
        await _ensure_unique_code(db, data["code"], supplier_id)
    for field, value in data.items():
        setattr(supplier, field, value)
    await create_audit_log(db, current_user.id, "UPDATE", "SUPPLIER", supplier.id, data)
    await db.commit()
    await db.refresh(supplier)
    return ok(build_supplier_response(supplier, await _po_count(db, supplier_id)))


@router.post("/{supplier_id}/toggle-active", response_model=ActionResult[SupplierResponse])
async def toggle_supplier_active(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("suppliers:write")),
    supplier_id: int) -> Any:
    supplier = await load_supplier(db, supplier_id)
    supplier.active = not supplier.active
    await create_audit_log(db, current_user.id, "UPDATE", "SUPPLIER", supplier.id, {"active": supplier.active})
    await db.commit()
    await db.refresh(supplier)
    return ok(build_supplier_response(supplier, await _po_count(db, supplier_id)))


@router.delete("/{supplier_id}", response_model=ActionResult[MessageData])
async def delete_supplier(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("suppliers:write")),
    supplier_id: int) -> Any:
    """มี PO อ้างอิงจะลบแบบ soft delete ไม่เช่นนั้นลบจริง"""
    supplier = await load_supplier(db, supplier_id)
    if await _po_count(db, supplier_id):
        supplier.active = False
        supplier.deleted_at = datetime.utcnow()
    else:
        await db.delete(supplier)
    await create_audit_log(db, current_user.id, "DELETE", "SUPPLIER", supplier_id, {"code": supplier.code})
    await db.commit()
    return ok(MessageData(message="ลบผู้จัดจำหน่ายเรียบร้อย"))
