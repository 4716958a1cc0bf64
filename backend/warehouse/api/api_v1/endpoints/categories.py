"""หมวดหมู่สินค้าและหน่วยนับ"""

from datetime import datetime
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import ConflictError, BusinessError, NotFoundError
from warehouse.models.category import Category, Unit
from warehouse.models.product import Product
from warehouse.models.user import User
from warehouse.schemas.category import (
    CategoryCreate, CategoryUpdate, CategoryResponse, UnitCreate, UnitResponse
)
from warehouse.schemas.common import ActionResult, MessageData, ok
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()
units_router = APIRouter()


async def _count_active_products(db: AsyncSession, category_id: int) -> int:
    result = await db.execute(
        select(func.count(Product.id)).where(
            Product.category_id == category_id,
            Product.active.is_(True),
            Product.deleted_at.is_(None),
        )
    )
    return result.scalar() or 0


async def _build_response(db: AsyncSession, cat: Category) -> CategoryResponse:
    return CategoryResponse(
        id=cat.id,
        name=cat.name,
        description=cat.description,
        active=cat.active,
        products_count=await _count_active_products(db, cat.id),
        created_at=cat.created_at)


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> None:
    query = select(Category.id).where(func.lower(Category.name) == name.strip().lower())
    if exclude_id:
        query = query.where(Category.id != exclude_id)
    if (await db.execute(query)).first():
        raise ConflictError("ชื่อหมวดหมู่นี้มีอยู่แล้ว")


async def load_category(db: AsyncSession, category_id: int) -> Category:
    cat = await db.get(Category, category_id)
    if not cat or cat.deleted_at is not None:
        raise NotFoundError("หมวดหมู่")
    return cat


@router.get("/", response_model=ActionResult[List[CategoryResponse]])
async def list_categories(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None)) -> Any:
    query = select(Category).where(Category.deleted_at.is_(None))
    if active is not None:
        query = query.where(Category.active == active)
    if search:
        query = query.where(Category.name.ilike(f"%{search}%"))
    categories = (await db.execute(query.order_by(Category.name))).scalars().all()
    return ok([await _build_response(db, c) for c in categories])


@router.get("/{category_id}", response_model=ActionResult[CategoryResponse])
async def get_category(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    category_id: int) -> Any:
    cat = await load_category(db, category_id)
    return ok(await _build_response(db, cat))


@router.post("/", response_model=ActionResult[CategoryResponse])
async def create_category(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    cat_in: CategoryCreate) -> Any:
    await _ensure_unique_name(db, cat_in.name)
    cat = Category(name=cat_in.name.strip(), description=cat_in.description)
    db.add(cat)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "CATEGORY", cat.id, cat_in.model_dump())
    await db.commit()
    await db.refresh(cat)
    return ok(await _build_response(db, cat))


@router.put("/{category_id}", response_model=ActionResult[CategoryResponse])
async def update_category(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    category_id: int,
    cat_in: CategoryUpdate) -> Any:
    cat = await load_category(db, category_id)
    data = cat_in.model_dump(exclude_unset=True)
    if data.get("name"):
        await _ensure_unique_name(db, data["name"], category_id)
        data["name"] = data["name"].strip()
    for field, value in data.items():
        setattr(cat, field, value)
    await create_audit_log(db, current_user.id, "UPDATE", "CATEGORY", cat.id, data)
    await db.commit()
    await db.refresh(cat)
    return ok(await _build_response(db, cat))


@router.delete("/{category_id}", response_model=ActionResult[MessageData])
async def delete_category(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    category_id: int) -> Any:
    """ลบแบบ soft delete ได้เมื่อไม่มีสินค้าที่ใช้งานอยู่"""
    cat = await load_category(db, category_id)
    if await _count_active_products(db, category_id):
        raise BusinessError("ไม่สามารถลบหมวดหมู่ที่มีสินค้าอยู่ได้")
    cat.active = False
    cat.deleted_at = datetime.utcnow()
    await create_audit_log(db, current_user.id, "DELETE", "CATEGORY", cat.id, {"name": cat.name})
    await db.commit()
    return ok(MessageData(message="ลบหมวดหมู่เรียบร้อย"))


# ========== หน่วยนับ ==========

@units_router.get("/", response_model=ActionResult[List[UnitResponse]])
async def list_units(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read"))) -> Any:
    units = (await db.execute(select(Unit).order_by(Unit.code))).scalars().all()
    return ok([UnitResponse.model_validate(u) for u in units])


@units_router.post("/", response_model=ActionResult[UnitResponse])
async def create_unit(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    unit_in: UnitCreate) -> Any:
    code = unit_in.code.strip().upper()
    if (await db.execute(select(Unit.id).where(Unit.code == code))).first():
        raise ConflictError("รหัสหน่วยนี้มีอยู่แล้ว")
    unit = Unit(code=code, name=unit_in.name.strip())
    db.add(unit)
    await db.commit()
    await db.refresh(unit)
    return ok(UnitResponse.model_validate(unit))
