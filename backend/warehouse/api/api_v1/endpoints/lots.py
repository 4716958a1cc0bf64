"""Lot / Batch สินค้า"""

from decimal import Decimal
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import ConflictError, NotFoundError, ValidationError
from warehouse.models.product import Product, ProductVariant
from warehouse.models.stock import Lot, LotBalance
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, PaginatedResult, ok, paginate
from warehouse.schemas.stock import LotCreate, LotResponse, LotBalanceResponse, ExpiringLotResponse
from warehouse.services.alerts import get_expiring_lots, get_expired_lots
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()


def base_lot_query():
    return select(Lot).options(
        selectinload(Lot.product),
        selectinload(Lot.variant),
        selectinload(Lot.balances).selectinload(LotBalance.location),
    )


def build_lot_response(lot: Lot) -> LotResponse:
    balances = [b for b in lot.balances if (b.qty_on_hand or 0) != 0]
    return LotResponse(
        id=lot.id,
        lot_number=lot.lot_number,
        product_id=lot.product_id,
        product_sku=lot.product.sku if lot.product else "",
        product_name=lot.product.name if lot.product else "",
        variant_id=lot.variant_id,
        variant_name=lot.variant.name if lot.variant else None,
        expiry_date=lot.expiry_date,
        manufactured_date=lot.manufactured_date,
        qty_received=float(lot.qty_received or 0),
        total_qty_on_hand=float(sum((b.qty_on_hand for b in balances), Decimal("0"))),
        note=lot.note,
        balances=[
            LotBalanceResponse(location_id=b.location_id, location_code=b.location.code, qty=float(b.qty_on_hand))
            for b in balances
        ],
        created_at=lot.created_at)


async def load_lot(db: AsyncSession, lot_id: int) -> Lot:
    result = await db.execute(
        base_lot_query().where(Lot.id == lot_id).execution_options(populate_existing=True)
    )
    lot = result.scalar_one_or_none()
    if not lot:
        raise NotFoundError("Lot")
    return lot


@router.get("/", response_model=ActionResult[PaginatedResult[LotResponse]])
async def list_lots(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = Query(None),
    product_id: Optional[int] = Query(None)) -> Any:
    conditions = []
    if search:
        conditions.append(or_(
            Lot.lot_number.ilike(f"%{search}%"),
            Product.sku.ilike(f"%{search}%"),
            Product.name.ilike(f"%{search}%"),
        ))
    if product_id:
        conditions.append(Lot.product_id == product_id)

    count_query = select(func.count(Lot.id)).select_from(Lot).join(Product, Product.id == Lot.product_id)
    query = base_lot_query().join(Product, Product.id == Lot.product_id)
    if conditions:
        count_query = count_query.where(and_(*conditions))
        query = query.where(and_(*conditions))
    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(Lot.expiry_date.is_(None), Lot.expiry_date, Lot.id)
    lots = (await db.execute(query.offset((page - 1) * limit).limit(limit))).scalars().all()
    return ok(paginate([build_lot_response(lot) for lot in lots], total, page, limit))


@router.get("/expiring", response_model=ActionResult[List[ExpiringLotResponse]])
async def expiring_lots(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    days: int = Query(30, ge=1, le=365)) -> Any:
    """Lot ที่จะหมดอายุภายใน N วันและยังมีของเหลือ"""
    return ok(await get_expiring_lots(db, days))


@router.get("/expired", response_model=ActionResult[List[ExpiringLotResponse]])
async def expired_lots(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read"))) -> Any:
    return ok(await get_expired_lots(db))


@router.get("/{lot_id}", response_model=ActionResult[LotResponse])
async def get_lot(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    lot_id: int) -> Any:
    return ok(build_lot_response(await load_lot(db, lot_id)))


@router.post("/", response_model=ActionResult[LotResponse])
async def create_lot(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    lot_in: LotCreate) -> Any:
    product = await db.get(Product, lot_in.product_id)
    if not product or product.deleted_at is not None:
        raise NotFoundError("สินค้า")
    if lot_in.variant_id:
        variant = await db.get(ProductVariant, lot_in.variant_id)
        if not variant or variant.product_id != product.id:
            raise ValidationError("variant ไม่ตรงกับสินค้า", "variant_id")
    if lot_in.expiry_date and lot_in.manufactured_date and lot_in.expiry_date < lot_in.manufactured_date:
        raise ValidationError("วันหมดอายุต้องไม่ก่อนวันผลิต", "expiry_date")

    existing = await db.execute(
        select(Lot.id).where(Lot.product_id == lot_in.product_id, Lot.lot_number == lot_in.lot_number.strip())
    )
    if existing.first():
        raise ConflictError("หมายเลข Lot นี้มีอยู่แล้วสำหรับสินค้านี้")

    data = lot_in.model_dump()
    data["lot_number"] = data["lot_number"].strip()
    lot = Lot(**data)
    db.add(lot)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "LOT", lot.id, lot_in.model_dump())
    await db.commit()
    return ok(build_lot_response(await load_lot(db, lot.id)))
