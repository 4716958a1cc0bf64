"""ยอดคงเหลือสต๊อค"""

from decimal import Decimal
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_, and_, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import NotFoundError
from warehouse.models.product import Product, ProductVariant
from warehouse.models.stock import StockBalance
from warehouse.models.user import User
from warehouse.models.warehouse import Location
from warehouse.schemas.common import ActionResult, PaginatedResult, ok, paginate
from warehouse.schemas.stock import StockBalanceResponse, StockSummary, LowStockItem
from warehouse.services.alerts import get_low_stock_items

router = APIRouter()


def effective_reorder_point():
    """ROP ของ variant เมื่อเป็นยอดของ variant ไม่เช่นนั้นใช้ของสินค้า"""
    return case(
        (StockBalance.variant_id.is_not(None), func.coalesce(ProductVariant.reorder_point, 0)),
        else_=func.coalesce(Product.reorder_point, 0),
    )


def base_balance_query():
    return (
        select(StockBalance)
        .join(Product, Product.id == StockBalance.product_id)
        .outerjoin(ProductVariant, ProductVariant.id == StockBalance.variant_id)
        .join(Location, Location.id == StockBalance.location_id)
        .options(
            selectinload(StockBalance.product).selectinload(Product.category),
            selectinload(StockBalance.variant),
            selectinload(StockBalance.location).selectinload(Location.warehouse),
        )
    )


def unit_cost_of(balance: StockBalance) -> Decimal:
    if balance.variant is not None and balance.variant.last_cost:
        return balance.variant.last_cost
    return balance.product.last_cost or Decimal("0")


def build_balance_response(balance: StockBalance) -> StockBalanceResponse:
    qty = balance.qty_on_hand or Decimal("0")
    cost = unit_cost_of(balance)
    product = balance.product
    variant = balance.variant
    location = balance.location
    return StockBalanceResponse(
        id=balance.id,
        product_id=product.id,
        product_sku=product.sku,
        product_name=product.name,
        variant_id=variant.id if variant else None,
        variant_sku=variant.sku if variant else None,
        variant_name=variant.name if variant else None,
        category_name=product.category.name if product.category else None,
        location_id=location.id,
        location_code=location.code,
        location_name=location.name,
        warehouse_id=location.warehouse_id,
        warehouse_name=location.warehouse.name if location.warehouse else "",
        qty_on_hand=float(qty),
        reorder_point=float(balance.reorder_point),
        is_low_stock=balance.is_low_stock,
        unit_cost=float(cost),
        value=float(qty * cost))


@router.get("/", response_model=ActionResult[PaginatedResult[StockBalanceResponse]])
async def list_stock(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = Query(None),
    location_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    category_id: Optional[int] = Query(None),
    low_stock_only: bool = Query(False)) -> Any:
    conditions = [Product.deleted_at.is_(None)]
    if search:
        conditions.append(or_(
            Product.sku.ilike(f"%{search}%"),
            Product.name.ilike(f"%{search}%"),
            ProductVariant.sku.ilike(f"%{search}%"),
            ProductVariant.name.ilike(f"%{search}%"),
        ))
    if location_id:
        conditions.append(StockBalance.location_id == location_id)
    if warehouse_id:
        conditions.append(Location.warehouse_id == warehouse_id)
    if category_id:
        conditions.append(Product.category_id == category_id)
    if low_stock_only:
        rop = effective_reorder_point()
        conditions.append(and_(rop > 0, StockBalance.qty_on_hand <= rop))

    count_query = (
        select(func.count(StockBalance.id))
        .select_from(StockBalance)
        .join(Product, Product.id == StockBalance.product_id)
        .outerjoin(ProductVariant, ProductVariant.id == StockBalance.variant_id)
        .join(Location, Location.id == StockBalance.location_id)
        .where(and_(*conditions))
    )
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        base_balance_query()
        .where(and_(*conditions))
        .order_by(Product.sku, StockBalance.variant_id, Location.code)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    balances = (await db.execute(query)).scalars().all()
    return ok(paginate([build_balance_response(b) for b in balances], total, page, limit))


@router.get("/summary", response_model=ActionResult[StockSummary])
async def stock_summary(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read"))) -> Any:
    """จำนวนสินค้า ยอดรวม มูลค่ารวม (จำนวน × ต้นทุนล่าสุด) และจำนวนสินค้าใกล้หมด"""
    total_products = (await db.execute(
        select(func.count(Product.id)).where(Product.active.is_(True), Product.deleted_at.is_(None))
    )).scalar() or 0

    balances = (await db.execute(
        base_balance_query().where(Product.deleted_at.is_(None))
    )).scalars().all()
    total_qty = sum((b.qty_on_hand or Decimal("0") for b in balances), Decimal("0"))
    total_value = sum(((b.qty_on_hand or Decimal("0")) * unit_cost_of(b) for b in balances), Decimal("0"))
    low_stock = await get_low_stock_items(db, stocked_only=False)

    return ok(StockSummary(
        total_products=total_products,
        total_qty=float(total_qty),
        total_value=float(total_value),
        low_stock_count=len(low_stock)))


@router.get("/low-stock", response_model=ActionResult[List[LowStockItem]])
async def low_stock(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    category_id: Optional[int] = Query(None)) -> Any:
    return ok(await get_low_stock_items(db, stocked_only=False, category_id=category_id))


@router.get("/balance", response_model=ActionResult[StockBalanceResponse])
async def get_stock_balance(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    product_id: int = Query(...),
    location_id: int = Query(...),
    variant_id: Optional[int] = Query(None)) -> Any:
    """ยอดคงเหลือของ (สินค้า, variant, ตำแหน่ง)"""
    query = base_balance_query().where(
        StockBalance.product_id == product_id,
        StockBalance.location_id == location_id,
        StockBalance.variant_id == variant_id if variant_id else StockBalance.variant_id.is_(None),
    )
    balance = (await db.execute(query)).scalar_one_or_none()
    if not balance:
        raise NotFoundError("ยอดคงเหลือ")
    return ok(build_balance_response(balance))


@router.get("/product/{product_id}", response_model=ActionResult[List[StockBalanceResponse]])
async def stock_by_product(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    product_id: int) -> Any:
    query = base_balance_query().where(StockBalance.product_id == product_id).order_by(Location.code)
    balances = (await db.execute(query)).scalars().all()
    return ok([build_balance_response(b) for b in balances])


@router.get("/location/{location_id}", response_model=ActionResult[List[StockBalanceResponse]])
async def stock_by_location(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    location_id: int) -> Any:
    query = (
        base_balance_query()
        .where(StockBalance.location_id == location_id, StockBalance.qty_on_hand != 0)
        .order_by(Product.sku)
    )
    balances = (await db.execute(query)).scalars().all()
    return ok([build_balance_response(b) for b in balances])
