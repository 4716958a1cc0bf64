"""สินค้า"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import ConflictError, NotFoundError
from warehouse.models.product import Product, ProductVariant
from warehouse.models.stock import StockBalance
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, MessageData, PaginatedResult, ok, paginate
from warehouse.schemas.product import (
    ProductCreate, ProductUpdate, ProductResponse, ProductDetailResponse,
    VariantBrief, BalanceBrief, BarcodeLookupResponse
)
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()


def base_product_query():
    return select(Product).options(
        selectinload(Product.category),
        selectinload(Product.unit),
    )


async def get_stock_totals(db: AsyncSession, product_ids) -> Dict[int, Decimal]:
    """ยอดรวมทุกตำแหน่งต่อสินค้า"""
    if not product_ids:
        return {}
    result = await db.execute(
        select(StockBalance.product_id, func.sum(StockBalance.qty_on_hand))
        .where(StockBalance.product_id.in_(list(product_ids)))
        .group_by(StockBalance.product_id)
    )
    return {row[0]: Decimal(str(row[1] or 0)) for row in result.all()}


def build_product_response(product: Product, total_stock=0) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        sku=product.sku,
        barcode=product.barcode,
        name=product.name,
        description=product.description,
        category_id=product.category_id,
        category_name=product.category.name if product.category else None,
        unit_id=product.unit_id,
        unit_name=product.unit.name if product.unit else None,
        item_type=product.item_type,
        item_type_display=product.item_type_display,
        stock_type=product.stock_type,
        stock_type_display=product.stock_type_display,
        reorder_point=float(product.reorder_point or 0),
        min_qty=float(product.min_qty or 0),
        max_qty=float(product.max_qty or 0),
        standard_cost=float(product.standard_cost or 0),
        last_cost=float(product.last_cost or 0),
        has_variants=product.has_variants,
        active=product.active,
        total_stock=float(total_stock or 0),
        created_at=product.created_at)


def build_variant_brief(variant: ProductVariant, total_stock=0) -> VariantBrief:
    return VariantBrief(
        id=variant.id,
        sku=variant.sku,
        name=variant.name,
        barcode=variant.barcode,
        stock_type=variant.stock_type,
        active=variant.active,
        total_stock=float(total_stock or 0))


async def load_product(db: AsyncSession, product_id: int) -> Product:
    result = await db.execute(
        base_product_query()
        .options(
            selectinload(Product.variants),
            selectinload(Product.stock_balances).selectinload(StockBalance.location),
        )
        .where(Product.id == product_id, Product.deleted_at.is_(None))
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if not product:
        raise NotFoundError("สินค้า")
    return product


def build_product_detail(product: Product) -> ProductDetailResponse:
    total = sum((b.qty_on_hand or Decimal("0") for b in product.stock_balances), Decimal("0"))
    variant_totals: Dict[int, Decimal] = {}
    for b in product.stock_balances:
        if b.variant_id:
            variant_totals[b.variant_id] = variant_totals.get(b.variant_id, Decimal("0")) + b.qty_on_hand
    base = build_product_response(product, total)
    return ProductDetailResponse(
        **base.model_dump(),
        variants=[
            build_variant_brief(v, variant_totals.get(v.id, 0))
            for v in product.variants if v.deleted_at is None
        ],
        balances=[
            BalanceBrief(
                location_id=b.location_id,
                location_code=b.location.code,
                location_name=b.location.name,
                variant_id=b.variant_id,
                qty_on_hand=float(b.qty_on_hand))
            for b in product.stock_balances
        ])


async def ensure_unique_sku(
    db: AsyncSession,
    sku: str,
    exclude_id: Optional[int] = None,
    message: str = "SKU นี้มีอยู่แล้ว") -> None:
    query = select(Product.id).where(Product.sku == sku)
    if exclude_id:
        query = query.where(Product.id != exclude_id)
    if (await db.execute(query)).first():
        raise ConflictError(message)


@router.get("/", response_model=ActionResult[PaginatedResult[ProductResponse]])
async def list_products(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    search: Optional[str] = Query(None, description="ค้นหา SKU / ชื่อ / บาร์โค้ด"),
    category_id: Optional[int] = Query(None),
    active: Optional[bool] = Query(None),
    item_type: Optional[str] = Query(None)) -> Any:
    conditions = [Product.deleted_at.is_(None)]
    if search:
        conditions.append(or_(
            Product.sku.ilike(f"%{search}%"),
            Product.name.ilike(f"%{search}%"),
            Product.barcode.ilike(f"%{search}%"),
        ))
    if category_id:
        conditions.append(Product.category_id == category_id)
    if active is not None:
        conditions.append(Product.active == active)
    if item_type:
        conditions.append(Product.item_type == item_type)

    total = (await db.execute(select(func.count(Product.id)).where(and_(*conditions)))).scalar() or 0
    query = (
        base_product_query()
        .where(and_(*conditions))
        .order_by(Product.sku)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    products = (await db.execute(query)).scalars().all()
    totals = await get_stock_totals(db, [p.id for p in products])
    items = [build_product_response(p, totals.get(p.id, 0)) for p in products]
    return ok(paginate(items, total, page, limit))


@router.get("/barcode/{barcode}", response_model=ActionResult[BarcodeLookupResponse])
async def lookup_barcode(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    barcode: str) -> Any:
    """ค้นหาจากบาร์โค้ดสินค้าก่อน แล้วจึงบาร์โค้ดของ variant"""
    result = await db.execute(
        base_product_query().where(
            Product.barcode == barcode,
            Product.active.is_(True),
            Product.deleted_at.is_(None),
        )
    )
    product = result.scalars().first()
    if product:
        totals = await get_stock_totals(db, [product.id])
        return ok(BarcodeLookupResponse(product=build_product_response(product, totals.get(product.id, 0))))

    result = await db.execute(
        select(ProductVariant)
        .options(
            selectinload(ProductVariant.product).selectinload(Product.category),
            selectinload(ProductVariant.product).selectinload(Product.unit),
        )
        .where(
            ProductVariant.barcode == barcode,
            ProductVariant.active.is_(True),
            ProductVariant.deleted_at.is_(None),
        )
    )
    variant = result.scalars().first()
    if not variant or variant.product.deleted_at is not None:
        raise NotFoundError("สินค้าจากบาร์โค้ดนี้")
    variant_total = (await db.execute(
        select(func.coalesce(func.sum(StockBalance.qty_on_hand), 0))
        .where(StockBalance.variant_id == variant.id)
    )).scalar()
    totals = await get_stock_totals(db, [variant.product_id])
    return ok(BarcodeLookupResponse(
        product=build_product_response(variant.product, totals.get(variant.product_id, 0)),
        variant=build_variant_brief(variant, variant_total)))


@router.get("/{product_id}", response_model=ActionResult[ProductDetailResponse])
async def get_product(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    product_id: int) -> Any:
    return ok(build_product_detail(await load_product(db, product_id)))


@router.post("/", response_model=ActionResult[ProductDetailResponse])
async def create_product(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    product_in: ProductCreate) -> Any:
    await ensure_unique_sku(db, product_in.sku)
    product = Product(**product_in.model_dump())
    db.add(product)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "PRODUCT", product.id, product_in.model_dump())
    await db.commit()
    return ok(build_product_detail(await load_product(db, product.id)))


@router.put("/{product_id}", response_model=ActionResult[ProductDetailResponse])
async def update_product(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    product_id: int,
    product_in: ProductUpdate) -> Any:
    product = await load_product(db, product_id)
    data = product_in.model_dump(exclude_unset=True)
    if data.get("sku") and data["sku"] != product.sku:
        await ensure_unique_sku(db, data["sku"], product_id)
    for field, value in data.items():
        setattr(product, field, value)
    await create_audit_log(db, current_user.id, "UPDATE", "PRODUCT", product.id, data)
    await db.commit()
    return ok(build_product_detail(await load_product(db, product_id)))


@router.delete("/{product_id}", response_model=ActionResult[MessageData])
async def delete_product(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    product_id: int) -> Any:
    """ลบแบบ soft delete"""
    product = await load_product(db, product_id)
    product.active = False
    product.deleted_at = datetime.utcnow()
    await create_audit_log(db, current_user.id, "DELETE", "PRODUCT", product.id, {"sku": product.sku})
    await db.commit()
    return ok(MessageData(message="ลบสินค้าเรียบร้อย"))
