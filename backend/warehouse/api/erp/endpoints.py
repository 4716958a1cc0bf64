"""ERP REST API สำหรับระบบภายนอก (ข้อความตอบกลับเป็นภาษาอังกฤษ)"""

import logging
import math
from datetime import datetime, date, time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db
from warehouse.core.errors import AppError, ValidationError
from warehouse.models.category import Category
from warehouse.models.integration import ERPIntegration
from warehouse.models.movement import StockMovement
from warehouse.models.product import Product, ProductVariant
from warehouse.models.stock import StockBalance, Lot
from warehouse.models.warehouse import Location, Warehouse
from warehouse.schemas.common import ActionResult, ok
from warehouse.schemas.integration import (
    ERPMovementCreate, ERPMovementLine, ERPQuickMovement,
    ERPProduct, ERPVariant, ERPStockEntry, ERPProductList, ERPPagination, ERPDeletedProduct,
    ERPStockRow, ERPSkuStock, ERPMovement, ERPMovementLineOut, ERPMovementList
)
from warehouse.schemas.movement import MovementLineInput
from warehouse.api.api_v1.endpoints.movements.core import (
    base_movement_query, load_movement, validate_lines, build_lines, create_movement_record, post_movement
)
from warehouse.api.erp.deps import get_integration, get_system_user, mark_synced

logger = logging.getLogger(__name__)

router = APIRouter()

ZERO = Decimal("0")
INBOUND_TYPES = ("RECEIVE", "RETURN", "ADJUST")


class ProductNotFound(AppError):
    def __init__(self):
        super().__init__("Product not found", "NOT_FOUND", 404)


def pagination(page: int, limit: int, total: int) -> ERPPagination:
    return ERPPagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0)


def stock_entry(balance: StockBalance) -> ERPStockEntry:
    return ERPStockEntry(
        location_id=balance.location_id,
        location_code=balance.location.code,
        warehouse_code=balance.location.warehouse.code,
        qty=float(balance.qty_on_hand or 0))


def build_erp_product(product: Product, balances: List[StockBalance]) -> ERPProduct:
    by_variant: Dict[Optional[int], List[StockBalance]] = {}
    for balance in balances:
        by_variant.setdefault(balance.variant_id, []).append(balance)
    variants = [
        ERPVariant(
            id=v.id,
            sku=v.sku,
            barcode=v.barcode,
            name=v.name,
            last_cost=float(v.last_cost or 0),
            total_stock=float(sum((b.qty_on_hand for b in by_variant.get(v.id, [])), ZERO)),
            stock=[stock_entry(b) for b in by_variant.get(v.id, [])])
        for v in product.variants if v.active and v.deleted_at is None
    ]
    return ERPProduct(
        id=product.id,
        sku=product.sku,
        barcode=product.barcode,
        name=product.name,
        description=product.description,
        category=product.category.name if product.category else None,
        unit=product.unit.code if product.unit else None,
        item_type=product.item_type,
        stock_type=product.stock_type,
        reorder_point=float(product.reorder_point or 0),
        last_cost=float(product.last_cost or 0),
        total_stock=float(sum((b.qty_on_hand for b in balances), ZERO)),
        stock=[stock_entry(b) for b in by_variant.get(None, [])],
        variants=variants,
        updated_at=product.updated_at)


def balance_query():
    return select(StockBalance).options(
        selectinload(StockBalance.product),
        selectinload(StockBalance.variant),
        selectinload(StockBalance.location).selectinload(Location.warehouse),
    )


def build_erp_movement(movement: StockMovement) -> ERPMovement:
    return ERPMovement(
        id=movement.id,
        doc_number=movement.doc_number,
        type=movement.type,
        status=movement.status,
        ref_type=movement.ref_type,
        note=movement.note,
        created_at=movement.created_at,
        posted_at=movement.posted_at,
        lines=[
            ERPMovementLineOut(
                sku=line.variant.sku if line.variant else line.product.sku,
                qty=float(line.qty),
                from_location=line.from_location.code if line.from_location else None,
                to_location=line.to_location.code if line.to_location else None,
                lot_number=line.lot.lot_number if line.lot else None,
                order_ref=line.order_ref)
            for line in movement.lines
        ])


async def resolve_sku(db: AsyncSession, sku: str) -> Tuple[Product, Optional[ProductVariant]]:
    """SKU ของสินค้าหรือของ variant"""
    product = (await db.execute(
        select(Product).where(Product.sku == sku, Product.deleted_at.is_(None))
    )).scalar_one_or_none()
    if product:
        return product, None
    variant = (await db.execute(
        select(ProductVariant)
        .options(selectinload(ProductVariant.product))
        .where(ProductVariant.sku == sku, ProductVariant.deleted_at.is_(None))
    )).scalar_one_or_none()
    if variant and variant.product.deleted_at is None:
        return variant.product, variant
    raise ProductNotFound()


async def resolve_location(db: AsyncSession, code: Optional[str]) -> Optional[int]:
    """รหัสตำแหน่ง หรือ "รหัสคลัง/รหัสตำแหน่ง" เมื่อรหัสซ้ำกันหลายคลัง"""
    if not code:
        return None
    query = select(Location.id).join(Warehouse, Warehouse.id == Location.warehouse_id)
    if "/" in code:
        warehouse_code, location_code = code.split("/", 1)
        query = query.where(Warehouse.code == warehouse_code, Location.code == location_code)
    else:
        query = query.where(Location.code == code)
    ids = (await db.execute(query)).scalars().all()
    if not ids:
        raise ValidationError(f"Location not found: {code}", "location")
    if len(ids) > 1:
        raise ValidationError(f"Ambiguous location code: {code} (use WAREHOUSE/LOCATION)", "location")
    return ids[0]


async def resolve_lot(
    db: AsyncSession,
    movement_type: str,
    product: Product,
    variant: Optional[ProductVariant],
    lot_number: Optional[str]) -> Optional[int]:
    if not lot_number:
        return None
    lot = (await db.execute(
        select(Lot).where(Lot.product_id == product.id, Lot.lot_number == lot_number)
    )).scalar_one_or_none()
    if lot:
        return lot.id
    if movement_type not in INBOUND_TYPES:
        raise ValidationError(f"Lot not found: {lot_number}", "lot_number")
    lot = Lot(lot_number=lot_number, product_id=product.id, variant_id=variant.id if variant else None)
    db.add(lot)
    await db.flush()
    return lot.id


async def build_line_inputs(db: AsyncSession, movement_type: str, lines: List[ERPMovementLine]) -> List[MovementLineInput]:
    inputs = []
    for line in lines:
        product, variant = await resolve_sku(db, line.sku)
        inputs.append(MovementLineInput(
            product_id=product.id,
            variant_id=variant.id if variant else None,
            lot_id=await resolve_lot(db, movement_type, product, variant, line.lot_number),
            from_location_id=await resolve_location(db, line.from_location),
            to_location_id=await resolve_location(db, line.to_location),
            qty=line.qty,
            unit_cost=line.unit_cost,
            note=line.note,
            order_ref=line.order_ref))
    return inputs


async def create_erp_movement(
    db: AsyncSession,
    integration: ERPIntegration,
    movement_type: str,
    lines: List[ERPMovementLine],
    note: Optional[str],
    reference: Optional[str],
    auto_post: bool) -> ERPMovement:
    system_user = await get_system_user(db)
    line_inputs = await build_line_inputs(db, movement_type, lines)
    validate_lines(movement_type, line_inputs)

    if reference:
        note = f"{note} (ref: {reference})" if note else f"ref: {reference}"
    movement = await create_movement_record(
        db, movement_type,
        build_lines(line_inputs),
        system_user.id,
        note=note,
        reason=f"ERP: {integration.name}",
        ref_type="ERP")

    if auto_post:
        movement = await load_movement(db, movement.id)
        movement.status = "APPROVED"
        movement.approved_by_id = system_user.id
        movement.approved_at = datetime.utcnow()
        await post_movement(db, movement, system_user)

    mark_synced(integration)
    await db.commit()
    movement = await load_movement(db, movement.id)
    logger.info(f"🔗 ERP {integration.name}: {movement.doc_number} ({movement.type}, {movement.status})")
    return build_erp_movement(movement)


@router.get("", response_model=ActionResult[dict])
async def api_info(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration)) -> Any:
    mark_synced(integration)
    await db.commit()
    return ok({
        "name": "Warehouse ERP API",
        "version": "1.0",
        "integration": integration.name,
        "endpoints": [
            "GET /api/erp/products",
            "DELETE /api/erp/products/{id}",
            "GET /api/erp/stock",
            "GET /api/erp/stock/{sku}",
            "GET /api/erp/movements",
            "POST /api/erp/movements",
            "POST /api/erp/receive",
            "POST /api/erp/issue",
        ],
    })


@router.get("/products", response_model=ActionResult[ERPProductList])
async def list_products(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    category: Optional[str] = Query(None, description="category id or name"),
    search: Optional[str] = Query(None),
    updated_after: Optional[datetime] = Query(None)) -> Any:
    conditions = [Product.active.is_(True), Product.deleted_at.is_(None)]
    if category:
        if category.isdigit():
            conditions.append(Product.category_id == int(category))
        else:
            conditions.append(Product.category.has(Category.name == category))
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(Product.sku.ilike(pattern), Product.name.ilike(pattern), Product.barcode.ilike(pattern)))
    if updated_after:
        conditions.append(Product.updated_at > updated_after)

    total = await db.scalar(select(func.count(Product.id)).where(*conditions)) or 0
    products = (await db.execute(
        select(Product)
        .options(selectinload(Product.category), selectinload(Product.unit), selectinload(Product.variants))
        .where(*conditions)
        .order_by(Product.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )).scalars().all()

    balances: Dict[int, List[StockBalance]] = {}
    if products:
        rows = (await db.execute(
            balance_query().where(StockBalance.product_id.in_([p.id for p in products]))
        )).scalars().all()
        for balance in rows:
            balances.setdefault(balance.product_id, []).append(balance)

    mark_synced(integration)
    await db.commit()
    return ok(ERPProductList(
        items=[build_erp_product(p, balances.get(p.id, [])) for p in products],
        pagination=pagination(page, limit, total)))


@router.delete("/products/{product_id}", response_model=ActionResult[ERPDeletedProduct])
async def delete_product(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration),
    product_id: int) -> Any:
    product = await db.get(Product, product_id)
    if not product or product.deleted_at is not None:
        raise ProductNotFound()
    product.deleted_at = datetime.utcnow()
    product.active = False
    mark_synced(integration)
    await db.commit()
    logger.info(f"🔗 ERP {integration.name}: ลบสินค้า {product.sku}")
    return ok(ERPDeletedProduct(id=product.id, sku=product.sku, deleted_at=product.deleted_at))


@router.get("/stock", response_model=ActionResult[List[ERPStockRow]])
async def list_stock(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration),
    location: Optional[str] = Query(None, description="location code"),
    warehouse: Optional[str] = Query(None, description="warehouse code"),
    low_stock: bool = Query(False)) -> Any:
    query = (
        balance_query()
        .join(Product, Product.id == StockBalance.product_id)
        .join(Location, Location.id == StockBalance.location_id)
        .join(Warehouse, Warehouse.id == Location.warehouse_id)
        .where(Product.deleted_at.is_(None))
        .order_by(Product.sku, StockBalance.id)
    )
    if location:
        query = query.where(Location.code == location)
    if warehouse:
        query = query.where(Warehouse.code == warehouse)

    rows = []
    for balance in (await db.execute(query)).scalars().all():
        if low_stock and not balance.is_low_stock:
            continue
        rows.append(ERPStockRow(
            product_id=balance.product_id,
            sku=balance.product.sku,
            name=balance.product.name,
            variant_id=balance.variant_id,
            variant_sku=balance.variant.sku if balance.variant else None,
            location_code=balance.location.code,
            warehouse_code=balance.location.warehouse.code,
            qty=float(balance.qty_on_hand or 0),
            reorder_point=float(balance.reorder_point),
            is_low_stock=balance.is_low_stock))

    mark_synced(integration)
    await db.commit()
    return ok(rows)


@router.get("/stock/{sku}", response_model=ActionResult[ERPSkuStock])
async def get_stock_by_sku(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration),
    sku: str) -> Any:
    product, variant = await resolve_sku(db, sku)
    query = balance_query().where(StockBalance.product_id == product.id)
    if variant:
        query = query.where(StockBalance.variant_id == variant.id)
    balances = (await db.execute(query)).scalars().all()

    mark_synced(integration)
    await db.commit()
    return ok(ERPSkuStock(
        sku=sku,
        product_id=product.id,
        variant_id=variant.id if variant else None,
        name=f"{product.name} ({variant.name})" if variant and variant.name else product.name,
        total_qty=float(sum((b.qty_on_hand for b in balances), ZERO)),
        stock=[stock_entry(b) for b in balances]))


@router.get("/movements", response_model=ActionResult[ERPMovementList])
async def list_movements(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration),
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500)) -> Any:
    conditions = []
    if type:
        conditions.append(StockMovement.type == type.upper())
    if status:
        conditions.append(StockMovement.status == status.upper())
    if from_date:
        conditions.append(StockMovement.created_at >= datetime.combine(from_date, time.min))
    if to_date:
        conditions.append(StockMovement.created_at <= datetime.combine(to_date, time.max))

    total = await db.scalar(select(func.count(StockMovement.id)).where(*conditions)) or 0
    movements = (await db.execute(
        base_movement_query()
        .where(*conditions)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )).scalars().all()

    mark_synced(integration)
    await db.commit()
    return ok(ERPMovementList(
        items=[build_erp_movement(m) for m in movements],
        pagination=pagination(page, limit, total)))


@router.post("/movements", response_model=ActionResult[ERPMovement])
async def create_movement(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration),
    movement_in: ERPMovementCreate) -> Any:
    return ok(await create_erp_movement(
        db, integration, movement_in.type, movement_in.lines,
        movement_in.note, movement_in.reference, movement_in.auto_post))


@router.post("/receive", response_model=ActionResult[ERPMovement])
async def quick_receive(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration),
    receive_in: ERPQuickMovement) -> Any:
    """รับเข้าและบันทึกทันที"""
    return ok(await create_erp_movement(
        db, integration, "RECEIVE", receive_in.lines, receive_in.note, receive_in.reference, True))


@router.post("/issue", response_model=ActionResult[ERPMovement])
async def quick_issue(
    *,
    db: AsyncSession = Depends(get_db),
    integration: ERPIntegration = Depends(get_integration),
    issue_in: ERPQuickMovement) -> Any:
    """เบิกออกและบันทึกทันที"""
    return ok(await create_erp_movement(
        db, integration, "ISSUE", issue_in.lines, issue_in.note, issue_in.reference, True))
