"""สร้างสินค้าพร้อม variant"""

import logging
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import ConflictError, NotFoundError, ValidationError
from warehouse.models.movement import StockMovement, MovementLine
from warehouse.models.product import (
    Product, ProductVariant, OptionType, OptionValue, VariantOptionValue
)
from warehouse.models.user import User
from warehouse.models.warehouse import Location
from warehouse.schemas.common import ActionResult, ok
from warehouse.schemas.variant import (
    ProductWithVariantsCreate, ProductWithInlineVariantsCreate, ProductWithVariantsResult
)
from warehouse.services.doc_numbers import generate_doc_number
from warehouse.services.stock_ledger import change_balance
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log
from warehouse.api.api_v1.endpoints.products import ensure_unique_sku

logger = logging.getLogger(__name__)

router = APIRouter()


async def ensure_unique_variant_skus(db: AsyncSession, skus: List[str]) -> None:
    """SKU ของ variant ต้องไม่ซ้ำกันเองและไม่ซ้ำกับที่มีในระบบ"""
    duplicated = [sku for sku, count in Counter(skus).items() if count > 1]
    result = await db.execute(select(ProductVariant.sku).where(ProductVariant.sku.in_(skus)))
    duplicated += [sku for sku in result.scalars().all() if sku not in duplicated]
    if duplicated:
        raise ConflictError(f"SKU variant ซ้ำ: {', '.join(duplicated)}")


async def find_or_create_option_type(db: AsyncSession, name: str) -> OptionType:
    name = name.strip()
    result = await db.execute(select(OptionType).where(func.lower(OptionType.name) == name.lower()))
    option_type = result.scalars().first()
    if not option_type:
        option_type = OptionType(name=name)
        db.add(option_type)
        await db.flush()
    return option_type


async def find_or_create_option_value(db: AsyncSession, option_type: OptionType, value: str) -> OptionValue:
    value = value.strip()
    result = await db.execute(
        select(OptionValue).where(
            OptionValue.option_type_id == option_type.id,
            func.lower(OptionValue.value) == value.lower(),
        )
    )
    option_value = result.scalars().first()
    if not option_value:
        count = await db.execute(
            select(func.count(OptionValue.id)).where(OptionValue.option_type_id == option_type.id)
        )
        option_value = OptionValue(option_type_id=option_type.id, value=value, display_order=count.scalar() or 0)
        db.add(option_value)
        await db.flush()
    return option_value


@router.post("/products/with-variants", response_model=ActionResult[ProductWithVariantsResult])
async def create_product_with_variants(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    payload: ProductWithVariantsCreate) -> Any:
    """สร้างสินค้าพร้อม variant ที่เลือกค่าตัวเลือกไว้แล้ว"""
    await ensure_unique_sku(db, payload.product.sku, message="SKU สินค้าหลักซ้ำ")
    await ensure_unique_variant_skus(db, [v.sku for v in payload.variants])

    all_value_ids = {vid for v in payload.variants for vid in v.option_value_ids}
    if all_value_ids:
        found = await db.execute(select(OptionValue.id).where(OptionValue.id.in_(all_value_ids)))
        if len(set(found.scalars().all())) != len(all_value_ids):
            raise ValidationError("ค่าตัวเลือกไม่ถูกต้อง", "option_value_ids")

    product = Product(**payload.product.model_dump(), has_variants=True)
    db.add(product)
    await db.flush()

    variant_ids = []
    for variant_in in payload.variants:
        variant = ProductVariant(product_id=product.id, **variant_in.model_dump(exclude={"option_value_ids"}))
        db.add(variant)
        await db.flush()
        for value_id in dict.fromkeys(variant_in.option_value_ids):
            db.add(VariantOptionValue(variant_id=variant.id, option_value_id=value_id))
        variant_ids.append(variant.id)

    await create_audit_log(db, current_user.id, "CREATE", "PRODUCT", product.id, payload.model_dump())
    await db.commit()
    logger.info(f"🆕 สร้างสินค้า {product.sku} พร้อม {len(variant_ids)} variant")
    return ok(ProductWithVariantsResult(product_id=product.id, sku=product.sku, variant_ids=variant_ids))


@router.post("/products/with-inline-variants", response_model=ActionResult[ProductWithVariantsResult])
async def create_product_with_inline_variants(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    payload: ProductWithInlineVariantsCreate) -> Any:
    """
    สร้างสินค้าพร้อม variant จากตัวเลือกแบบพิมพ์ค่าเอง

    ตัวเลือกและค่าที่ยังไม่มีจะถูกสร้าง (เทียบชื่อแบบไม่สนตัวพิมพ์)
    ยอดยกมาของแต่ละ variant รวมเป็นใบรับเข้า (INITIAL_STOCK) ที่บันทึกแล้วหนึ่งใบ
    """
    await ensure_unique_sku(db, payload.product.sku, message="SKU สินค้าหลักซ้ำ")
    await ensure_unique_variant_skus(db, [v.sku for v in payload.variants])

    initial_location_ids = {
        v.initial_location_id for v in payload.variants
        if v.initial_qty > 0 and v.initial_location_id
    }
    for location_id in initial_location_ids:
        if not await db.get(Location, location_id):
            raise NotFoundError("ตำแหน่งจัดเก็บ")

    # ชื่อตัวเลือก (ตัวพิมพ์เล็ก) -> (OptionType, {ค่า (ตัวพิมพ์เล็ก): OptionValue})
    option_map: Dict[str, Tuple[OptionType, Dict[str, OptionValue]]] = {}
    for option_in in payload.options:
        option_type = await find_or_create_option_type(db, option_in.name)
        values = {}
        for raw in option_in.values:
            if raw.strip():
                option_value = await find_or_create_option_value(db, option_type, raw)
                values[raw.strip().lower()] = option_value
        option_map[option_in.name.strip().lower()] = (option_type, values)

    product = Product(**payload.product.model_dump(), has_variants=True)
    db.add(product)
    await db.flush()

    variant_ids = []
    initial_lines: List[MovementLine] = []
    for variant_in in payload.variants:
        option_values: List[OptionValue] = []
        for type_name, raw_value in variant_in.options.items():
            key = str(type_name).strip().lower()
            if key not in option_map:
                option_type = await find_or_create_option_type(db, str(type_name))
                option_map[key] = (option_type, {})
            option_type, values = option_map[key]
            value_key = str(raw_value).strip().lower()
            if value_key not in values:
                values[value_key] = await find_or_create_option_value(db, option_type, str(raw_value))
            option_values.append(values[value_key])

        variant = ProductVariant(
            product_id=product.id,
            sku=variant_in.sku,
            barcode=variant_in.barcode,
            name=", ".join(v.value for v in option_values) or variant_in.sku,
            stock_type=variant_in.stock_type,
            cost_price=variant_in.cost_price,
            selling_price=variant_in.selling_price,
            reorder_point=variant_in.reorder_point,
            min_qty=variant_in.min_qty,
            max_qty=variant_in.max_qty,
            last_cost=variant_in.cost_price)
        db.add(variant)
        await db.flush()
        for option_value in option_values:
            db.add(VariantOptionValue(variant_id=variant.id, option_value_id=option_value.id))
        variant_ids.append(variant.id)

        if variant_in.initial_qty > 0 and variant_in.initial_location_id:
            initial_lines.append(MovementLine(
                product_id=product.id,
                variant_id=variant.id,
                to_location_id=variant_in.initial_location_id,
                qty=variant_in.initial_qty,
                unit_cost=variant_in.cost_price,
                note="ยอดยกมา"))

    movement_id = None
    if initial_lines:
        now = datetime.utcnow()
        movement = StockMovement(
            doc_number=await generate_doc_number(db, "MOVEMENT"),
            type="RECEIVE",
            status="POSTED",
            ref_type="INITIAL_STOCK",
            ref_id=product.id,
            note=f"ยอดยกมาของสินค้า {product.sku}",
            created_by_id=current_user.id,
            approved_by_id=current_user.id,
            approved_at=now,
            posted_by_id=current_user.id,
            posted_at=now,
            lines=initial_lines)
        db.add(movement)
        await db.flush()
        for line in initial_lines:
            await change_balance(db, line.product_id, line.variant_id, line.to_location_id, Decimal(str(line.qty)))
        movement_id = movement.id

    await create_audit_log(db, current_user.id, "CREATE", "PRODUCT", product.id, payload.model_dump())
    await db.commit()
    logger.info(f"🆕 สร้างสินค้า {product.sku} พร้อม {len(variant_ids)} variant (ยอดยกมา {len(initial_lines)} รายการ)")
    return ok(ProductWithVariantsResult(
        product_id=product.id,
        sku=product.sku,
        variant_ids=variant_ids,
        movement_id=movement_id))
