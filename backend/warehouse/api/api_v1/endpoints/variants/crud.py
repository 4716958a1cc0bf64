"""variant ของสินค้า: รายการ เพิ่ม แก้ไข ลบ"""

from datetime import datetime
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import ConflictError, NotFoundError, ValidationError
from warehouse.models.product import Product, ProductVariant, OptionValue, VariantOptionValue
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, MessageData, ok
from warehouse.schemas.variant import VariantCreate, VariantUpdate, VariantResponse, SkuCheckResult
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log
from warehouse.api.api_v1.endpoints.variants.core import (
    base_variant_query, load_variant, variant_stock_total, variant_has_history,
    check_variant_sku_exists, build_variant_response
)

router = APIRouter()


async def _check_option_values(db: AsyncSession, value_ids: List[int]) -> None:
    if not value_ids:
        return
    result = await db.execute(select(OptionValue.id).where(OptionValue.id.in_(value_ids)))
    found = set(result.scalars().all())
    if len(found) != len(set(value_ids)):
        raise ValidationError("ค่าตัวเลือกไม่ถูกต้อง", "option_value_ids")


async def _load_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if not product or product.deleted_at is not None:
        raise NotFoundError("สินค้า")
    return product


@router.get("/variants/check-sku", response_model=ActionResult[SkuCheckResult])
async def check_sku(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    sku: str = Query(..., min_length=1),
    exclude_id: Optional[int] = Query(None)) -> Any:
    return ok(SkuCheckResult(exists=await check_variant_sku_exists(db, sku, exclude_id)))


@router.get("/products/{product_id}/variants", response_model=ActionResult[List[VariantResponse]])
async def list_variants(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    product_id: int) -> Any:
    await _load_product(db, product_id)
    result = await db.execute(
        base_variant_query()
        .where(ProductVariant.product_id == product_id, ProductVariant.deleted_at.is_(None))
        .order_by(ProductVariant.id)
    )
    variants = result.scalars().all()
    return ok([build_variant_response(v, await variant_stock_total(db, v.id)) for v in variants])


@router.get("/variants/{variant_id}", response_model=ActionResult[VariantResponse])
async def get_variant(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    variant_id: int) -> Any:
    variant = await load_variant(db, variant_id)
    return ok(build_variant_response(variant, await variant_stock_total(db, variant_id)))


@router.post("/products/{product_id}/variants", response_model=ActionResult[VariantResponse])
async def add_variant(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    product_id: int,
    variant_in: VariantCreate) -> Any:
    product = await _load_product(db, product_id)
    if await check_variant_sku_exists(db, variant_in.sku):
        raise ConflictError(f"SKU variant ซ้ำ: {variant_in.sku}")
    await _check_option_values(db, variant_in.option_value_ids)

    data = variant_in.model_dump(exclude={"option_value_ids"})
    variant = ProductVariant(product_id=product_id, **data)
    db.add(variant)
    await db.flush()
    for value_id in dict.fromkeys(variant_in.option_value_ids):
        db.add(VariantOptionValue(variant_id=variant.id, option_value_id=value_id))
    product.has_variants = True

    await create_audit_log(db, current_user.id, "CREATE", "VARIANT", variant.id, variant_in.model_dump())
    await db.commit()
    return ok(build_variant_response(await load_variant(db, variant.id)))


@router.put("/variants/{variant_id}", response_model=ActionResult[VariantResponse])
async def update_variant(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    variant_id: int,
    variant_in: VariantUpdate) -> Any:
    variant = await load_variant(db, variant_id)
    data = variant_in.model_dump(exclude_unset=True)
    option_value_ids = data.pop("option_value_ids", None)

    if data.get("sku") and data["sku"] != variant.sku:
        if await check_variant_sku_exists(db, data["sku"], variant_id):
            raise ConflictError(f"SKU variant ซ้ำ: {data['sku']}")
    for field, value in data.items():
        setattr(variant, field, value)

    if option_value_ids is not None:
        await _check_option_values(db, option_value_ids)
        await db.execute(delete(VariantOptionValue).where(VariantOptionValue.variant_id == variant_id))
        for value_id in dict.fromkeys(option_value_ids):
            db.add(VariantOptionValue(variant_id=variant_id, option_value_id=value_id))

    await create_audit_log(db, current_user.id, "UPDATE", "VARIANT", variant_id, variant_in.model_dump(exclude_unset=True))
    await db.commit()
    variant = await load_variant(db, variant_id)
    return ok(build_variant_response(variant, await variant_stock_total(db, variant_id)))


@router.delete("/variants/{variant_id}", response_model=ActionResult[MessageData])
async def delete_variant(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    variant_id: int) -> Any:
    """มีสต๊อคหรือประวัติการเคลื่อนไหวจะลบแบบ soft delete ไม่เช่นนั้นลบจริง"""
    variant = await load_variant(db, variant_id)
    if await variant_has_history(db, variant_id):
        variant.active = False
        variant.deleted_at = datetime.utcnow()
        message = "ปิดการใช้งาน variant เรียบร้อย"
    else:
        await db.delete(variant)
        message = "ลบ variant เรียบร้อย"
    await create_audit_log(db, current_user.id, "DELETE", "VARIANT", variant_id, {"sku": variant.sku})
    await db.commit()
    return ok(MessageData(message=message))
