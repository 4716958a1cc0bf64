"""
ฟังก์ชันกลางของ variant และตัวเลือกสินค้า
"""

from decimal import Decimal
from itertools import product as cartesian
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.errors import NotFoundError
from warehouse.models.movement import MovementLine
from warehouse.models.product import ProductVariant, VariantOptionValue, OptionValue
from warehouse.models.stock import StockBalance
from warehouse.schemas.variant import CombinationOption, VariantResponse


def _get(obj: Any, key: str):
    return obj[key] if isinstance(obj, dict) else getattr(obj, key)


def generate_variant_combinations(option_types: Sequence[Any]) -> List[Dict[str, Any]]:
    """
    สร้างทุก combination จากค่าที่เลือกของแต่ละตัวเลือก ตามลำดับที่ส่งมา

    [{"options": [...], "sku_suffix": "แดง-XL"}, ...]
    """
    groups = []
    for option_type in option_types or []:
        values = list(_get(option_type, "values") or [])
        if not values:
            continue
        groups.append([
            {
                "option_type_id": _get(option_type, "option_type_id"),
                "option_type_name": _get(option_type, "option_type_name"),
                "option_value_id": _get(v, "id"),
                "value": _get(v, "value"),
            }
            for v in values
        ])
    if not groups:
        return []

    return [
        {
            "options": list(combo),
            "sku_suffix": "-".join(o["value"] for o in combo),
        }
        for combo in cartesian(*groups)
    ]


def base_variant_query():
    return select(ProductVariant).options(
        selectinload(ProductVariant.option_values)
        .selectinload(VariantOptionValue.option_value)
        .selectinload(OptionValue.option_type)
    )


async def load_variant(db: AsyncSession, variant_id: int) -> ProductVariant:
    result = await db.execute(
        base_variant_query()
        .where(ProductVariant.id == variant_id, ProductVariant.deleted_at.is_(None))
        .execution_options(populate_existing=True)
    )
    variant = result.scalar_one_or_none()
    if not variant:
        raise NotFoundError("variant")
    return variant


async def variant_stock_total(db: AsyncSession, variant_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(StockBalance.qty_on_hand), 0))
        .where(StockBalance.variant_id == variant_id)
    )
    return Decimal(str(result.scalar() or 0))


async def variant_has_history(db: AsyncSession, variant_id: int) -> bool:
    """มีสต๊อคหรือเคยมีการเคลื่อนไหว"""
    if await variant_stock_total(db, variant_id) != 0:
        return True
    result = await db.execute(
        select(func.count(MovementLine.id)).where(MovementLine.variant_id == variant_id)
    )
    return (result.scalar() or 0) > 0


async def check_variant_sku_exists(
    db: AsyncSession,
    sku: str,
    exclude_id: Optional[int] = None) -> bool:
    query = select(ProductVariant.id).where(ProductVariant.sku == sku)
    if exclude_id:
        query = query.where(ProductVariant.id != exclude_id)
    return (await db.execute(query)).first() is not None


def build_variant_response(variant: ProductVariant, total_stock=0) -> VariantResponse:
    options = sorted(
        (
            CombinationOption(
                option_type_id=link.option_value.option_type_id,
                option_type_name=link.option_value.option_type.name,
                option_value_id=link.option_value_id,
                value=link.option_value.value)
            for link in variant.option_values
        ),
        key=lambda o: o.option_type_id,
    )
    return VariantResponse(
        id=variant.id,
        product_id=variant.product_id,
        sku=variant.sku,
        barcode=variant.barcode,
        name=variant.name,
        stock_type=variant.stock_type,
        cost_price=float(variant.cost_price or 0),
        selling_price=float(variant.selling_price or 0),
        reorder_point=float(variant.reorder_point or 0),
        min_qty=float(variant.min_qty or 0),
        max_qty=float(variant.max_qty or 0),
        low_stock_alert=variant.low_stock_alert,
        last_cost=float(variant.last_cost or 0),
        active=variant.active,
        total_stock=float(total_stock or 0),
        options=options,
        created_at=variant.created_at)
