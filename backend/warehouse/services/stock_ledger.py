"""
ยอดคงเหลือสต๊อค

ทุกการเปลี่ยนยอดผ่าน change_balance เพื่อให้ตรวจสต๊อคพอเสมอ
การบันทึก movement ทั้งเอกสารเกิดใน transaction เดียว ถ้าบรรทัดใดไม่ผ่านจะไม่มีบรรทัดใดถูกบันทึก
"""

from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.errors import BusinessError
from warehouse.models.movement import StockMovement, MovementLine
from warehouse.models.product import Product, ProductVariant
from warehouse.models.stock import StockBalance, LotBalance

ZERO = Decimal("0")


def fmt_qty(value) -> str:
    """แสดงจำนวนโดยตัดศูนย์ท้าย เช่น 10.00 → 10"""
    d = Decimal(str(value or 0))
    return format(d.normalize(), "f")


async def get_balance(
    db: AsyncSession,
    product_id: int,
    variant_id: Optional[int],
    location_id: int) -> Optional[StockBalance]:
    conditions = [
        StockBalance.product_id == product_id,
        StockBalance.location_id == location_id,
    ]
    if variant_id is not None:
        conditions.append(StockBalance.variant_id == variant_id)
    else:
        conditions.append(StockBalance.variant_id.is_(None))
    result = await db.execute(select(StockBalance).where(*conditions))
    return result.scalar_one_or_none()


async def change_balance(
    db: AsyncSession,
    product_id: int,
    variant_id: Optional[int],
    location_id: int,
    delta: Decimal,
    item_name: str = "",
    allow_negative: bool = False) -> StockBalance:
    """เพิ่ม/ลดยอดคงเหลือ (upsert) ลดเกินยอดที่มีจะ raise BusinessError"""
    delta = Decimal(str(delta))
    balance = await get_balance(db, product_id, variant_id, location_id)
    current = balance.qty_on_hand if balance else ZERO

    if delta < 0 and not allow_negative and current + delta < 0:
        raise BusinessError(
            f"สินค้า {item_name} มีไม่เพียงพอ (มี {fmt_qty(current)}, ต้องการ {fmt_qty(-delta)})"
        )

    if not balance:
        balance = StockBalance(
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            qty_on_hand=ZERO)
        db.add(balance)
        await db.flush()

    balance.qty_on_hand = current + delta
    return balance


async def change_lot_balance(
    db: AsyncSession,
    lot_id: int,
    location_id: int,
    delta: Decimal,
    lot_number: str = "") -> LotBalance:
    delta = Decimal(str(delta))
    result = await db.execute(
        select(LotBalance).where(
            LotBalance.lot_id == lot_id,
            LotBalance.location_id == location_id,
        )
    )
    lot_balance = result.scalar_one_or_none()
    current = lot_balance.qty_on_hand if lot_balance else ZERO
    if delta < 0 and current + delta < 0:
        raise BusinessError(
            f"Lot {lot_number or lot_id} มีไม่เพียงพอ (มี {fmt_qty(current)}, ต้องการ {fmt_qty(-delta)})"
        )
    if not lot_balance:
        lot_balance = LotBalance(lot_id=lot_id, location_id=location_id, qty_on_hand=ZERO)
        db.add(lot_balance)
        await db.flush()
    lot_balance.qty_on_hand = current + delta
    return lot_balance


def line_effects(movement_type: str, line: MovementLine) -> List[Tuple[int, Decimal]]:
    """
    ผลกระทบของหนึ่งบรรทัดต่อยอดคงเหลือ เป็นรายการ (location_id, delta)

    - RECEIVE / RETURN: +qty ที่ปลายทาง
    - ISSUE: -qty ที่ต้นทาง
    - TRANSFER: -qty ที่ต้นทาง และ +qty ที่ปลายทาง
    - ADJUST: +qty ที่ปลายทาง (qty ติดลบคือปรับลด)
    """
    qty = Decimal(str(line.qty))
    if movement_type in ("RECEIVE", "RETURN"):
        return [(line.to_location_id, qty)]
    if movement_type == "ISSUE":
        return [(line.from_location_id, -qty)]
    if movement_type == "TRANSFER":
        return [(line.from_location_id, -qty), (line.to_location_id, qty)]
    if movement_type == "ADJUST":
        location_id = line.to_location_id or line.from_location_id
        return [(location_id, qty)]
    raise BusinessError(f"ไม่รู้จักประเภทการเคลื่อนไหว {movement_type}")


def line_item_name(line: MovementLine) -> str:
    name = line.product.name if line.product else str(line.product_id)
    if line.variant is not None and line.variant.name:
        name = f"{name} ({line.variant.name})"
    return name


async def update_last_cost(
    db: AsyncSession,
    product_id: int,
    variant_id: Optional[int],
    unit_cost: Decimal) -> None:
    """ต้นทุนล่าสุด: ที่ variant ถ้ามี ไม่เช่นนั้นที่สินค้า"""
    if unit_cost is None or Decimal(str(unit_cost)) <= 0:
        return
    if variant_id:
        variant = await db.get(ProductVariant, variant_id)
        if variant:
            variant.last_cost = unit_cost
    else:
        product = await db.get(Product, product_id)
        if product:
            product.last_cost = unit_cost


async def apply_movement(db: AsyncSession, movement: StockMovement) -> None:
    """บันทึกผลของทุกบรรทัดลงยอดคงเหลือ (ต้องโหลด lines พร้อม product/variant แล้ว)"""
    for line in movement.lines:
        name = line_item_name(line)
        for location_id, delta in line_effects(movement.type, line):
            if location_id is None:
                raise BusinessError(f"ไม่ได้ระบุตำแหน่งจัดเก็บของสินค้า {name}")
            await change_balance(
                db, line.product_id, line.variant_id, location_id, delta, item_name=name
            )
            if line.lot_id:
                await change_lot_balance(
                    db, line.lot_id, location_id, delta,
                    lot_number=line.lot.lot_number if line.lot is not None else ""
                )

        if movement.type == "RECEIVE":
            await update_last_cost(db, line.product_id, line.variant_id, line.unit_cost)
