"""ประเภทตัวเลือก (สี, ไซส์) และค่าของตัวเลือก"""

from typing import Any, List
from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import ConflictError, BusinessError, NotFoundError, ValidationError
from warehouse.models.product import OptionType, OptionValue, VariantOptionValue
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, MessageData, ok
from warehouse.schemas.variant import (
    OptionTypeCreate, OptionTypeUpdate, OptionTypeResponse,
    OptionValueCreate, OptionValueUpdate, OptionValueResponse,
    ReorderValues, OptionSelection, VariantCombination
)
from warehouse.api.api_v1.endpoints.variants.core import generate_variant_combinations

router = APIRouter()


def build_option_type_response(option_type: OptionType) -> OptionTypeResponse:
    return OptionTypeResponse(
        id=option_type.id,
        name=option_type.name,
        display_order=option_type.display_order,
        values=[OptionValueResponse.model_validate(v) for v in option_type.values])


async def load_option_type(db: AsyncSession, type_id: int) -> OptionType:
    result = await db.execute(
        select(OptionType)
        .options(selectinload(OptionType.values))
        .where(OptionType.id == type_id)
        .execution_options(populate_existing=True)
    )
    option_type = result.scalar_one_or_none()
    if not option_type:
        raise NotFoundError("ตัวเลือก")
    return option_type


async def _ensure_unique_type_name(db: AsyncSession, name: str, exclude_id: int = None) -> None:
    query = select(OptionType.id).where(func.lower(OptionType.name) == name.strip().lower())
    if exclude_id:
        query = query.where(OptionType.id != exclude_id)
    if (await db.execute(query)).first():
        raise ConflictError("ชื่อตัวเลือกนี้มีอยู่แล้ว")


async def _ensure_unique_value(db: AsyncSession, type_id: int, value: str, exclude_id: int = None) -> None:
    query = select(OptionValue.id).where(
        OptionValue.option_type_id == type_id,
        func.lower(OptionValue.value) == value.strip().lower(),
    )
    if exclude_id:
        query = query.where(OptionValue.id != exclude_id)
    if (await db.execute(query)).first():
        raise ConflictError("ค่านี้มีอยู่แล้วในตัวเลือกนี้")


async def _usage_count(db: AsyncSession, value_ids: List[int]) -> int:
    if not value_ids:
        return 0
    result = await db.execute(
        select(func.count(VariantOptionValue.id)).where(VariantOptionValue.option_value_id.in_(value_ids))
    )
    return result.scalar() or 0


@router.get("/types", response_model=ActionResult[List[OptionTypeResponse]])
async def list_option_types(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read"))) -> Any:
    result = await db.execute(
        select(OptionType)
        .options(selectinload(OptionType.values))
        .order_by(OptionType.display_order, OptionType.name)
    )
    return ok([build_option_type_response(t) for t in result.scalars().all()])


@router.get("/types/{type_id}", response_model=ActionResult[OptionTypeResponse])
async def get_option_type(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:read")),
    type_id: int) -> Any:
    return ok(build_option_type_response(await load_option_type(db, type_id)))


@router.post("/types", response_model=ActionResult[OptionTypeResponse])
async def create_option_type(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    type_in: OptionTypeCreate) -> Any:
    await _ensure_unique_type_name(db, type_in.name)
    option_type = OptionType(name=type_in.name.strip(), display_order=type_in.display_order)
    db.add(option_type)
    await db.flush()

    seen = set()
    for position, raw in enumerate(type_in.values):
        value = raw.strip()
        if not value or value.lower() in seen:
            continue
        seen.add(value.lower())
        db.add(OptionValue(option_type_id=option_type.id, value=value, display_order=position))

    await db.commit()
    return ok(build_option_type_response(await load_option_type(db, option_type.id)))


@router.put("/types/{type_id}", response_model=ActionResult[OptionTypeResponse])
async def update_option_type(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    type_id: int,
    type_in: OptionTypeUpdate) -> Any:
    option_type = await load_option_type(db, type_id)
    data = type_in.model_dump(exclude_unset=True)
    if data.get("name"):
        await _ensure_unique_type_name(db, data["name"], type_id)
        data["name"] = data["name"].strip()
    for field, value in data.items():
        setattr(option_type, field, value)
    await db.commit()
    return ok(build_option_type_response(await load_option_type(db, type_id)))


@router.delete("/types/{type_id}", response_model=ActionResult[MessageData])
async def delete_option_type(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    type_id: int) -> Any:
    option_type = await load_option_type(db, type_id)
    if await _usage_count(db, [v.id for v in option_type.values]):
        raise BusinessError("ไม่สามารถลบตัวเลือกที่มี variant ใช้งานอยู่ได้")
    await db.delete(option_type)
    await db.commit()
    return ok(MessageData(message="ลบตัวเลือกเรียบร้อย"))


@router.post("/types/{type_id}/values", response_model=ActionResult[OptionValueResponse])
async def create_option_value(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    type_id: int,
    value_in: OptionValueCreate) -> Any:
    option_type = await load_option_type(db, type_id)
    await _ensure_unique_value(db, type_id, value_in.value)
    display_order = value_in.display_order
    if display_order is None:
        display_order = len(option_type.values)
    option_value = OptionValue(option_type_id=type_id, value=value_in.value.strip(), display_order=display_order)
    db.add(option_value)
    await db.commit()
    await db.refresh(option_value)
    return ok(OptionValueResponse.model_validate(option_value))


@router.put("/values/{value_id}", response_model=ActionResult[OptionValueResponse])
async def update_option_value(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    value_id: int,
    value_in: OptionValueUpdate) -> Any:
    option_value = await db.get(OptionValue, value_id)
    if not option_value:
        raise NotFoundError("ค่าตัวเลือก")
    data = value_in.model_dump(exclude_unset=True)
    if data.get("value"):
        await _ensure_unique_value(db, option_value.option_type_id, data["value"], value_id)
        data["value"] = data["value"].strip()
    for field, value in data.items():
        setattr(option_value, field, value)
    await db.commit()
    await db.refresh(option_value)
    return ok(OptionValueResponse.model_validate(option_value))


@router.delete("/values/{value_id}", response_model=ActionResult[MessageData])
async def delete_option_value(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    value_id: int) -> Any:
    option_value = await db.get(OptionValue, value_id)
    if not option_value:
        raise NotFoundError("ค่าตัวเลือก")
    if await _usage_count(db, [value_id]):
        raise BusinessError("ไม่สามารถลบค่าที่มี variant ใช้งานอยู่ได้")
    await db.delete(option_value)
    await db.commit()
    return ok(MessageData(message="ลบค่าตัวเลือกเรียบร้อย"))


@router.put("/types/{type_id}/reorder", response_model=ActionResult[OptionTypeResponse])
async def reorder_option_values(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("products:write")),
    type_id: int,
    reorder_in: ReorderValues) -> Any:
    """ลำดับการแสดงผลตามตำแหน่งในรายการ"""
    option_type = await load_option_type(db, type_id)
    values = {v.id: v for v in option_type.values}
    unknown = [vid for vid in reorder_in.value_ids if vid not in values]
    if unknown:
        raise ValidationError("ค่าตัวเลือกไม่ถูกต้อง", "value_ids")
    for position, value_id in enumerate(reorder_in.value_ids):
        values[value_id].display_order = position
    await db.commit()
    return ok(build_option_type_response(await load_option_type(db, type_id)))


@router.post("/combinations", response_model=ActionResult[List[VariantCombination]])
async def preview_combinations(
    *,
    current_user: User = Depends(require_permission("products:read")),
    selections: List[OptionSelection]) -> Any:
    """ดูตัวอย่าง combination ก่อนสร้าง variant"""
    return ok(generate_variant_combinations(selections))
