"""คลังสินค้าและตำแหน่งจัดเก็บ"""

from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from warehouse.core.deps import get_db, require_permission
from warehouse.core.errors import ConflictError, BusinessError, NotFoundError
from warehouse.models.movement import MovementLine
from warehouse.models.stock import StockBalance
from warehouse.models.user import User
from warehouse.models.warehouse import Warehouse, Location
from warehouse.schemas.common import ActionResult, MessageData, ok
from warehouse.schemas.warehouse import (
    WarehouseCreate, WarehouseUpdate, WarehouseResponse,
    LocationCreate, LocationUpdate, LocationResponse
)
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()
locations_router = APIRouter()


def build_location_response(loc: Location) -> LocationResponse:
    return LocationResponse(
        id=loc.id,
        warehouse_id=loc.warehouse_id,
        warehouse_name=loc.warehouse.name if loc.warehouse else "",
        code=loc.code,
        name=loc.name,
        full_name=loc.full_name,
        active=loc.active)


def build_warehouse_response(wh: Warehouse) -> WarehouseResponse:
    return WarehouseResponse(
        id=wh.id,
        code=wh.code,
        name=wh.name,
        address=wh.address,
        active=wh.active,
        locations=[
            LocationResponse(
                id=loc.id,
                warehouse_id=wh.id,
                warehouse_name=wh.name,
                code=loc.code,
                name=loc.name,
                full_name=f"{wh.name} / {loc.name}",
                active=loc.active)
            for loc in wh.locations
        ],
        created_at=wh.created_at)


async def load_warehouse(db: AsyncSession, warehouse_id: int) -> Warehouse:
    result = await db.execute(
        select(Warehouse)
        .options(selectinload(Warehouse.locations))
        .where(Warehouse.id == warehouse_id)
        .execution_options(populate_existing=True)
    )
    wh = result.scalar_one_or_none()
    if not wh:
        raise NotFoundError("คลังสินค้า")
    return wh


async def load_location(db: AsyncSession, location_id: int) -> Location:
    result = await db.execute(
        select(Location)
        .options(selectinload(Location.warehouse))
        .where(Location.id == location_id)
        .execution_options(populate_existing=True)
    )
    loc = result.scalar_one_or_none()
    if not loc:
        raise NotFoundError("ตำแหน่งจัดเก็บ")
    return loc


async def _ensure_unique_warehouse_code(db: AsyncSession, code: str, exclude_id: Optional[int] = None) -> None:
    query = select(Warehouse.id).where(Warehouse.code == code)
    if exclude_id:
        query = query.where(Warehouse.id != exclude_id)
    if (await db.execute(query)).first():
        raise ConflictError("รหัสคลังสินค้านี้มีอยู่แล้ว")


async def _ensure_unique_location_code(
    db: AsyncSession,
    warehouse_id: int,
    code: str,
    exclude_id: Optional[int] = None) -> None:
    query = select(Location.id).where(Location.warehouse_id == warehouse_id, Location.code == code)
    if exclude_id:
        query = query.where(Location.id != exclude_id)
    if (await db.execute(query)).first():
        raise ConflictError("รหัสตำแหน่งนี้มีอยู่แล้วในคลังนี้")


async def _stock_count(db: AsyncSession, location_ids: List[int]) -> int:
    if not location_ids:
        return 0
    result = await db.execute(
        select(func.count(StockBalance.id)).where(
            StockBalance.location_id.in_(location_ids),
            StockBalance.qty_on_hand != 0,
        )
    )
    return result.scalar() or 0


# ========== คลังสินค้า ==========

@router.get("/", response_model=ActionResult[List[WarehouseResponse]])
async def list_warehouses(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    active: Optional[bool] = Query(None)) -> Any:
    query = select(Warehouse).options(selectinload(Warehouse.locations))
    if active is not None:
        query = query.where(Warehouse.active == active)
    warehouses = (await db.execute(query.order_by(Warehouse.code))).scalars().all()
    return ok([build_warehouse_response(wh) for wh in warehouses])


@router.get("/{warehouse_id}", response_model=ActionResult[WarehouseResponse])
async def get_warehouse(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    warehouse_id: int) -> Any:
    return ok(build_warehouse_response(await load_warehouse(db, warehouse_id)))


@router.post("/", response_model=ActionResult[WarehouseResponse])
async def create_warehouse(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    wh_in: WarehouseCreate) -> Any:
    await _ensure_unique_warehouse_code(db, wh_in.code)
    wh = Warehouse(**wh_in.model_dump())
    db.add(wh)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "WAREHOUSE", wh.id, wh_in.model_dump())
    await db.commit()
    return ok(build_warehouse_response(await load_warehouse(db, wh.id)))


@router.put("/{warehouse_id}", response_model=ActionResult[WarehouseResponse])
async def update_warehouse(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    warehouse_id: int,
    wh_in: WarehouseUpdate) -> Any:
    wh = await load_warehouse(db, warehouse_id)
    data = wh_in.model_dump(exclude_unset=True)
    if data.get("code") and data["code"] != wh.code:
        await _ensure_unique_warehouse_code(db, data["code"], warehouse_id)
    for field, value in data.items():
        setattr(wh, field, value)
    await create_audit_log(db, current_user.id, "UPDATE", "WAREHOUSE", wh.id, data)
    await db.commit()
    return ok(build_warehouse_response(await load_warehouse(db, warehouse_id)))


@router.post("/{warehouse_id}/toggle-active", response_model=ActionResult[WarehouseResponse])
async def toggle_warehouse_active(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    warehouse_id: int) -> Any:
    wh = await load_warehouse(db, warehouse_id)
    wh.active = not wh.active
    await db.commit()
    return ok(build_warehouse_response(await load_warehouse(db, warehouse_id)))


@router.delete("/{warehouse_id}", response_model=ActionResult[MessageData])
async def delete_warehouse(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    warehouse_id: int) -> Any:
    wh = await load_warehouse(db, warehouse_id)
    location_ids = [loc.id for loc in wh.locations]
    if await _stock_count(db, location_ids):
        raise BusinessError("ไม่สามารถลบคลังสินค้าที่มีสต๊อคอยู่ได้")
    if location_ids:
        await db.execute(delete(StockBalance).where(StockBalance.location_id.in_(location_ids)))
    await db.delete(wh)
    await create_audit_log(db, current_user.id, "DELETE", "WAREHOUSE", warehouse_id, {"code": wh.code})
    await db.commit()
    return ok(MessageData(message="ลบคลังสินค้าเรียบร้อย"))


# ========== ตำแหน่งจัดเก็บ ==========

@locations_router.get("/", response_model=ActionResult[List[LocationResponse]])
async def list_locations(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:read")),
    warehouse_id: Optional[int] = Query(None),
    active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None)) -> Any:
    query = select(Location).options(selectinload(Location.warehouse))
    if warehouse_id:
        query = query.where(Location.warehouse_id == warehouse_id)
    if active is not None:
        query = query.where(Location.active == active)
    if search:
        query = query.where(or_(Location.code.ilike(f"%{search}%"), Location.name.ilike(f"%{search}%")))
    locations = (await db.execute(query.order_by(Location.warehouse_id, Location.code))).scalars().all()
    return ok([build_location_response(loc) for loc in locations])


@locations_router.post("/", response_model=ActionResult[LocationResponse])
async def create_location(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    loc_in: LocationCreate) -> Any:
    await load_warehouse(db, loc_in.warehouse_id)
    await _ensure_unique_location_code(db, loc_in.warehouse_id, loc_in.code)
    loc = Location(**loc_in.model_dump())
    db.add(loc)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "LOCATION", loc.id, loc_in.model_dump())
    await db.commit()
    return ok(build_location_response(await load_location(db, loc.id)))


@locations_router.put("/{location_id}", response_model=ActionResult[LocationResponse])
async def update_location(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    location_id: int,
    loc_in: LocationUpdate) -> Any:
    loc = await load_location(db, location_id)
    data = loc_in.model_dump(exclude_unset=True)
    if data.get("code") and data["code"] != loc.code:
        await _ensure_unique_location_code(db, loc.warehouse_id, data["code"], location_id)
    for field, value in data.items():
        setattr(loc, field, value)
    await create_audit_log(db, current_user.id, "UPDATE", "LOCATION", loc.id, data)
    await db.commit()
    return ok(build_location_response(await load_location(db, location_id)))


@locations_router.post("/{location_id}/toggle-active", response_model=ActionResult[LocationResponse])
async def toggle_location_active(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    location_id: int) -> Any:
    loc = await load_location(db, location_id)
    loc.active = not loc.active
    await db.commit()
    return ok(build_location_response(await load_location(db, location_id)))


@locations_router.delete("/{location_id}", response_model=ActionResult[MessageData])
async def delete_location(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("stock:write")),
    location_id: int) -> Any:
    loc = await load_location(db, location_id)
    used = await db.execute(
        select(func.count(MovementLine.id)).where(
            or_(MovementLine.from_location_id == location_id, MovementLine.to_location_id == location_id)
        )
    )
    if await _stock_count(db, [location_id]) or (used.scalar() or 0):
        raise BusinessError("ไม่สามารถลบตำแหน่งที่มีสต๊อคหรือประวัติการเคลื่อนไหวได้")
    await db.execute(delete(StockBalance).where(StockBalance.location_id == location_id))
    await db.delete(loc)
    await create_audit_log(db, current_user.id, "DELETE", "LOCATION", location_id, {"code": loc.code})
    await db.commit()
    return ok(MessageData(message="ลบตำแหน่งจัดเก็บเรียบร้อย"))
