"""
fixture สำหรับทดสอบ API

แต่ละเทสต์ใช้ฐานข้อมูล SQLite ในหน่วยความจำของตัวเอง
ข้อมูลตั้งต้นถูก commit ก่อนเรียก API ทุกครั้ง
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from warehouse.api.erp.deps import rate_limiter
from warehouse.core.deps import get_db
from warehouse.db.base import Base
from warehouse.main import app
from warehouse.services.notifications import deliver_outbox
from warehouse.models import (
    User, Category, Unit, Supplier, Warehouse, Location, Product, ERPIntegration
)

ROLES = ["ADMIN", "APPROVER", "PURCHASING", "INVENTORY", "REQUESTER", "VIEWER"]
API_KEY = "test-erp-key-0123456789"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def seed(session_factory) -> SimpleNamespace:
    """ผู้ใช้ทุกบทบาท คลังหนึ่งแห่งสองตำแหน่ง หมวดหมู่ หน่วยนับ ผู้จำหน่าย สินค้าสองรายการ และคีย์ ERP"""
    async with session_factory() as db:
        users = {}
        for role in ROLES:
            user = User(username=role.lower(), name=f"ผู้ใช้ {role}", role=role, custom_permissions=[])
            db.add(user)
            users[role] = user

        warehouse = Warehouse(code="WH01", name="คลังหลัก")
        db.add(warehouse)
        await db.flush()
        loc_a = Location(warehouse_id=warehouse.id, code="A-01", name="ชั้น A-01")
        loc_b = Location(warehouse_id=warehouse.id, code="B-01", name="ชั้น B-01")
        category = Category(name="วัตถุดิบ")
        unit = Unit(code="PCS", name="ชิ้น")
        supplier = Supplier(code="SUP-001", name="บริษัท ทดสอบ จำกัด", lead_time_days=5)
        db.add_all([loc_a, loc_b, category, unit, supplier])
        await db.flush()

        fabric = Product(
            sku="RM-001", name="ผ้าฝ้าย", category_id=category.id, unit_id=unit.id,
            item_type="RAW_MATERIAL", reorder_point=Decimal("20"), max_qty=Decimal("100"))
        thread = Product(
            sku="RM-002", name="ด้ายเย็บ", category_id=category.id, unit_id=unit.id,
            item_type="RAW_MATERIAL", reorder_point=Decimal("5"))
        integration = ERPIntegration(name="ERP ทดสอบ", provider="custom_erp", api_key=API_KEY)
        db.add_all([fabric, thread, integration])
        await db.commit()

        return SimpleNamespace(
            users={role: user.id for role, user in users.items()},
            warehouse_id=warehouse.id,
            loc_a=loc_a.id,
            loc_b=loc_b.id,
            category_id=category.id,
            unit_id=unit.id,
            supplier_id=supplier.id,
            product_id=fabric.id,
            product2_id=thread.id,
            integration_id=integration.id,
            api_key=API_KEY,
        )


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session
            await deliver_outbox(session)

    app.dependency_overrides[get_db] = override_get_db
    rate_limiter.reset()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
    rate_limiter.reset()


@pytest.fixture
def as_role(seed):
    """header ของผู้ใช้ตามบทบาท"""

    def headers(role: str) -> dict:
        return {"X-User-Id": str(seed.users[role])}

    return headers
