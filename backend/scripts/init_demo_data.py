"""
สร้างข้อมูลตัวอย่าง
- ล้างข้อมูลทั้งหมด (คงโครงสร้างตาราง)
- สร้างผู้ใช้ตัวอย่างทุกบทบาท
- สร้างคลัง ตำแหน่ง หมวดหมู่ หน่วยนับ ผู้จำหน่าย สินค้า และคีย์ ERP
- รับสินค้าเข้าคลังเป็นยอดตั้งต้น
"""

import asyncio
import secrets
import sys
import os
from datetime import datetime
from decimal import Decimal

# ให้ import แพ็กเกจ warehouse ได้เมื่อรันจากโฟลเดอร์ scripts
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from warehouse.db.session import SessionLocal
from warehouse.db.base import Base
from warehouse.db.init_db import ensure_tables_exist
from warehouse.db.migrations import run_migrations
from warehouse.models import (
    User, Category, Unit, Supplier, Warehouse, Location, Product, MovementLine, ERPIntegration
)
from warehouse.api.api_v1.endpoints.movements.core import (
    create_movement_record, load_movement, post_movement
)

DEMO_USERS = [
    {"username": "admin", "name": "ผู้ดูแลระบบ", "role": "ADMIN", "email": "admin@example.com"},
    {"username": "approver", "name": "สมชาย อนุมัติ", "role": "APPROVER", "email": "approver@example.com"},
    {"username": "purchasing", "name": "สมหญิง จัดซื้อ", "role": "PURCHASING", "email": "purchasing@example.com"},
    {"username": "inventory", "name": "วิชัย คลังสินค้า", "role": "INVENTORY", "email": "inventory@example.com"},
    {"username": "requester", "name": "มานี ขอซื้อ", "role": "REQUESTER", "email": "requester@example.com"},
    {"username": "viewer", "name": "ปิติ ดูรายงาน", "role": "VIEWER", "email": None},
]

DEMO_PRODUCTS = [
    # sku, ชื่อ, หมวดหมู่, หน่วย, ROP, ต้นทุน, จำนวนตั้งต้น
    ("RM-001", "ผ้าฝ้าย 100%", "วัตถุดิบ", "M", "50", "85.00", "200"),
    ("RM-002", "ด้ายเย็บ สีขาว", "วัตถุดิบ", "ROLL", "20", "35.00", "15"),
    ("FG-001", "เสื้อยืดคอกลม", "สินค้าสำเร็จรูป", "PCS", "30", "120.00", "80"),
    ("FG-002", "กางเกงผ้าฝ้าย", "สินค้าสำเร็จรูป", "PCS", "20", "250.00", "10"),
    ("CS-001", "ถุงบรรจุภัณฑ์", "วัสดุสิ้นเปลือง", "PACK", "10", "45.00", "40"),
]

ITEM_TYPES = {
    "วัตถุดิบ": "RAW_MATERIAL",
    "สินค้าสำเร็จรูป": "FINISHED_GOOD",
    "วัสดุสิ้นเปลือง": "CONSUMABLE",
}


async def clear_all_data(db: AsyncSession):
    """ล้างข้อมูลทุกตารางตามลำดับ foreign key"""
    print("🗑️  ล้างข้อมูลทั้งหมด...")
    for table in reversed(Base.metadata.sorted_tables):
        await db.execute(delete(table))
        print(f"   ✓ ล้าง {table.name}")
    await db.commit()
    print("   เสร็จ\n")


async def create_users(db: AsyncSession) -> dict:
    print("👤 สร้างผู้ใช้...")
    users = {}
    for data in DEMO_USERS:
        user = User(**data, custom_permissions=[], active=True)
        db.add(user)
        await db.flush()
        users[data["role"]] = user
        print(f"   ✓ {data['role']}: {data['username']} (X-User-Id: {user.id})")
    return users


async def create_master_data(db: AsyncSession) -> dict:
    print("🏢 สร้างข้อมูลหลัก...")
    warehouse = Warehouse(code="WH01", name="คลังสินค้าหลัก", address="นิคมอุตสาหกรรมบางปู สมุทรปราการ")
    db.add(warehouse)
    await db.flush()
    locations = {}
    for code, name in [("A-01", "ชั้นวาง A-01"), ("A-02", "ชั้นวาง A-02"), ("RCV", "จุดรับสินค้า")]:
        location = Location(warehouse_id=warehouse.id, code=code, name=name)
        db.add(location)
        locations[code] = location
    print(f"   ✓ คลัง {warehouse.code} พร้อม {len(locations)} ตำแหน่ง")

    categories = {}
    for name in ITEM_TYPES:
        category = Category(name=name)
        db.add(category)
        categories[name] = category

    units = {}
    for code, name in [("PCS", "ชิ้น"), ("M", "เมตร"), ("ROLL", "ม้วน"), ("PACK", "แพ็ค")]:
        unit = Unit(code=code, name=name)
        db.add(unit)
        units[code] = unit

    supplier = Supplier(
        code="SUP-001",
        name="บริษัท สยามผ้าไทย จำกัด",
        contact_name="คุณสมศักดิ์",
        phone="02-123-4567",
        email="sales@siamfabric.example.com",
        tax_id="0105551234567",
        terms="เครดิต 30 วัน",
        lead_time_days=7)
    db.add(supplier)
    await db.flush()
    print(f"   ✓ หมวดหมู่ {len(categories)} หน่วยนับ {len(units)} ผู้จำหน่าย 1 ราย")
    return {"warehouse": warehouse, "locations": locations, "categories": categories, "units": units}


async def create_products(db: AsyncSession, master: dict) -> list:
    print("📦 สร้างสินค้า...")
    products = []
    for sku, name, category, unit, rop, cost, opening in DEMO_PRODUCTS:
        product = Product(
            sku=sku,
            name=name,
            category_id=master["categories"][category].id,
            unit_id=master["units"][unit].id,
            item_type=ITEM_TYPES[category],
            reorder_point=Decimal(rop),
            standard_cost=Decimal(cost))
        db.add(product)
        products.append((product, Decimal(cost), Decimal(opening)))
        print(f"   ✓ {sku} {name}")
    await db.flush()
    return products


async def receive_opening_stock(db: AsyncSession, admin: User, products: list, location: Location):
    """รับเข้ายอดตั้งต้นเป็นเอกสาร RECEIVE ที่บันทึกแล้ว"""
    print("📥 รับสินค้ายอดตั้งต้น...")
    lines = [
        MovementLine(product_id=product.id, to_location_id=location.id, qty=qty, unit_cost=cost)
        for product, cost, qty in products
    ]
    movement = await create_movement_record(db, "RECEIVE", lines, admin.id, note="ยอดตั้งต้น", reason="ข้อมูลตัวอย่าง")
    movement = await load_movement(db, movement.id)
    movement.status = "APPROVED"
    movement.approved_by_id = admin.id
    movement.approved_at = datetime.utcnow()
    await post_movement(db, movement, admin)
    print(f"   ✓ {movement.doc_number} ({len(lines)} รายการ)")


async def create_integration(db: AsyncSession) -> ERPIntegration:
    integration = ERPIntegration(name="ERP ตัวอย่าง", provider="custom_erp", api_key=secrets.token_urlsafe(32))
    db.add(integration)
    await db.flush()
    return integration


async def main():
    print("=" * 60)
    print("🚀 ระบบคลังสินค้า - สร้างข้อมูลตัวอย่าง")
    print("=" * 60 + "\n")

    await ensure_tables_exist()

    async with SessionLocal() as db:
        try:
            await clear_all_data(db)
            await run_migrations(db)

            users = await create_users(db)
            master = await create_master_data(db)
            products = await create_products(db, master)
            await receive_opening_stock(db, users["ADMIN"], products, master["locations"]["A-01"])
            integration = await create_integration(db)

            await db.commit()

            print("\n" + "=" * 60)
            print("✅ สร้างข้อมูลตัวอย่างเสร็จ")
            print("=" * 60)
            print("\n📝 ส่ง header X-User-Id ตาม ID ผู้ใช้ด้านบน")
            print(f"🔑 ERP API key: {integration.api_key}")
        except Exception as e:
            await db.rollback()
            print(f"\n❌ สร้างข้อมูลไม่สำเร็จ: {e}")
            raise


if __name__ == "__main__":
    asyncio.run(main())
