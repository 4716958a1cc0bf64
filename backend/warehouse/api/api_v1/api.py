"""รวม router ของ API v1"""
from fastapi import APIRouter

from warehouse.api.api_v1.endpoints import (
    users, categories, suppliers, warehouses, products, stock, lots,
    pr, grn, notifications, analytics, reports, integrations, audit_logs
)
from warehouse.api.api_v1.endpoints.variants import router as variants_router, options_router
from warehouse.api.api_v1.endpoints.movements import router as movements_router
from warehouse.api.api_v1.endpoints.po import router as po_router

api_router = APIRouter()

# ข้อมูลหลัก
api_router.include_router(users.router, prefix="/users", tags=["ผู้ใช้"])
api_router.include_router(categories.router, prefix="/categories", tags=["หมวดหมู่"])
api_router.include_router(categories.units_router, prefix="/units", tags=["หน่วยนับ"])
api_router.include_router(suppliers.router, prefix="/suppliers", tags=["ผู้จำหน่าย"])
api_router.include_router(warehouses.router, prefix="/warehouses", tags=["คลังสินค้า"])
api_router.include_router(warehouses.locations_router, prefix="/locations", tags=["ตำแหน่งจัดเก็บ"])
api_router.include_router(variants_router, tags=["สินค้าหลายแบบ"])
api_router.include_router(options_router, prefix="/options", tags=["ตัวเลือกสินค้า"])
api_router.include_router(products.router, prefix="/products", tags=["สินค้า"])

# สต๊อค
api_router.include_router(stock.router, prefix="/stock", tags=["ยอดคงเหลือ"])
api_router.include_router(lots.router, prefix="/lots", tags=["Lot"])
api_router.include_router(movements_router, prefix="/movements", tags=["การเคลื่อนไหวสต๊อค"])

# จัดซื้อ
api_router.include_router(pr.router, prefix="/pr", tags=["ใบขอซื้อ"])
api_router.include_router(po_router, prefix="/po", tags=["ใบสั่งซื้อ"])
api_router.include_router(grn.router, prefix="/grn", tags=["ใบรับสินค้า"])

# แจ้งเตือนและรายงาน
api_router.include_router(notifications.router, prefix="/notifications", tags=["การแจ้งเตือน"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["วิเคราะห์"])
api_router.include_router(reports.router, prefix="/reports", tags=["รายงาน"])

# ระบบ
api_router.include_router(integrations.router, prefix="/integrations", tags=["การเชื่อมต่อ ERP"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["ประวัติการใช้งาน"])
