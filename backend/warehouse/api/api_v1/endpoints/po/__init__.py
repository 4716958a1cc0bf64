"""ใบสั่งซื้อ (PO)"""
from fastapi import APIRouter

from warehouse.api.api_v1.endpoints.po.crud import router as crud_router
from warehouse.api.api_v1.endpoints.po.workflow import router as workflow_router
from warehouse.api.api_v1.endpoints.po.core import calculate_po_totals

router = APIRouter()
router.include_router(crud_router)
router.include_router(workflow_router)

__all__ = ["router", "calculate_po_totals"]
