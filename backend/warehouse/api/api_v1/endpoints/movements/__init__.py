"""การเคลื่อนไหวสต๊อค"""
from fastapi import APIRouter

from warehouse.api.api_v1.endpoints.movements.batch import router as batch_router
from warehouse.api.api_v1.endpoints.movements.crud import router as crud_router
from warehouse.api.api_v1.endpoints.movements.workflow import router as workflow_router

router = APIRouter()
# /batch/* ต้องมาก่อน /{movement_id}/*
router.include_router(batch_router)
router.include_router(crud_router)
router.include_router(workflow_router)
