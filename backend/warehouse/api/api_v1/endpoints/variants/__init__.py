from fastapi import APIRouter

from warehouse.api.api_v1.endpoints.variants.create import router as create_router
from warehouse.api.api_v1.endpoints.variants.crud import router as crud_router
from warehouse.api.api_v1.endpoints.variants.options import router as options_router
from warehouse.api.api_v1.endpoints.variants.core import generate_variant_combinations

router = APIRouter()
router.include_router(create_router)
router.include_router(crud_router)

__all__ = ["router", "options_router", "generate_variant_combinations"]
