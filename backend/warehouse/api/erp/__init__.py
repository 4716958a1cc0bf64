from warehouse.api.erp.endpoints import router

__all__ = ["router"]
