"""ยอดคงเหลือและ Lot"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field


class StockBalanceResponse(BaseModel):
    id: int
    product_id: int
    product_sku: str
    product_name: str
    variant_id: Optional[int] = None
    variant_sku: Optional[str] = None
    variant_name: Optional[str] = None
    category_name: Optional[str] = None
    location_id: int
    location_code: str
    location_name: str
    warehouse_id: int
    warehouse_name: str
    qty_on_hand: float
    reorder_point: float
    is_low_stock: bool
    unit_cost: float = 0
    value: float = 0


class StockSummary(BaseModel):
    total_products: int
    total_qty: float
    total_value: float
    low_stock_count: int


class LotCreate(BaseModel):
    lot_number: str = Field(..., min_length=1, max_length=50, description="หมายเลข Lot")
    product_id: int
    variant_id: Optional[int] = None
    expiry_date: Optional[datetime] = None
    manufactured_date: Optional[datetime] = None
    qty_received: Decimal = Field(Decimal("0"), ge=0)
    note: Optional[str] = None


class LotBalanceResponse(BaseModel):
    location_id: int
    location_code: str
    qty: float


class LotResponse(BaseModel):
    id: int
    lot_number: str
    product_id: int
    product_sku: str = ""
    product_name: str = ""
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    expiry_date: Optional[datetime] = None
    manufactured_date: Optional[datetime] = None
    qty_received: float
    total_qty_on_hand: float = 0
    note: Optional[str] = None
    balances: List[LotBalanceResponse] = []
    created_at: datetime


class ExpiringLotResponse(BaseModel):
    id: int
    lot_number: str
    product_id: int
    product_sku: str
    product_name: str
    variant_name: Optional[str] = None
    expiry_date: datetime
    days_until_expiry: int
    total_qty_on_hand: float
    balances: List[LotBalanceResponse] = []


class LowStockItem(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    sku: str
    name: str
    category: Optional[str] = None
    current_qty: float
    reorder_point: float
    min_qty: float
    max_qty: float
