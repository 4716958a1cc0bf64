"""สินค้า"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field


class ProductBase(BaseModel):
    sku: str = Field(..., min_length=1, max_length=50, description="รหัสสินค้า")
    barcode: Optional[str] = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=200, description="ชื่อสินค้า")
    description: Optional[str] = None
    category_id: Optional[int] = None
    unit_id: Optional[int] = None
    item_type: str = Field("FINISHED_GOOD", pattern="^(FINISHED_GOOD|RAW_MATERIAL|CONSUMABLE)$")
    stock_type: str = Field("STOCKED", pattern="^(STOCKED|MADE_TO_ORDER|DROP_SHIP)$")
    reorder_point: Decimal = Field(Decimal("0"), ge=0, description="จุดสั่งซื้อ")
    min_qty: Decimal = Field(Decimal("0"), ge=0)
    max_qty: Decimal = Field(Decimal("0"), ge=0)
    standard_cost: Decimal = Field(Decimal("0"), ge=0)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    sku: Optional[str] = Field(None, min_length=1, max_length=50)
    barcode: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[int] = None
    unit_id: Optional[int] = None
    item_type: Optional[str] = Field(None, pattern="^(FINISHED_GOOD|RAW_MATERIAL|CONSUMABLE)$")
    stock_type: Optional[str] = Field(None, pattern="^(STOCKED|MADE_TO_ORDER|DROP_SHIP)$")
    reorder_point: Optional[Decimal] = Field(None, ge=0)
    min_qty: Optional[Decimal] = Field(None, ge=0)
    max_qty: Optional[Decimal] = Field(None, ge=0)
    standard_cost: Optional[Decimal] = Field(None, ge=0)
    active: Optional[bool] = None


class BalanceBrief(BaseModel):
    location_id: int
    location_code: str
    location_name: str
    variant_id: Optional[int] = None
    qty_on_hand: float


class VariantBrief(BaseModel):
    id: int
    sku: str
    name: Optional[str] = None
    barcode: Optional[str] = None
    stock_type: str
    active: bool
    total_stock: float = 0


class ProductResponse(BaseModel):
    id: int
    sku: str
    barcode: Optional[str] = None
    name: str
    description: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    unit_id: Optional[int] = None
    unit_name: Optional[str] = None
    item_type: str
    item_type_display: str
    stock_type: str
    stock_type_display: str
    reorder_point: float
    min_qty: float
    max_qty: float
    standard_cost: float
    last_cost: float
    has_variants: bool
    active: bool
    total_stock: float = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductDetailResponse(ProductResponse):
    variants: List[VariantBrief] = []
    balances: List[BalanceBrief] = []


class BarcodeLookupResponse(BaseModel):
    product: ProductResponse
    variant: Optional[VariantBrief] = None
