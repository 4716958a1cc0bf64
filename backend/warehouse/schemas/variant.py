"""ตัวเลือกสินค้าและ variant"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

from warehouse.schemas.product import ProductBase


class OptionValueCreate(BaseModel):
    value: str = Field(..., min_length=1, max_length=100)
    display_order: Optional[int] = None


class OptionValueUpdate(BaseModel):
    value: Optional[str] = Field(None, min_length=1, max_length=100)
    display_order: Optional[int] = None


class OptionValueResponse(BaseModel):
    id: int
    option_type_id: int
    value: str
    display_order: int

    model_config = ConfigDict(from_attributes=True)


class OptionTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="ชื่อตัวเลือก เช่น สี")
    display_order: int = 0
    values: List[str] = Field(default_factory=list, description="ค่าเริ่มต้น")


class OptionTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    display_order: Optional[int] = None


class OptionTypeResponse(BaseModel):
    id: int
    name: str
    display_order: int
    values: List[OptionValueResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ReorderValues(BaseModel):
    value_ids: List[int] = Field(..., min_length=1)


class OptionSelection(BaseModel):
    """ตัวเลือกที่ใช้สร้าง combination"""
    option_type_id: int
    option_type_name: str
    values: List[OptionValueResponse]


class CombinationOption(BaseModel):
    option_type_id: int
    option_type_name: str
    option_value_id: int
    value: str


class VariantCombination(BaseModel):
    options: List[CombinationOption]
    sku_suffix: str


class VariantCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=80)
    barcode: Optional[str] = Field(None, max_length=50)
    name: Optional[str] = Field(None, max_length=200)
    stock_type: str = Field("STOCKED", pattern="^(STOCKED|MADE_TO_ORDER|DROP_SHIP)$")
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    selling_price: Decimal = Field(Decimal("0"), ge=0)
    reorder_point: Decimal = Field(Decimal("0"), ge=0)
    min_qty: Decimal = Field(Decimal("0"), ge=0)
    max_qty: Decimal = Field(Decimal("0"), ge=0)
    low_stock_alert: bool = True
    option_value_ids: List[int] = Field(default_factory=list)


class VariantUpdate(BaseModel):
    sku: Optional[str] = Field(None, min_length=1, max_length=80)
    barcode: Optional[str] = None
    name: Optional[str] = None
    stock_type: Optional[str] = Field(None, pattern="^(STOCKED|MADE_TO_ORDER|DROP_SHIP)$")
    cost_price: Optional[Decimal] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)
    reorder_point: Optional[Decimal] = Field(None, ge=0)
    min_qty: Optional[Decimal] = Field(None, ge=0)
    max_qty: Optional[Decimal] = Field(None, ge=0)
    low_stock_alert: Optional[bool] = None
    active: Optional[bool] = None
    option_value_ids: Optional[List[int]] = None


class VariantResponse(BaseModel):
    id: int
    product_id: int
    sku: str
    barcode: Optional[str] = None
    name: Optional[str] = None
    stock_type: str
    cost_price: float
    selling_price: float
    reorder_point: float
    min_qty: float
    max_qty: float
    low_stock_alert: bool
    last_cost: float
    active: bool
    total_stock: float = 0
    options: List[CombinationOption] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductWithVariantsCreate(BaseModel):
    product: ProductBase
    variants: List[VariantCreate] = Field(..., min_length=1)


class InlineOption(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="ชื่อตัวเลือก")
    values: List[str] = Field(..., min_length=1)


class InlineVariant(BaseModel):
    sku: str = Field(..., min_length=1, max_length=80)
    barcode: Optional[str] = None
    # {"สี": "แดง", "ไซส์": "XL"}
    options: dict = Field(default_factory=dict)
    stock_type: str = Field("STOCKED", pattern="^(STOCKED|MADE_TO_ORDER|DROP_SHIP)$")
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    selling_price: Decimal = Field(Decimal("0"), ge=0)
    reorder_point: Decimal = Field(Decimal("0"), ge=0)
    min_qty: Decimal = Field(Decimal("0"), ge=0)
    max_qty: Decimal = Field(Decimal("0"), ge=0)
    initial_qty: Decimal = Field(Decimal("0"), ge=0, description="ยอดยกมา")
    initial_location_id: Optional[int] = None


class ProductWithInlineVariantsCreate(BaseModel):
    product: ProductBase
    options: List[InlineOption] = Field(default_factory=list)
    variants: List[InlineVariant] = Field(..., min_length=1)


class ProductWithVariantsResult(BaseModel):
    product_id: int
    sku: str
    variant_ids: List[int]
    movement_id: Optional[int] = None


class SkuCheckResult(BaseModel):
    exists: bool
