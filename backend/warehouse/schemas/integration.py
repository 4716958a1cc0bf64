"""การเชื่อมต่อ ERP"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field


class IntegrationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    provider: str = Field("custom_erp", max_length=30)


class IntegrationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    active: Optional[bool] = None


class IntegrationResponse(BaseModel):
    id: int
    name: str
    provider: str
    api_key: str
    active: bool
    last_sync_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ERPMovementLine(BaseModel):
    sku: str = Field(..., min_length=1, description="SKU สินค้าหรือ variant")
    qty: Decimal
    from_location: Optional[str] = Field(None, description="รหัสตำแหน่งต้นทาง")
    to_location: Optional[str] = Field(None, description="รหัสตำแหน่งปลายทาง")
    unit_cost: Decimal = Field(Decimal("0"), ge=0)
    lot_number: Optional[str] = None
    order_ref: Optional[str] = None
    note: Optional[str] = None


class ERPMovementCreate(BaseModel):
    type: str = Field(..., pattern="^(RECEIVE|ISSUE|TRANSFER|ADJUST|RETURN)$")
    note: Optional[str] = None
    reference: Optional[str] = Field(None, description="เลขที่อ้างอิงฝั่ง ERP")
    auto_post: bool = False
    lines: List[ERPMovementLine] = Field(..., min_length=1)


class ERPQuickMovement(BaseModel):
    """รับเข้า/เบิกออกแบบย่อ"""
    note: Optional[str] = None
    reference: Optional[str] = None
    lines: List[ERPMovementLine] = Field(..., min_length=1)


class ERPStockEntry(BaseModel):
    location_id: int
    location_code: str
    warehouse_code: str
    qty: float


class ERPVariant(BaseModel):
    id: int
    sku: str
    barcode: Optional[str] = None
    name: Optional[str] = None
    last_cost: float
    total_stock: float
    stock: List[ERPStockEntry] = []


class ERPProduct(BaseModel):
    id: int
    sku: str
    barcode: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    item_type: str
    stock_type: str
    reorder_point: float
    last_cost: float
    total_stock: float
    stock: List[ERPStockEntry] = []
    variants: List[ERPVariant] = []
    updated_at: Optional[datetime] = None


class ERPPagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ERPProductList(BaseModel):
    items: List[ERPProduct]
    pagination: ERPPagination


class ERPDeletedProduct(BaseModel):
    id: int
    sku: str
    deleted_at: datetime


class ERPStockRow(BaseModel):
    product_id: int
    sku: str
    name: str
    variant_id: Optional[int] = None
    variant_sku: Optional[str] = None
    location_code: str
    warehouse_code: str
    qty: float
    reorder_point: float
    is_low_stock: bool


class ERPSkuStock(BaseModel):
    sku: str
    product_id: int
    variant_id: Optional[int] = None
    name: str
    total_qty: float
    stock: List[ERPStockEntry] = []


class ERPMovementLineOut(BaseModel):
    sku: str
    qty: float
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    lot_number: Optional[str] = None
    order_ref: Optional[str] = None


class ERPMovement(BaseModel):
    id: int
    doc_number: str
    type: str
    status: str
    ref_type: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime
    posted_at: Optional[datetime] = None
    lines: List[ERPMovementLineOut] = []


class ERPMovementList(BaseModel):
    items: List[ERPMovement]
    pagination: ERPPagination
