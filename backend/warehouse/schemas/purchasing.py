"""ใบขอซื้อ (PR) ใบสั่งซื้อ (PO) และใบรับสินค้า (GRN)"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field


# ========== PR ==========

class PRLineInput(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    qty: Decimal = Field(..., gt=0, description="จำนวน")
    note: Optional[str] = None


class PRCreate(BaseModel):
    priority: str = Field("NORMAL", pattern="^(LOW|NORMAL|HIGH|URGENT)$")
    need_by_date: Optional[datetime] = None
    note: Optional[str] = None
    lines: List[PRLineInput] = Field(default_factory=list)


class PRUpdate(PRCreate):
    pass


class AutoPRCreate(BaseModel):
    product_ids: List[int] = Field(default_factory=list)


class PRLineResponse(BaseModel):
    id: int
    product_id: int
    product_sku: str
    product_name: str
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    qty: float
    note: Optional[str] = None


class PRResponse(BaseModel):
    id: int
    pr_number: str
    status: str
    status_display: str
    priority: str
    priority_display: str
    need_by_date: Optional[datetime] = None
    note: Optional[str] = None
    requester_id: int
    requester_name: str = ""
    approver_id: Optional[int] = None
    approver_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    line_count: int = 0
    created_at: datetime


class PRDetailResponse(PRResponse):
    lines: List[PRLineResponse] = []
    po_ids: List[int] = []


class LowStockSuggestion(BaseModel):
    product_id: int
    sku: str
    name: str
    current_qty: float
    reorder_point: float
    min_qty: float
    max_qty: float
    suggested_qty: float


# ========== PO ==========

class POLineInput(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    qty: Decimal = Field(..., gt=0, decimal_places=4)
    unit_price: Decimal = Field(Decimal("0"), ge=0, decimal_places=4)
    note: Optional[str] = None


class POCreate(BaseModel):
    supplier_id: int
    pr_id: Optional[int] = None
    vat_type: str = Field("EXCLUDED", pattern="^(NO_VAT|EXCLUDED|INCLUDED)$")
    vat_rate: Decimal = Field(Decimal("7"), ge=0, le=100)
    eta: Optional[datetime] = None
    terms: Optional[str] = Field(None, max_length=200)
    note: Optional[str] = None
    lines: List[POLineInput] = Field(default_factory=list)


class POUpdate(BaseModel):
    supplier_id: Optional[int] = None
    vat_type: Optional[str] = Field(None, pattern="^(NO_VAT|EXCLUDED|INCLUDED)$")
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    eta: Optional[datetime] = None
    terms: Optional[str] = None
    note: Optional[str] = None
    lines: Optional[List[POLineInput]] = None


class POTotals(BaseModel):
    subtotal: float
    vat_amount: float
    total: float


class POLineResponse(BaseModel):
    id: int
    product_id: int
    product_sku: str
    product_name: str
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    qty: float
    unit_price: float
    amount: float
    qty_received: float
    qty_remaining: float
    note: Optional[str] = None


class POTimelineResponse(BaseModel):
    id: int
    action: str
    note: Optional[str] = None
    actor_id: int
    actor_name: str = ""
    created_at: datetime


class GRNBrief(BaseModel):
    id: int
    grn_number: str
    status: str
    received_at: Optional[datetime] = None


class POResponse(BaseModel):
    id: int
    po_number: str
    status: str
    status_display: str
    supplier_id: int
    supplier_name: str = ""
    pr_id: Optional[int] = None
    pr_number: Optional[str] = None
    vat_type: str
    vat_type_display: str
    vat_rate: float
    subtotal: float
    vat_amount: float
    total: float
    eta: Optional[datetime] = None
    terms: Optional[str] = None
    note: Optional[str] = None
    created_by_id: int
    created_by_name: str = ""
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    created_at: datetime


class PODetailResponse(POResponse):
    lines: List[POLineResponse] = []
    timelines: List[POTimelineResponse] = []
    grns: List[GRNBrief] = []


# ========== GRN ==========

class GRNLineInput(BaseModel):
    po_line_id: int
    location_id: int
    qty_received: Decimal = Field(..., ge=0)
    unit_cost: Optional[Decimal] = Field(None, ge=0, description="ไม่ระบุจะใช้ราคาใน PO")
    lot_id: Optional[int] = None


class GRNCreate(BaseModel):
    po_id: int
    note: Optional[str] = None
    received_at: Optional[datetime] = None
    lines: List[GRNLineInput] = Field(default_factory=list)
    as_draft: bool = Field(False, description="บันทึกเป็นร่าง ยังไม่รับเข้าสต๊อค")


class GRNLineResponse(BaseModel):
    id: int
    po_line_id: int
    product_id: int
    product_sku: str
    product_name: str
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    location_id: int
    location_code: str
    lot_id: Optional[int] = None
    qty_received: float
    unit_cost: float


class GRNResponse(BaseModel):
    id: int
    grn_number: str
    status: str
    status_display: str
    po_id: int
    po_number: str
    supplier_name: str = ""
    received_by_id: int
    received_by_name: str = ""
    received_at: Optional[datetime] = None
    note: Optional[str] = None
    created_at: datetime


class GRNDetailResponse(GRNResponse):
    lines: List[GRNLineResponse] = []
    movement_id: Optional[int] = None
