"""การเคลื่อนไหวสต๊อค"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

MOVEMENT_TYPE_PATTERN = "^(RECEIVE|ISSUE|TRANSFER|ADJUST|RETURN)$"


class MovementLineInput(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    lot_id: Optional[int] = None
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    qty: Decimal = Field(..., description="จำนวน (ADJUST ติดลบได้)")
    unit_cost: Decimal = Field(Decimal("0"), ge=0)
    note: Optional[str] = None
    order_ref: Optional[str] = Field(None, max_length=100, description="เลขที่คำสั่งขาย/ผลิต")


class MovementCreate(BaseModel):
    type: str = Field(..., pattern=MOVEMENT_TYPE_PATTERN)
    note: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=200)
    lines: List[MovementLineInput] = Field(default_factory=list)


class MovementUpdate(BaseModel):
    note: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=200)
    lines: List[MovementLineInput] = Field(default_factory=list)


class ReturnLineInput(BaseModel):
    line_id: int
    qty: Decimal


class ReturnFromIssueCreate(BaseModel):
    note: Optional[str] = None
    lines: List[ReturnLineInput] = Field(..., min_length=1)


class BatchIds(BaseModel):
    ids: List[int] = Field(default_factory=list)
    reason: Optional[str] = None


class MovementLineResponse(BaseModel):
    id: int
    product_id: int
    product_sku: str
    product_name: str
    variant_id: Optional[int] = None
    variant_sku: Optional[str] = None
    variant_name: Optional[str] = None
    lot_id: Optional[int] = None
    lot_number: Optional[str] = None
    from_location_id: Optional[int] = None
    from_location_name: Optional[str] = None
    to_location_id: Optional[int] = None
    to_location_name: Optional[str] = None
    qty: float
    unit_cost: float
    note: Optional[str] = None
    order_ref: Optional[str] = None


class LinkedMovement(BaseModel):
    id: int
    doc_number: str
    type: str
    status: str
    ref_type: Optional[str] = None


class MovementResponse(BaseModel):
    id: int
    doc_number: str
    type: str
    type_display: str
    status: str
    status_display: str
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    note: Optional[str] = None
    reason: Optional[str] = None
    created_by_id: int
    created_by_name: str = ""
    approved_by_id: Optional[int] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    posted_by_id: Optional[int] = None
    posted_by_name: Optional[str] = None
    posted_at: Optional[datetime] = None
    created_at: datetime
    line_count: int = 0
    total_qty: float = 0


class MovementDetailResponse(MovementResponse):
    lines: List[MovementLineResponse] = []
    linked_movements: List[LinkedMovement] = []


class ReturnableLine(BaseModel):
    """บรรทัดของใบเบิกพร้อมจำนวนที่คืนได้"""
    line_id: int
    product_id: int
    product_sku: str
    product_name: str
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    from_location_id: Optional[int] = None
    from_location_name: Optional[str] = None
    issued_qty: float
    returned_qty: float
    remaining_qty: float


class VariantMovementEntry(BaseModel):
    """ประวัติการเคลื่อนไหวที่ Post แล้วของสินค้า/variant หนึ่ง (หนึ่งบรรทัดต่อหนึ่งรายการ)"""
    id: int
    doc_number: str
    type: str
    type_display: str
    status: str
    qty: float
    lot_number: Optional[str] = None
    from_location_code: Optional[str] = None
    from_warehouse_name: Optional[str] = None
    to_location_code: Optional[str] = None
    to_warehouse_name: Optional[str] = None
    note: Optional[str] = None
    created_by_name: str = ""
    created_at: datetime
    posted_at: Optional[datetime] = None


class IssuedMovement(BaseModel):
    """ใบเบิกที่ Post แล้วและยังมีของที่คืนได้"""
    id: int
    doc_number: str
    note: Optional[str] = None
    created_by_name: str = ""
    created_at: datetime
    posted_at: Optional[datetime] = None
    lines: List[ReturnableLine]
