"""ผู้จัดจำหน่าย"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class SupplierBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, description="รหัสผู้จัดจำหน่าย")
    name: str = Field(..., min_length=1, max_length=200, description="ชื่อ")
    contact_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=200)
    address: Optional[str] = None
    tax_id: Optional[str] = Field(None, max_length=20, description="เลขประจำตัวผู้เสียภาษี")
    terms: Optional[str] = Field(None, max_length=200)
    lead_time_days: int = Field(0, ge=0, description="ระยะเวลาส่งของ (วัน)")
    note: Optional[str] = None


class SupplierCreate(SupplierBase):
    pass


class SupplierUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    tax_id: Optional[str] = None
    terms: Optional[str] = None
    lead_time_days: Optional[int] = Field(None, ge=0)
    note: Optional[str] = None


class SupplierResponse(SupplierBase):
    id: int
    active: bool
    po_count: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
