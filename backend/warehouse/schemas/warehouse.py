"""คลังสินค้าและตำแหน่งจัดเก็บ"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class WarehouseCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, description="รหัสคลัง")
    name: str = Field(..., min_length=1, max_length=100, description="ชื่อคลัง")
    address: Optional[str] = None


class WarehouseUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = None


class LocationCreate(BaseModel):
    warehouse_id: int
    code: str = Field(..., min_length=1, max_length=30, description="รหัสตำแหน่ง")
    name: str = Field(..., min_length=1, max_length=100, description="ชื่อตำแหน่ง")


class LocationUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=30)
    name: Optional[str] = Field(None, min_length=1, max_length=100)


class LocationResponse(BaseModel):
    id: int
    warehouse_id: int
    warehouse_name: str = ""
    code: str
    name: str
    full_name: str = ""
    active: bool

    model_config = ConfigDict(from_attributes=True)


class WarehouseResponse(BaseModel):
    id: int
    code: str
    name: str
    address: Optional[str] = None
    active: bool
    locations: List[LocationResponse] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
