"""หมวดหมู่และหน่วยนับ"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="ชื่อหมวดหมู่")
    description: Optional[str] = Field(None, max_length=500)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    active: Optional[bool] = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    active: bool
    products_count: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnitCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, description="รหัสหน่วย")
    name: str = Field(..., min_length=1, max_length=50, description="ชื่อหน่วย")


class UnitResponse(BaseModel):
    id: int
    code: str
    name: str

    model_config = ConfigDict(from_attributes=True)
