"""ผู้ใช้และสิทธิ์"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class UserCreate(BaseModel):
    username: str = Field(..., min_length=2, max_length=50, description="ชื่อผู้ใช้")
    name: str = Field(..., min_length=1, max_length=100, description="ชื่อที่แสดง")
    email: Optional[str] = Field(None, max_length=200)
    role: str = Field("VIEWER", description="บทบาท")
    custom_permissions: List[str] = Field(default_factory=list)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=200)


class RoleUpdate(BaseModel):
    role: str = Field(..., description="บทบาทใหม่")


class PermissionsUpdate(BaseModel):
    custom_permissions: List[str] = Field(default_factory=list, description="สิทธิ์พิเศษ")


class UserResponse(BaseModel):
    id: int
    username: str
    name: str
    email: Optional[str] = None
    role: str
    role_display: str
    custom_permissions: List[str] = []
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CurrentUserResponse(UserResponse):
    permissions: List[str] = []
