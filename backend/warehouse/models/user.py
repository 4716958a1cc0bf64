from datetime import datetime
from typing import List
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON

from warehouse.db.base import Base
from warehouse.core.permissions import has_permission, get_effective_permissions


class User(Base):
    __tablename__ = "sys_user"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False, comment="ชื่อที่แสดง")
    email = Column(String(200), comment="อีเมลสำหรับแจ้งเตือน")
    # ADMIN / APPROVER / PURCHASING / INVENTORY / REQUESTER / VIEWER
    role = Column(String(20), nullable=False, default="VIEWER", index=True, comment="บทบาท")
    custom_permissions = Column(JSON, default=list, comment="สิทธิ์พิเศษเพิ่มเติม")
    active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime, comment="เวลาที่ลบ")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def role_display(self) -> str:
        role_map = {
            "ADMIN": "ผู้ดูแลระบบ",
            "APPROVER": "ผู้อนุมัติ",
            "PURCHASING": "ฝ่ายจัดซื้อ",
            "INVENTORY": "ฝ่ายคลังสินค้า",
            "REQUESTER": "ผู้ขอซื้อ",
            "VIEWER": "ผู้ดูข้อมูล",
        }
        return role_map.get(self.role, self.role)

    def has_permission(self, permission: str) -> bool:
        return has_permission(self.role, permission, self.custom_permissions or [])

    def has_any_permission(self, permissions: List[str]) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def get_all_permissions(self) -> List[str]:
        return get_effective_permissions(self.role, self.custom_permissions or [])
