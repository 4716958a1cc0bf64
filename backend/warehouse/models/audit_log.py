"""
บันทึกการดำเนินการ (Audit log)
ใช้ตรวจสอบย้อนหลังว่าใครทำอะไรกับเอกสารใด
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from warehouse.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False, index=True)

    # CREATE / UPDATE / DELETE / SUBMIT / APPROVE / REJECT / POST / CANCEL / SEND / AUTO_CREATE ...
    action = Column(String(30), nullable=False, index=True, comment="การดำเนินการ")

    # PRODUCT / VARIANT / MOVEMENT / PR / PO / GRN / SUPPLIER / USER ...
    ref_type = Column(String(30), nullable=False, index=True, comment="ประเภทข้อมูล")
    ref_id = Column(Integer, index=True, comment="ID ข้อมูล")

    old_data = Column(JSON, comment="ข้อมูลก่อนแก้ไข")
    new_data = Column(JSON, comment="ข้อมูลหลังแก้ไข")

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    actor = relationship("User", foreign_keys=[actor_id])

    def __repr__(self):
        return f"<AuditLog {self.action} {self.ref_type}:{self.ref_id}>"

    @property
    def action_display(self) -> str:
        action_map = {
            "CREATE": "สร้าง",
            "UPDATE": "แก้ไข",
            "DELETE": "ลบ",
            "SUBMIT": "ส่งอนุมัติ",
            "APPROVE": "อนุมัติ",
            "REJECT": "ปฏิเสธ",
            "POST": "บันทึก",
            "CANCEL": "ยกเลิก",
            "SEND": "ส่ง",
            "CLOSE": "ปิด",
            "REVERSE": "กลับรายการ",
            "AUTO_CREATE": "สร้างอัตโนมัติ",
        }
        return action_map.get(self.action, self.action)
