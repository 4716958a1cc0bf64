from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.orm import relationship
from warehouse.db.base import Base


class Supplier(Base):
    """ผู้จัดจำหน่าย"""
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True, comment="รหัสผู้จัดจำหน่าย")
    name = Column(String(200), nullable=False, index=True, comment="ชื่อ")
    contact_name = Column(String(100), comment="ผู้ติดต่อ")
    phone = Column(String(50))
    email = Column(String(200))
    address = Column(Text)
    tax_id = Column(String(20), comment="เลขประจำตัวผู้เสียภาษี")
    terms = Column(String(200), comment="เงื่อนไขการชำระเงิน")
    lead_time_days = Column(Integer, default=0, comment="ระยะเวลาส่งของโดยประมาณ (วัน)")
    note = Column(Text)
    active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pos = relationship("PurchaseOrder", back_populates="supplier")

    def __repr__(self):
        return f"<Supplier {self.code}: {self.name}>"
