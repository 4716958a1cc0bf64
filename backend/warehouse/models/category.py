"""หมวดหมู่สินค้าและหน่วยนับ"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.orm import relationship
from warehouse.db.base import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True, comment="ชื่อหมวดหมู่")
    description = Column(Text, comment="รายละเอียด")
    active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    products = relationship("Product", back_populates="category")

    def __repr__(self):
        return f"<Category {self.name}>"


class Unit(Base):
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True, comment="รหัสหน่วย เช่น PCS")
    name = Column(String(50), nullable=False, comment="ชื่อหน่วย เช่น ชิ้น")
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Unit {self.code}: {self.name}>"
