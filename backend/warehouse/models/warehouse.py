"""คลังสินค้าและตำแหน่งจัดเก็บ"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from warehouse.db.base import Base


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True, comment="รหัสคลัง")
    name = Column(String(100), nullable=False, comment="ชื่อคลัง")
    address = Column(Text)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    locations = relationship("Location", back_populates="warehouse", cascade="all, delete-orphan",
                             order_by="Location.code")

    def __repr__(self):
        return f"<Warehouse {self.code}>"


class Location(Base):
    """ตำแหน่งในคลัง (รหัสไม่ซ้ำภายในคลังเดียวกัน)"""
    __tablename__ = "locations"
    __table_args__ = (
        UniqueConstraint('warehouse_id', 'code', name='uq_location_warehouse_code'),
    )

    id = Column(Integer, primary_key=True, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False, index=True)
    code = Column(String(30), nullable=False, comment="รหัสตำแหน่ง")
    name = Column(String(100), nullable=False, comment="ชื่อตำแหน่ง")
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    warehouse = relationship("Warehouse", back_populates="locations")

    def __repr__(self):
        return f"<Location {self.code}>"

    @property
    def full_name(self) -> str:
        if self.warehouse:
            return f"{self.warehouse.name} / {self.name}"
        return self.name
