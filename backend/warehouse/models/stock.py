"""
ยอดคงเหลือสต๊อคและ Lot

StockBalance เก็บยอดต่อ (สินค้า, variant, ตำแหน่ง)
ยอดเปลี่ยนได้จากการบันทึก (post) การเคลื่อนไหวหรือรับสินค้าจาก GRN เท่านั้น
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL, UniqueConstraint
from sqlalchemy.orm import relationship
from warehouse.db.base import Base


class StockBalance(Base):
    __tablename__ = "stock_balances"
    # variant_id เป็น NULL ได้ SQLite ไม่นับ NULL ในการตรวจ unique จึงค้นหาก่อนสร้างเสมอ
    __table_args__ = (
        UniqueConstraint('product_id', 'variant_id', 'location_id', name='uq_stock_product_variant_location'),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    qty_on_hand = Column(DECIMAL(18, 4), nullable=False, default=Decimal("0"), comment="จำนวนคงเหลือ")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", back_populates="stock_balances")
    variant = relationship("ProductVariant", back_populates="stock_balances")
    location = relationship("Location")

    def __repr__(self):
        return f"<StockBalance {self.product_id}/{self.variant_id}@{self.location_id} = {self.qty_on_hand}>"

    @property
    def reorder_point(self) -> Decimal:
        """ROP ของ variant ถ้ามี ไม่เช่นนั้นใช้ของสินค้า"""
        if self.variant is not None:
            return self.variant.reorder_point or Decimal("0")
        return self.product.reorder_point or Decimal("0")

    @property
    def is_low_stock(self) -> bool:
        rop = self.reorder_point
        return rop > 0 and (self.qty_on_hand or Decimal("0")) <= rop


class Lot(Base):
    """Lot / Batch สินค้า (ติดตามวันหมดอายุ)"""
    __tablename__ = "lots"
    __table_args__ = (
        UniqueConstraint('product_id', 'lot_number', name='uq_lot_product_number'),
    )

    id = Column(Integer, primary_key=True, index=True)
    lot_number = Column(String(50), nullable=False, index=True, comment="หมายเลข Lot")
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    expiry_date = Column(DateTime, index=True, comment="วันหมดอายุ")
    manufactured_date = Column(DateTime, comment="วันผลิต")
    qty_received = Column(DECIMAL(18, 4), default=Decimal("0"), comment="จำนวนรับเข้ารวม")
    note = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product")
    variant = relationship("ProductVariant")
    balances = relationship("LotBalance", back_populates="lot", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Lot {self.lot_number}>"


class LotBalance(Base):
    __tablename__ = "lot_balances"
    __table_args__ = (
        UniqueConstraint('lot_id', 'location_id', name='uq_lot_location'),
    )

    id = Column(Integer, primary_key=True, index=True)
    lot_id = Column(Integer, ForeignKey("lots.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    qty_on_hand = Column(DECIMAL(18, 4), nullable=False, default=Decimal("0"))
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    lot = relationship("Lot", back_populates="balances")
    location = relationship("Location")
