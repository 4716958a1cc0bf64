"""
การเคลื่อนไหวสต๊อค

ขั้นตอน: DRAFT → SUBMITTED → APPROVED → POSTED
ปฏิเสธได้จาก SUBMITTED (กลับไปแก้ไขได้) ยกเลิกได้ทุกสถานะยกเว้น POSTED
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from warehouse.db.base import Base

MOVEMENT_TYPE_LABELS = {
    "RECEIVE": "รับเข้า",
    "ISSUE": "เบิกออก",
    "TRANSFER": "โอนย้าย",
    "ADJUST": "ปรับปรุง",
    "RETURN": "คืนของ",
}

DOC_STATUS_LABELS = {
    "DRAFT": "ร่าง",
    "SUBMITTED": "รออนุมัติ",
    "APPROVED": "อนุมัติแล้ว",
    "REJECTED": "ถูกปฏิเสธ",
    "POSTED": "บันทึกแล้ว",
    "CANCELLED": "ยกเลิก",
}


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    # รูปแบบ: MOV2410-000001
    doc_number = Column(String(30), unique=True, nullable=False, index=True, comment="เลขที่เอกสาร")
    type = Column(String(20), nullable=False, index=True, comment="ประเภท")
    status = Column(String(20), nullable=False, default="DRAFT", index=True, comment="สถานะ")

    # ที่มา: GRN / REVERSAL / RETURN_FROM / INITIAL_STOCK / ERP
    ref_type = Column(String(20), index=True, comment="ประเภทเอกสารอ้างอิง")
    ref_id = Column(Integer, index=True, comment="ID เอกสารอ้างอิง")

    note = Column(Text)
    reason = Column(String(200), comment="เหตุผล")

    created_by_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    approved_by_id = Column(Integer, ForeignKey("sys_user.id"))
    approved_at = Column(DateTime)
    posted_by_id = Column(Integer, ForeignKey("sys_user.id"))
    posted_at = Column(DateTime, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by = relationship("User", foreign_keys=[created_by_id])
    approved_by = relationship("User", foreign_keys=[approved_by_id])
    posted_by = relationship("User", foreign_keys=[posted_by_id])
    lines = relationship("MovementLine", back_populates="movement", cascade="all, delete-orphan",
                         order_by="MovementLine.id")

    def __repr__(self):
        return f"<StockMovement {self.doc_number} ({self.type}: {self.status})>"

    @property
    def type_display(self) -> str:
        return MOVEMENT_TYPE_LABELS.get(self.type, self.type)

    @property
    def status_display(self) -> str:
        return DOC_STATUS_LABELS.get(self.status, self.status)


class MovementLine(Base):
    __tablename__ = "movement_lines"

    id = Column(Integer, primary_key=True, index=True)
    movement_id = Column(Integer, ForeignKey("stock_movements.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True, index=True)
    lot_id = Column(Integer, ForeignKey("lots.id"), nullable=True)
    from_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    to_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    # ADJUST ติดลบได้ ประเภทอื่นต้องเป็นบวก
    qty = Column(DECIMAL(18, 4), nullable=False, comment="จำนวน")
    unit_cost = Column(DECIMAL(18, 4), default=Decimal("0"), comment="ต้นทุนต่อหน่วย")
    note = Column(Text)
    order_ref = Column(String(100), index=True, comment="เลขที่คำสั่งขาย/ผลิตที่อ้างอิง")

    movement = relationship("StockMovement", back_populates="lines")
    product = relationship("Product")
    variant = relationship("ProductVariant")
    lot = relationship("Lot")
    from_location = relationship("Location", foreign_keys=[from_location_id])
    to_location = relationship("Location", foreign_keys=[to_location_id])

    def __repr__(self):
        return f"<MovementLine {self.movement_id}: {self.product_id} x {self.qty}>"
