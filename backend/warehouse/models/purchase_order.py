"""
ใบสั่งซื้อ (PO) และใบรับสินค้า (GRN)

PO: DRAFT → SUBMITTED → APPROVED → SENT → PARTIALLY_RECEIVED → FULLY_RECEIVED → CLOSED
GRN ลดยอดคงค้างของ PO line และเพิ่มสต๊อคผ่าน movement ประเภท RECEIVE
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from warehouse.db.base import Base

PO_STATUS_LABELS = {
    "DRAFT": "ร่าง",
    "SUBMITTED": "รออนุมัติ",
    "APPROVED": "อนุมัติแล้ว",
    "REJECTED": "ไม่อนุมัติ",
    "SENT": "ส่งให้ Supplier แล้ว",
    "IN_PROGRESS": "กำลังดำเนินการ",
    "PARTIALLY_RECEIVED": "รับบางส่วน",
    "FULLY_RECEIVED": "รับครบแล้ว",
    "CLOSED": "ปิดแล้ว",
    "CANCELLED": "ยกเลิก",
}

VAT_TYPE_LABELS = {
    "NO_VAT": "ไม่มี VAT",
    "EXCLUDED": "แยก VAT",
    "INCLUDED": "รวม VAT",
}

GRN_STATUS_LABELS = {
    "DRAFT": "ร่าง",
    "POSTED": "บันทึกแล้ว",
    "CANCELLED": "ยกเลิก",
}


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)
    po_number = Column(String(30), unique=True, nullable=False, index=True, comment="เลขที่ PO")
    status = Column(String(20), nullable=False, default="DRAFT", index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    pr_id = Column(Integer, ForeignKey("purchase_requisitions.id"), nullable=True, index=True)

    vat_type = Column(String(10), nullable=False, default="EXCLUDED")
    vat_rate = Column(DECIMAL(5, 2), nullable=False, default=Decimal("7"))
    subtotal = Column(DECIMAL(14, 2), default=Decimal("0"))
    vat_amount = Column(DECIMAL(14, 2), default=Decimal("0"))
    total = Column(DECIMAL(14, 2), default=Decimal("0"))

    eta = Column(DateTime, comment="วันที่คาดว่าจะได้รับ")
    terms = Column(String(200), comment="เงื่อนไข")
    note = Column(Text)

    created_by_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    approved_by_id = Column(Integer, ForeignKey("sys_user.id"))
    approved_at = Column(DateTime)
    sent_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = relationship("Supplier", back_populates="pos")
    pr = relationship("PurchaseRequisition", back_populates="pos")
    created_by = relationship("User", foreign_keys=[created_by_id])
    approved_by = relationship("User", foreign_keys=[approved_by_id])
    lines = relationship("POLine", back_populates="po", cascade="all, delete-orphan", order_by="POLine.id")
    timelines = relationship("POTimeline", back_populates="po", cascade="all, delete-orphan",
                             order_by="POTimeline.id")
    grns = relationship("GRN", back_populates="po", order_by="GRN.id")

    def __repr__(self):
        return f"<PO {self.po_number} ({self.status})>"

    @property
    def status_display(self) -> str:
        return PO_STATUS_LABELS.get(self.status, self.status)

    @property
    def vat_type_display(self) -> str:
        return VAT_TYPE_LABELS.get(self.vat_type, self.vat_type)


class POLine(Base):
    __tablename__ = "po_lines"

    id = Column(Integer, primary_key=True, index=True)
    po_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    qty = Column(DECIMAL(18, 4), nullable=False)
    unit_price = Column(DECIMAL(18, 4), nullable=False, default=Decimal("0"))
    qty_received = Column(DECIMAL(18, 4), nullable=False, default=Decimal("0"))
    note = Column(Text)

    po = relationship("PurchaseOrder", back_populates="lines")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    @property
    def qty_remaining(self) -> Decimal:
        """ยอดคงค้าง ไม่ติดลบแม้รับเกิน"""
        remaining = (self.qty or Decimal("0")) - (self.qty_received or Decimal("0"))
        return max(remaining, Decimal("0"))

    @property
    def amount(self) -> Decimal:
        return (self.qty or Decimal("0")) * (self.unit_price or Decimal("0"))


class POTimeline(Base):
    """ประวัติการดำเนินการของ PO"""
    __tablename__ = "po_timelines"

    id = Column(Integer, primary_key=True, index=True)
    po_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    action = Column(String(100), nullable=False, comment="การดำเนินการ")
    note = Column(Text)
    actor_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    po = relationship("PurchaseOrder", back_populates="timelines")
    actor = relationship("User")


class GRN(Base):
    __tablename__ = "grns"

    id = Column(Integer, primary_key=True, index=True)
    grn_number = Column(String(30), unique=True, nullable=False, index=True, comment="เลขที่ GRN")
    po_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="DRAFT", index=True)
    received_by_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    received_at = Column(DateTime, default=datetime.utcnow, comment="วันที่รับสินค้า")
    note = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    po = relationship("PurchaseOrder", back_populates="grns")
    received_by = relationship("User")
    lines = relationship("GRNLine", back_populates="grn", cascade="all, delete-orphan", order_by="GRNLine.id")

    def __repr__(self):
        return f"<GRN {self.grn_number} ({self.status})>"

    @property
    def status_display(self) -> str:
        return GRN_STATUS_LABELS.get(self.status, self.status)


class GRNLine(Base):
    __tablename__ = "grn_lines"

    id = Column(Integer, primary_key=True, index=True)
    grn_id = Column(Integer, ForeignKey("grns.id"), nullable=False, index=True)
    po_line_id = Column(Integer, ForeignKey("po_lines.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    lot_id = Column(Integer, ForeignKey("lots.id"), nullable=True)
    qty_received = Column(DECIMAL(18, 4), nullable=False)
    unit_cost = Column(DECIMAL(18, 4), default=Decimal("0"))

    grn = relationship("GRN", back_populates="lines")
    po_line = relationship("POLine")
    product = relationship("Product")
    variant = relationship("ProductVariant")
    location = relationship("Location")
