"""ใบขอซื้อ (PR)"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from warehouse.db.base import Base

PR_STATUS_LABELS = {
    "DRAFT": "ร่าง",
    "SUBMITTED": "รออนุมัติ",
    "APPROVED": "อนุมัติแล้ว",
    "REJECTED": "ไม่อนุมัติ",
    "CONVERTED": "ออก PO แล้ว",
    "CANCELLED": "ยกเลิก",
}

PRIORITY_LABELS = {
    "LOW": "ต่ำ",
    "NORMAL": "ปกติ",
    "HIGH": "สูง",
    "URGENT": "ด่วน",
}


class PurchaseRequisition(Base):
    __tablename__ = "purchase_requisitions"

    id = Column(Integer, primary_key=True, index=True)
    pr_number = Column(String(30), unique=True, nullable=False, index=True, comment="เลขที่ PR")
    status = Column(String(20), nullable=False, default="DRAFT", index=True)
    priority = Column(String(10), nullable=False, default="NORMAL")
    need_by_date = Column(DateTime, comment="ต้องการภายในวันที่")
    note = Column(Text)

    requester_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("sys_user.id"))
    approved_at = Column(DateTime)
    rejected_reason = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    requester = relationship("User", foreign_keys=[requester_id])
    approver = relationship("User", foreign_keys=[approver_id])
    lines = relationship("PRLine", back_populates="pr", cascade="all, delete-orphan", order_by="PRLine.id")
    pos = relationship("PurchaseOrder", back_populates="pr", order_by="PurchaseOrder.created_at")

    def __repr__(self):
        return f"<PR {self.pr_number} ({self.status})>"

    @property
    def status_display(self) -> str:
        return PR_STATUS_LABELS.get(self.status, self.status)

    @property
    def priority_display(self) -> str:
        return PRIORITY_LABELS.get(self.priority, self.priority)


class PRLine(Base):
    __tablename__ = "pr_lines"

    id = Column(Integer, primary_key=True, index=True)
    pr_id = Column(Integer, ForeignKey("purchase_requisitions.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    qty = Column(DECIMAL(18, 4), nullable=False)
    note = Column(Text)

    pr = relationship("PurchaseRequisition", back_populates="lines")
    product = relationship("Product")
    variant = relationship("ProductVariant")
