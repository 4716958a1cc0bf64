from sqlalchemy import Column, Integer, String
from warehouse.db.base import Base


class DocSequence(Base):
    """ตัวนับเลขที่เอกสารแยกตามประเภท (MOVEMENT / PR / PO / GRN)"""
    __tablename__ = "doc_sequences"

    id = Column(Integer, primary_key=True, index=True)
    doc_type = Column(String(20), unique=True, nullable=False, comment="ประเภทเอกสาร")
    prefix = Column(String(10), nullable=False, comment="คำนำหน้าเลขที่")
    current_no = Column(Integer, nullable=False, default=0, comment="เลขล่าสุดที่ใช้ไป")
    pad_length = Column(Integer, nullable=False, default=6)

    def __repr__(self):
        return f"<DocSequence {self.doc_type}: {self.prefix} #{self.current_no}>"
