from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from warehouse.db.base import Base


class ERPIntegration(Base):
    """ระบบภายนอกที่เรียก ERP API ด้วย X-API-Key"""
    __tablename__ = "erp_integrations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    provider = Column(String(30), nullable=False, default="custom_erp", index=True)
    api_key = Column(String(100), unique=True, nullable=False, index=True)
    active = Column(Boolean, default=True, nullable=False)
    last_sync_at = Column(DateTime, comment="เวลาที่เรียก API สำเร็จล่าสุด")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ERPIntegration {self.name} ({self.provider})>"
