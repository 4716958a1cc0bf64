from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON
from warehouse.db.base import Base


class AppSetting(Base):
    """การตั้งค่าที่แก้ไขได้จากหน้าระบบ เก็บเป็น JSON ต่อคีย์ (cron_settings, line_notification)"""
    __tablename__ = "app_settings"

    key = Column(String(50), primary_key=True)
    value = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<AppSetting {self.key}>"
