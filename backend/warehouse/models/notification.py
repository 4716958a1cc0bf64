"""
การแจ้งเตือน

- Notification: การแจ้งเตือนในเว็บ
- UserNotificationPreference: ช่องทางที่ผู้ใช้เปิดรับ แยกตามประเภท
- NotificationDeliveryLog: ผลการส่งแต่ละช่องทาง
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from warehouse.db.base import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False, comment="ประเภทการแจ้งเตือน")
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    url = Column(String(300))
    read = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User")


class UserNotificationPreference(Base):
    __tablename__ = "user_notification_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("sys_user.id"), unique=True, nullable=False)
    # {"prPending": {"web": true, "line": true, "email": false}, ...}
    preferences = Column(JSON, nullable=False, default=dict)
    line_user_id = Column(String(100), comment="LINE user ID สำหรับ push message")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")


class NotificationDeliveryLog(Base):
    __tablename__ = "notification_delivery_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("sys_user.id"), nullable=True, index=True)
    notification_type = Column(String(30), nullable=False, index=True)
    channel = Column(String(10), nullable=False, index=True, comment="WEB / LINE / EMAIL")
    status = Column(String(10), nullable=False, default="PENDING", index=True,
                    comment="PENDING / SENT / FAILED / SKIPPED")
    title = Column(String(200))
    message = Column(Text)
    url = Column(String(300))
    recipient = Column(String(200), comment="LINE user ID หรืออีเมลปลายทาง")
    error_message = Column(Text)
    sent_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User")

    @property
    def status_display(self) -> str:
        status_map = {
            "PENDING": "รอส่ง",
            "SENT": "ส่งแล้ว",
            "FAILED": "ล้มเหลว",
            "SKIPPED": "ข้าม",
        }
        return status_map.get(self.status, self.status)
