"""การแจ้งเตือน"""

from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class ChannelPreference(BaseModel):
    web: Optional[bool] = None
    line: Optional[bool] = None
    email: Optional[bool] = None


class PreferencesUpdate(BaseModel):
    preferences: Dict[str, ChannelPreference] = Field(default_factory=dict)
    line_user_id: Optional[str] = Field(None, max_length=100)


class PreferencesResponse(BaseModel):
    user_id: int
    preferences: Dict[str, Dict[str, bool]]
    line_user_id: Optional[str] = None
    is_default: bool


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    url: Optional[str] = None
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    items: List[NotificationResponse]
    unread_count: int


class DeliveryLogResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    notification_type: str
    channel: str
    status: str
    status_display: str
    title: Optional[str] = None
    message: Optional[str] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime


class ChannelStats(BaseModel):
    count: int
    success_rate: float


class NotificationStats(BaseModel):
    total: int
    sent: int
    failed: int
    by_channel: Dict[str, ChannelStats]


class PendingAction(BaseModel):
    id: int
    type: str
    doc_number: str
    title: str
    description: str
    url: str
    created_at: datetime
    days_old: int


class PendingActionsSummary(BaseModel):
    total: int
    counts: Dict[str, int]
    actions: List[PendingAction]


class DispatchSummary(BaseModel):
    items: int = 0
    sent: int = 0
    queued: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = []


class CronJob(BaseModel):
    id: str
    name: str
    description: str
    enabled: bool
    hour: int
    minute: int
    days: List[int]
    days_display: str
    last_run: Optional[str] = None
    last_status: Optional[str] = None


class CronJobUpdate(BaseModel):
    enabled: Optional[bool] = None
    hour: Optional[int] = Field(None, ge=0, le=23)
    minute: Optional[int] = Field(None, ge=0, le=59)
    days: Optional[List[int]] = None


class CronSettingsUpdate(BaseModel):
    jobs: Dict[str, CronJobUpdate]


class LineSettings(BaseModel):
    enabled: bool
    channel_access_token: Optional[str] = Field(None, description="แสดงแบบปิดบัง")
    has_token: bool
    notify_low_stock: bool
    notify_pr_pending: bool
    notify_po_status: bool
    notify_movement_posted: bool
    notify_expiring: bool
    recipient_user_ids: List[str]


class LineSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    channel_access_token: Optional[str] = Field(None, max_length=500)
    notify_low_stock: Optional[bool] = None
    notify_pr_pending: Optional[bool] = None
    notify_po_status: Optional[bool] = None
    notify_movement_posted: Optional[bool] = None
    notify_expiring: Optional[bool] = None
    recipient_user_ids: Optional[List[str]] = None


class LineConnectionTest(BaseModel):
    channel_access_token: Optional[str] = Field(None, description="ไม่ระบุ = ใช้ token ที่บันทึกไว้")
