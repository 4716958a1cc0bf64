"""
การแจ้งเตือน

- การตั้งค่าช่องทางรับการแจ้งเตือนของผู้ใช้
- การแจ้งเตือนบนเว็บของฉัน
- ประวัติการส่งและสถิติ (ADMIN)
- สั่งรันการแจ้งเตือนตามรอบด้วยตนเอง (ADMIN)
- ตั้งเวลางานแจ้งเตือนและการตั้งค่า LINE (ADMIN)
"""

import logging
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.config import settings
from warehouse.core.deps import get_db, get_current_user, require_admin
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log
from warehouse.core.errors import NotFoundError, BusinessError
from warehouse.models.notification import Notification, NotificationDeliveryLog, UserNotificationPreference
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, MessageData, PaginatedResult, ok, paginate
from warehouse.schemas.notification import (
    PreferencesUpdate, PreferencesResponse, NotificationResponse, NotificationList,
    DeliveryLogResponse, NotificationStats, ChannelStats, PendingActionsSummary, DispatchSummary,
    CronJob, CronSettingsUpdate, LineSettings, LineSettingsUpdate, LineConnectionTest
)
from warehouse.services import alerts, cron_settings
from warehouse.services.notifications import (
    get_effective_preferences, merge_preferences, get_line_settings, update_line_settings,
    line_access_token, check_line_connection
)
from warehouse.services.scheduler import get_scheduler_status, apply_cron_settings

logger = logging.getLogger(__name__)

router = APIRouter()


# ========== การตั้งค่า ==========

@router.get("/preferences", response_model=ActionResult[PreferencesResponse])
async def get_preferences(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)) -> Any:
    prefs, row = await get_effective_preferences(db, current_user.id)
    return ok(PreferencesResponse(
        user_id=current_user.id,
        preferences=prefs,
        line_user_id=row.line_user_id if row else None,
        is_default=row is None))


@router.put("/preferences", response_model=ActionResult[PreferencesResponse])
async def update_preferences(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    prefs_in: PreferencesUpdate) -> Any:
    """บันทึกเฉพาะช่องทางที่ส่งมา ที่เหลือคงค่าเดิม/ค่าเริ่มต้น"""
    _, row = await get_effective_preferences(db, current_user.id)
    update_data = {
        notification_type: channels.model_dump(exclude_none=True)
        for notification_type, channels in prefs_in.preferences.items()
    }
    merged = merge_preferences(row.preferences if row else None, update_data)
    if row is None:
        row = UserNotificationPreference(user_id=current_user.id, preferences=merged)
        db.add(row)
    else:
        row.preferences = merged
    if "line_user_id" in prefs_in.model_fields_set:
        row.line_user_id = prefs_in.line_user_id or None
    await db.commit()
    return ok(PreferencesResponse(
        user_id=current_user.id,
        preferences=merged,
        line_user_id=row.line_user_id,
        is_default=False))


@router.delete("/preferences", response_model=ActionResult[PreferencesResponse])
async def reset_preferences(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)) -> Any:
    _, row = await get_effective_preferences(db, current_user.id)
    if row is not None:
        await db.delete(row)
        await db.commit()
    return ok(PreferencesResponse(
        user_id=current_user.id,
        preferences=merge_preferences(None),
        line_user_id=None,
        is_default=True))


# ========== การแจ้งเตือนของฉัน ==========

@router.get("/", response_model=ActionResult[NotificationList])
async def list_my_notifications(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False)) -> Any:
    query = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit))
    unread_count = await db.scalar(
        select(func.count(Notification.id)).where(
            Notification.user_id == current_user.id,
            Notification.read.is_(False),
        )
    )
    return ok(NotificationList(
        items=[NotificationResponse.model_validate(n) for n in result.scalars().all()],
        unread_count=unread_count or 0))


@router.post("/{notification_id}/read", response_model=ActionResult[NotificationResponse])
async def mark_as_read(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notification_id: int) -> Any:
    notification = await db.get(Notification, notification_id)
    if not notification or notification.user_id != current_user.id:
        raise NotFoundError("การแจ้งเตือน")
    notification.read = True
    await db.commit()
    return ok(NotificationResponse.model_validate(notification))


@router.post("/read-all", response_model=ActionResult[MessageData])
async def mark_all_as_read(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)) -> Any:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == current_user.id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.commit()
    return ok(MessageData(message=f"อ่านแล้ว {result.rowcount or 0} รายการ"))


@router.post("/cleanup", response_model=ActionResult[MessageData])
async def cleanup_notifications(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    days: int = Query(30, ge=1, description="ลบที่อ่านแล้วและเก่ากว่า N วัน")) -> Any:
    deleted = await alerts.cleanup_old_notifications(db, days)
    await db.commit()
    logger.info(f"🗑️ {current_user.username} ลบการแจ้งเตือนเก่า {deleted} รายการ")
    return ok(MessageData(message=f"ลบการแจ้งเตือนเก่า {deleted} รายการ"))


# ========== ประวัติการส่ง (ADMIN) ==========

@router.get("/logs", response_model=ActionResult[PaginatedResult[DeliveryLogResponse]])
async def list_delivery_logs(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    channel: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    notification_type: Optional[str] = Query(None)) -> Any:
    conditions = []
    if channel:
        conditions.append(NotificationDeliveryLog.channel == channel)
    if status:
        conditions.append(NotificationDeliveryLog.status == status)
    if notification_type:
        conditions.append(NotificationDeliveryLog.notification_type == notification_type)

    total = await db.scalar(select(func.count(NotificationDeliveryLog.id)).where(*conditions))
    result = await db.execute(
        select(NotificationDeliveryLog, User.name)
        .outerjoin(User, User.id == NotificationDeliveryLog.user_id)
        .where(*conditions)
        .order_by(NotificationDeliveryLog.created_at.desc(), NotificationDeliveryLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [
        DeliveryLogResponse(
            id=log.id,
            user_id=log.user_id,
            user_name=user_name,
            notification_type=log.notification_type,
            channel=log.channel,
            status=log.status,
            status_display=log.status_display,
            title=log.title,
            message=log.message,
            error_message=log.error_message,
            sent_at=log.sent_at,
            created_at=log.created_at)
        for log, user_name in result.all()
    ]
    return ok(paginate(items, total or 0, page, limit))


@router.get("/stats", response_model=ActionResult[NotificationStats])
async def get_delivery_stats(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)) -> Any:
    result = await db.execute(
        select(
            NotificationDeliveryLog.channel,
            NotificationDeliveryLog.status,
            func.count(NotificationDeliveryLog.id),
        ).group_by(NotificationDeliveryLog.channel, NotificationDeliveryLog.status)
    )
    total = sent = failed = 0
    per_channel = {}
    for channel, status, count in result.all():
        total += count
        if status == "SENT":
            sent += count
        elif status == "FAILED":
            failed += count
        entry = per_channel.setdefault(channel, {"count": 0, "sent": 0})
        entry["count"] += count
        if status == "SENT":
            entry["sent"] += count

    by_channel = {
        channel: ChannelStats(
            count=entry["count"],
            success_rate=int(entry["sent"] * 100 / entry["count"] + 0.5) if entry["count"] else 0)
        for channel, entry in per_channel.items()
    }
    return ok(NotificationStats(total=total, sent=sent, failed=failed, by_channel=by_channel))


# ========== งานค้างและการแจ้งเตือนตามรอบ ==========

@router.get("/pending-actions", response_model=ActionResult[PendingActionsSummary])
async def get_pending_actions(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)) -> Any:
    return ok(await alerts.get_pending_actions(db))


@router.post("/alerts/low-stock", response_model=ActionResult[DispatchSummary])
async def trigger_low_stock_alert(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)) -> Any:
    summary = await alerts.send_low_stock_alert(db)
    await db.commit()
    return ok(summary)


@router.post("/alerts/expiring", response_model=ActionResult[DispatchSummary])
async def trigger_expiring_alert(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    days: int = Query(settings.EXPIRY_ALERT_DAYS, ge=1, le=365)) -> Any:
    summary = await alerts.send_expiring_alert(db, days)
    await db.commit()
    return ok(summary)


@router.post("/alerts/pending-actions", response_model=ActionResult[DispatchSummary])
async def trigger_pending_actions_digest(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)) -> Any:
    summary = await alerts.send_pending_actions_digest(db)
    await db.commit()
    return ok(summary)


@router.get("/scheduler", response_model=ActionResult[dict])
async def scheduler_status(
    *,
    current_user: User = Depends(require_admin)) -> Any:
    return ok(get_scheduler_status())


@router.get("/cron-settings", response_model=ActionResult[List[CronJob]])
async def read_cron_settings(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)) -> Any:
    return ok(await cron_settings.get_cron_settings(db))


@router.put("/cron-settings", response_model=ActionResult[List[CronJob]])
async def update_cron_settings(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    settings_in: CronSettingsUpdate) -> Any:
    """แก้เวลา/วัน/เปิดปิดของงานแจ้งเตือน แล้วปรับ scheduler ทันที"""
    updates = {job_id: job.model_dump(exclude_none=True) for job_id, job in settings_in.jobs.items()}
    jobs = await cron_settings.update_cron_settings(db, updates)
    await create_audit_log(db, current_user.id, "UPDATE", "SETTING", None, {"cron_settings": updates})
    await db.commit()
    apply_cron_settings(jobs)
    return ok(jobs)


@router.post("/cron-settings/{job_id}/run", response_model=ActionResult[DispatchSummary])
async def run_cron_job_now(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    job_id: str) -> Any:
    logger.info(f"▶️ {current_user.username} สั่งรันงาน {job_id}")
    return ok(await cron_settings.run_cron_job(db, job_id))


def _mask_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return f"{token[:4]}...{token[-4:]}" if len(token) > 12 else "****"


def _line_settings_response(line_settings: dict) -> dict:
    return {
        **line_settings,
        "channel_access_token": _mask_token(line_settings.get("channel_access_token")),
        "has_token": bool(line_access_token(line_settings)),
    }


@router.get("/line-settings", response_model=ActionResult[LineSettings])
async def read_line_settings(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)) -> Any:
    return ok(_line_settings_response(await get_line_settings(db)))


@router.put("/line-settings", response_model=ActionResult[LineSettings])
async def update_line_settings_endpoint(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    settings_in: LineSettingsUpdate) -> Any:
    changes = settings_in.model_dump(exclude_none=True)
    line_settings = await update_line_settings(db, changes)
    audit_changes = {k: v for k, v in changes.items() if k != "channel_access_token"}
    if "channel_access_token" in changes:
        audit_changes["channel_access_token"] = "***"
    await create_audit_log(db, current_user.id, "UPDATE", "SETTING", None, {"line_notification": audit_changes})
    await db.commit()
    return ok(_line_settings_response(line_settings))


@router.post("/line-settings/test", response_model=ActionResult[MessageData])
async def check_line_settings(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    test_in: LineConnectionTest) -> Any:
    token = test_in.channel_access_token or line_access_token(await get_line_settings(db))
    if not token:
        raise BusinessError("ไม่พบ Channel Access Token")
    bot_name = await check_line_connection(token)
    return ok({"message": f"เชื่อมต่อสำเร็จ! Bot: {bot_name}"})
