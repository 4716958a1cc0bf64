"""
การแจ้งเตือนหลายช่องทาง

- ค่าเริ่มต้นของการตั้งค่าการแจ้งเตือน (เมื่อผู้ใช้ยังไม่เคยตั้ง)
- ส่งการแจ้งเตือนไปยังผู้ใช้ตามช่องทางที่เปิดไว้ พร้อมบันทึก NotificationDeliveryLog
- ช่องทาง LINE ใช้ LINE Messaging API ผ่าน httpx ช่องทางอีเมลใช้ SMTP

LINE และอีเมลไม่ถูกส่งระหว่าง transaction: dispatch_notification บันทึก log สถานะ PENDING
และ deliver_outbox ส่งจริงหลัง commit เฉพาะ log ที่ถูก commit แล้ว
log ที่อยู่ใน transaction หรือ savepoint ที่ rollback จะไม่ถูกส่ง
"""

import asyncio
import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from sqlalchemy import event, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from warehouse.core.config import settings
from warehouse.core.errors import BusinessError
from warehouse.models.notification import (
    Notification, UserNotificationPreference, NotificationDeliveryLog
)
from warehouse.models.setting import AppSetting
from warehouse.models.user import User

logger = logging.getLogger(__name__)

CHANNELS = ("web", "line", "email")

MOVEMENT_NOTIFICATION_TYPES = [
    f"{movement}{stage}"
    for movement in ("receive", "issue", "transfer", "adjust", "return")
    for stage in ("Pending", "Posted")
]

NOTIFICATION_TYPES: List[str] = [
    "lowStock",
    "expiring",
    *MOVEMENT_NOTIFICATION_TYPES,
    "prPending",
    "prApproved",
    "prRejected",
    "poPending",
    "poApproved",
    "poRejected",
    "poSent",
    "poCancelled",
    "poReceived",
    "grnCreated",
    "pendingActions",
]

NOTIFICATION_TYPE_LABELS = {
    "lowStock": "สินค้าใกล้หมด",
    "expiring": "สินค้าใกล้หมดอายุ",
    "prPending": "PR รออนุมัติ",
    "prApproved": "PR อนุมัติแล้ว",
    "prRejected": "PR ไม่อนุมัติ",
    "poPending": "PO รออนุมัติ",
    "poApproved": "PO อนุมัติแล้ว",
    "poRejected": "PO ไม่อนุมัติ",
    "poSent": "ส่ง PO แล้ว",
    "poCancelled": "ยกเลิก PO",
    "poReceived": "รับสินค้าตาม PO",
    "grnCreated": "สร้างใบรับสินค้า",
    "pendingActions": "สรุปงานค้าง",
}

_WEB_ONLY = set(MOVEMENT_NOTIFICATION_TYPES) | {"grnCreated"}
_WEB_AND_LINE = {"poSent", "poCancelled"}

# ========== การตั้งค่า LINE ของระบบ ==========

LINE_SETTINGS_KEY = "line_notification"

DEFAULT_LINE_SETTINGS: Dict[str, Any] = {
    "enabled": True,
    "channel_access_token": None,
    "notify_low_stock": True,
    "notify_pr_pending": True,
    "notify_po_status": True,
    "notify_movement_posted": False,
    "notify_expiring": True,
    "recipient_user_ids": [],
}

# ประเภทการแจ้งเตือน -> สวิตช์ LINE ที่ควบคุม (ประเภทที่ไม่อยู่ในนี้ไม่ถูกกรอง)
LINE_TYPE_FLAGS = {
    "lowStock": "notify_low_stock",
    "expiring": "notify_expiring",
    "prPending": "notify_pr_pending",
    **{t: "notify_po_status" for t in (
        "poPending", "poApproved", "poRejected", "poSent", "poCancelled", "poReceived")},
    **{f"{m}Posted": "notify_movement_posted" for m in ("receive", "issue", "transfer", "adjust", "return")},
}

# สรุปรวมที่ส่งถึงผู้รับ LINE ส่วนกลาง (recipient_user_ids) ด้วย
BROADCAST_TYPES = {"lowStock", "expiring", "pendingActions"}


def default_channels(notification_type: str) -> Dict[str, bool]:
    if notification_type in _WEB_ONLY:
        return {"web": True, "line": False, "email": False}
    if notification_type in _WEB_AND_LINE:
        return {"web": True, "line": True, "email": False}
    return {"web": True, "line": True, "email": True}


def default_preferences() -> Dict[str, Dict[str, bool]]:
    return {t: default_channels(t) for t in NOTIFICATION_TYPES}


def merge_preferences(
    stored: Optional[Dict[str, Any]],
    update: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, bool]]:
    """ค่าเริ่มต้น ← ค่าที่เก็บไว้ ← ค่าที่แก้ไขใหม่ (ทีละช่องทาง)"""
    merged = default_preferences()
    for source in (stored or {}, update or {}):
        for notification_type, channels in source.items():
            if notification_type not in merged or not isinstance(channels, dict):
                continue
            for channel in CHANNELS:
                if channel in channels and channels[channel] is not None:
                    merged[notification_type][channel] = bool(channels[channel])
    return merged


async def get_preference_row(db: AsyncSession, user_id: int) -> Optional[UserNotificationPreference]:
    result = await db.execute(
        select(UserNotificationPreference).where(UserNotificationPreference.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_effective_preferences(
    db: AsyncSession,
    user_id: int) -> Tuple[Dict[str, Dict[str, bool]], Optional[UserNotificationPreference]]:
    row = await get_preference_row(db, user_id)
    return merge_preferences(row.preferences if row else None), row


async def find_user_ids_by_roles(db: AsyncSession, roles: Iterable[str]) -> List[int]:
    result = await db.execute(
        select(User.id).where(
            User.role.in_(list(roles)),
            User.active.is_(True),
            User.deleted_at.is_(None),
        )
    )
    return list(result.scalars().all())


async def find_user_ids_with_permission(db: AsyncSession, permission: str) -> List[int]:
    result = await db.execute(
        select(User).where(User.active.is_(True), User.deleted_at.is_(None))
    )
    return [u.id for u in result.scalars().all() if u.has_permission(permission)]


async def get_line_settings(db: AsyncSession) -> Dict[str, Any]:
    row = await db.get(AppSetting, LINE_SETTINGS_KEY)
    stored = row.value if row and isinstance(row.value, dict) else {}
    merged = {**DEFAULT_LINE_SETTINGS, **{k: v for k, v in stored.items() if k in DEFAULT_LINE_SETTINGS}}
    merged["recipient_user_ids"] = list(merged["recipient_user_ids"] or [])
    return merged


async def update_line_settings(db: AsyncSession, update: Dict[str, Any]) -> Dict[str, Any]:
    """บันทึกเฉพาะค่าที่ส่งมา ที่เหลือคงเดิม"""
    current = await get_line_settings(db)
    current.update({k: v for k, v in update.items() if k in DEFAULT_LINE_SETTINGS})
    row = await db.get(AppSetting, LINE_SETTINGS_KEY)
    if row is None:
        db.add(AppSetting(key=LINE_SETTINGS_KEY, value=current))
    else:
        row.value = current
    return current


def line_access_token(line_settings: Dict[str, Any]) -> Optional[str]:
    """token ที่ตั้งในระบบมาก่อน ถ้าไม่มีใช้จาก environment"""
    return line_settings.get("channel_access_token") or settings.LINE_CHANNEL_ACCESS_TOKEN


def line_allowed(line_settings: Dict[str, Any], notification_type: str) -> bool:
    if not line_settings.get("enabled"):
        return False
    flag = LINE_TYPE_FLAGS.get(notification_type)
    return bool(line_settings.get(flag, True)) if flag else True


async def send_line_message(token: str, line_user_id: str, text: str) -> None:
    headers = {"Authorization": f"Bearer {token}"}
    payload = {"to": line_user_id, "messages": [{"type": "text", "text": text[:5000]}]}
    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(f"{settings.LINE_API_BASE}/message/push", json=payload, headers=headers)
        response.raise_for_status()


async def check_line_connection(token: str) -> str:
    """เรียก bot info เพื่อตรวจ token คืนชื่อ bot"""
    headers = {"Authorization": f"Bearer {token}"}
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.get(f"{settings.LINE_API_BASE}/info", headers=headers)
    except httpx.HTTPError as e:
        logger.warning(f"⚠️ ทดสอบการเชื่อมต่อ LINE ไม่สำเร็จ: {e}")
        raise BusinessError("ไม่สามารถเชื่อมต่อ LINE ได้")
    if response.status_code != 200:
        raise BusinessError(f"HTTP {response.status_code}: Token ไม่ถูกต้อง")
    return response.json().get("displayName", "")


def _send_email_sync(to: str, subject: str, body: str) -> None:
    message = EmailMessage()
    message["From"] = settings.SMTP_FROM
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=15) as smtp:
        smtp.starttls()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD or "")
        smtp.send_message(message)


async def send_email(to: str, subject: str, body: str) -> None:
    await asyncio.to_thread(_send_email_sync, to, subject, body)


# ========== outbox ==========

_QUEUED = "notification_outbox_queued"
_COMMITTED = "notification_outbox_committed"


@event.listens_for(Session, "after_commit")
def _promote_outbox(session: Session) -> None:
    queued = session.info.pop(_QUEUED, [])
    # log ที่ถูก rollback (รวมถึงใน savepoint) จะหลุดจาก session ไม่เป็น persistent
    committed = [log for log in queued if inspect(log).persistent]
    if committed:
        session.info.setdefault(_COMMITTED, []).extend(committed)


@event.listens_for(Session, "after_rollback")
def _discard_outbox(session: Session) -> None:
    session.info.pop(_QUEUED, None)


def _log(
    db: AsyncSession,
    user_id: Optional[int],
    notification_type: str,
    channel: str,
    status: str,
    title: str,
    message: str,
    error: Optional[str] = None,
    recipient: Optional[str] = None,
    url: Optional[str] = None) -> NotificationDeliveryLog:
    log = NotificationDeliveryLog(
        user_id=user_id,
        notification_type=notification_type,
        channel=channel,
        status=status,
        title=title,
        message=message,
        url=url,
        recipient=recipient,
        error_message=error,
        sent_at=datetime.utcnow() if status == "SENT" else None)
    db.add(log)
    if status == "PENDING":
        db.info.setdefault(_QUEUED, []).append(log)
    return log


async def dispatch_notification(
    db: AsyncSession,
    user_ids: Iterable[int],
    notification_type: str,
    title: str,
    message: str,
    url: Optional[str] = None) -> Dict[str, Any]:
    """
    ส่งการแจ้งเตือนให้ผู้ใช้ตามช่องทางที่เปิดรับ

    WEB บันทึกทันที LINE/EMAIL เข้าคิว (queued) และส่งโดย deliver_outbox หลัง commit
    ประเภทสรุปรวมส่ง LINE ถึงผู้รับส่วนกลางด้วย
    """
    summary: Dict[str, Any] = {"sent": 0, "queued": 0, "failed": 0, "skipped": 0, "errors": []}
    unique_ids = list(dict.fromkeys(uid for uid in user_ids if uid))
    line_settings = await get_line_settings(db)
    line_ready = bool(line_access_token(line_settings)) and line_allowed(line_settings, notification_type)

    if unique_ids:
        result = await db.execute(select(User).where(User.id.in_(unique_ids)))
        users = {u.id: u for u in result.scalars().all()}
    else:
        users = {}

    for user_id in unique_ids:
        user = users.get(user_id)
        if not user or not user.active:
            continue
        prefs, pref_row = await get_effective_preferences(db, user_id)
        channels = prefs.get(notification_type, default_channels(notification_type))

        if channels.get("web"):
            db.add(Notification(
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                url=url))
            _log(db, user_id, notification_type, "WEB", "SENT", title, message, url=url)
            summary["sent"] += 1

        if channels.get("line"):
            line_user_id = pref_row.line_user_id if pref_row else None
            if not line_ready or not line_user_id:
                _log(db, user_id, notification_type, "LINE", "SKIPPED", title, message,
                     "ยังไม่ได้เชื่อมต่อ LINE")
                summary["skipped"] += 1
            else:
                _log(db, user_id, notification_type, "LINE", "PENDING", title, message,
                     recipient=line_user_id, url=url)
                summary["queued"] += 1

        if channels.get("email"):
            if not settings.SMTP_HOST or not user.email:
                _log(db, user_id, notification_type, "EMAIL", "SKIPPED", title, message,
                     "ยังไม่ได้ตั้งค่าอีเมล")
                summary["skipped"] += 1
            else:
                _log(db, user_id, notification_type, "EMAIL", "PENDING", title, message,
                     recipient=user.email, url=url)
                summary["queued"] += 1

    if line_ready and notification_type in BROADCAST_TYPES:
        for line_user_id in line_settings["recipient_user_ids"]:
            _log(db, None, notification_type, "LINE", "PENDING", title, message,
                 recipient=line_user_id, url=url)
            summary["queued"] += 1

    logger.debug(f"📨 {notification_type}: {summary}")
    return summary


async def deliver_outbox(db: AsyncSession) -> Dict[str, Any]:
    """
    ส่ง LINE/อีเมลที่ค้างใน outbox ของ session นี้ (เรียกหลัง commit)

    ความล้มเหลวของช่องทางภายนอกบันทึกเป็น FAILED และรวบรวมไว้ใน errors
    """
    summary: Dict[str, Any] = {"sent": 0, "failed": 0, "errors": []}
    logs: List[NotificationDeliveryLog] = db.info.pop(_COMMITTED, [])
    if not logs:
        return summary

    token = line_access_token(await get_line_settings(db))
    for log in logs:
        link = f"{settings.APP_URL.rstrip('/')}{log.url}" if log.url else None
        try:
            if log.channel == "LINE":
                if not token:
                    log.status = "SKIPPED"
                    log.error_message = "ยังไม่ได้เชื่อมต่อ LINE"
                    continue
                text = f"{log.title}\n{log.message}" + (f"\n{link}" if link else "")
                await send_line_message(token, log.recipient, text)
            else:
                body = (log.message or "") + (f"\n\n{link}" if link else "")
                await send_email(log.recipient, log.title, body)
        except (httpx.HTTPError, smtplib.SMTPException, OSError) as e:
            logger.warning(f"⚠️ ส่ง {log.channel} ไม่สำเร็จ ถึง {log.recipient}: {e}")
            log.status = "FAILED"
            log.error_message = str(e)
            summary["failed"] += 1
            summary["errors"].append(f"{log.channel}:{log.recipient}: {e}")
        else:
            log.status = "SENT"
            log.sent_at = datetime.utcnow()
            summary["sent"] += 1

    await db.commit()
    logger.debug(f"📤 outbox: {summary}")
    return summary
