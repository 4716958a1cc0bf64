"""
ตั้งค่างานแจ้งเตือนตามเวลา (cron) ที่ผู้ดูแลแก้ไขได้

เก็บใน app_settings คีย์ cron_settings เป็น {job_id: {enabled, hour, minute, days, last_run, last_status}}
days ใช้ 0=อาทิตย์ ... 6=เสาร์
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.config import settings
from warehouse.core.errors import BusinessError, ValidationError
from warehouse.models.setting import AppSetting
from warehouse.services.alerts import (
    send_low_stock_alert,
    send_expiring_alert,
    send_pending_actions_digest,
)

logger = logging.getLogger(__name__)

CRON_SETTINGS_KEY = "cron_settings"
EDITABLE_FIELDS = ("enabled", "hour", "minute", "days")

DAY_CODES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]
THAI_DAY_NAMES = ["อาทิตย์", "จันทร์", "อังคาร", "พุธ", "พฤหัสบดี", "ศุกร์", "เสาร์"]

MSG_JOB_NOT_FOUND = "ไม่พบ Cron Job นี้"


def default_cron_jobs() -> Dict[str, Dict[str, Any]]:
    return {
        "pending-actions": {
            "id": "pending-actions",
            "name": "แจ้งเตือนงานค้าง",
            "description": "แจ้งเตือน GRN รอบันทึก, PO รอส่ง, PR รออนุมัติ ฯลฯ",
            "enabled": True,
            "hour": settings.PENDING_ACTIONS_HOUR,
            "minute": 0,
            "days": [1, 2, 3, 4, 5],
        },
        "low-stock": {
            "id": "low-stock",
            "name": "แจ้งเตือนสินค้าใกล้หมด",
            "description": "แจ้งเตือนเมื่อสินค้าต่ำกว่า Reorder Point",
            "enabled": True,
            "hour": settings.LOW_STOCK_ALERT_HOUR,
            "minute": settings.LOW_STOCK_ALERT_MINUTE,
            "days": list(range(7)),
        },
        "expiring-stock": {
            "id": "expiring-stock",
            "name": "แจ้งเตือนสินค้าใกล้หมดอายุ",
            "description": f"แจ้งเตือนสินค้าที่จะหมดอายุภายใน {settings.EXPIRY_ALERT_DAYS} วัน",
            "enabled": True,
            "hour": settings.EXPIRY_ALERT_HOUR,
            "minute": 30,
            "days": list(range(7)),
        },
    }


JOB_RUNNERS: Dict[str, Callable[[AsyncSession], Awaitable[Dict[str, Any]]]] = {
    "pending-actions": send_pending_actions_digest,
    "low-stock": send_low_stock_alert,
    "expiring-stock": lambda db: send_expiring_alert(db, settings.EXPIRY_ALERT_DAYS),
}


def day_of_week(days: List[int]) -> str:
    """[1, 2, 3] -> "mon,tue,wed" สำหรับ CronTrigger"""
    return ",".join(DAY_CODES[d] for d in sorted(set(days)))


def format_days(days: List[int]) -> str:
    unique = sorted(set(days))
    if len(unique) == 7:
        return "ทุกวัน"
    if unique == [1, 2, 3, 4, 5]:
        return "จันทร์-ศุกร์"
    if unique == [0, 6]:
        return "เสาร์-อาทิตย์"
    return ", ".join(THAI_DAY_NAMES[d] for d in unique)


def _validate_job(job: Dict[str, Any]) -> None:
    if not 0 <= int(job["hour"]) <= 23 or not 0 <= int(job["minute"]) <= 59:
        raise ValidationError("เวลาไม่ถูกต้อง")
    days = job["days"]
    if not days or any(not isinstance(d, int) or not 0 <= d <= 6 for d in days):
        raise ValidationError("วันที่เลือกไม่ถูกต้อง")


async def _stored(db: AsyncSession) -> Dict[str, Any]:
    row = await db.get(AppSetting, CRON_SETTINGS_KEY)
    return dict(row.value) if row and isinstance(row.value, dict) else {}


async def _save(db: AsyncSession, stored: Dict[str, Any]) -> None:
    row = await db.get(AppSetting, CRON_SETTINGS_KEY)
    if row is None:
        db.add(AppSetting(key=CRON_SETTINGS_KEY, value=stored))
    else:
        row.value = stored


async def get_cron_settings(db: AsyncSession) -> List[Dict[str, Any]]:
    stored = await _stored(db)
    jobs = []
    for job_id, job in default_cron_jobs().items():
        merged = {**job, "last_run": None, "last_status": None, **stored.get(job_id, {})}
        merged["days_display"] = format_days(merged["days"])
        jobs.append(merged)
    return jobs


async def update_cron_settings(db: AsyncSession, updates: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """แก้ไขได้เฉพาะ enabled/hour/minute/days ของงานที่มีอยู่"""
    defaults = default_cron_jobs()
    stored = await _stored(db)
    for job_id, changes in updates.items():
        if job_id not in defaults:
            raise BusinessError(MSG_JOB_NOT_FOUND)
        current = {**defaults[job_id], **stored.get(job_id, {})}
        current.update({k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None})
        _validate_job(current)
        entry = dict(stored.get(job_id, {}))
        entry.update({k: current[k] for k in EDITABLE_FIELDS})
        stored[job_id] = entry
    await _save(db, stored)
    return await get_cron_settings(db)


async def _record_run(db: AsyncSession, job_id: str, status: str) -> None:
    stored = await _stored(db)
    entry = dict(stored.get(job_id, {}))
    entry["last_run"] = datetime.utcnow().isoformat()
    entry["last_status"] = status
    stored[job_id] = entry
    await _save(db, stored)


async def run_cron_job(db: AsyncSession, job_id: str) -> Dict[str, Any]:
    """
    รันงานทันที (จากหน้าตั้งค่าหรือจาก scheduler) และบันทึกผลครั้งล่าสุด

    งานที่ล้มเหลวถูก rollback ทั้งหมด แล้วบันทึกสถานะ error
    """
    runner = JOB_RUNNERS.get(job_id)
    if runner is None:
        raise BusinessError(MSG_JOB_NOT_FOUND)
    try:
        result = await runner(db)
        await _record_run(db, job_id, "success")
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"❌ รันงาน {job_id} ไม่สำเร็จ: {e}")
        await _record_run(db, job_id, "error")
        await db.commit()
        raise BusinessError("รันไม่สำเร็จ") from e
    logger.info(f"✅ รันงาน {job_id} เสร็จ: {result}")
    return result
