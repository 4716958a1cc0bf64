"""
งานตั้งเวลา
ใช้ APScheduler รันการแจ้งเตือนตามที่ตั้งค่าไว้ (cron_settings) และล้างการแจ้งเตือนเก่า
"""

import logging
from typing import Any, Dict, List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from warehouse.core.config import settings
from warehouse.core.errors import BusinessError
from warehouse.db.session import SessionLocal
from warehouse.services.alerts import cleanup_old_notifications
from warehouse.services.cron_settings import day_of_week, default_cron_jobs, run_cron_job
from warehouse.services.notifications import deliver_outbox

logger = logging.getLogger(__name__)

# อินสแตนซ์ scheduler ทั้งระบบ
scheduler: Optional[AsyncIOScheduler] = None


async def alert_job(job_id: str):
    """รันงานแจ้งเตือนตาม id แล้วส่ง LINE/อีเมลที่เข้าคิว"""
    async with SessionLocal() as db:
        try:
            await run_cron_job(db, job_id)
        except BusinessError:
            # run_cron_job บันทึกสถานะ error และ log ไว้แล้ว
            return
        delivered = await deliver_outbox(db)
    if delivered["failed"]:
        logger.warning(f"⚠️ งาน {job_id} ส่งไม่สำเร็จ {delivered['failed']} รายการ")


async def cleanup_job():
    """ลบการแจ้งเตือนที่อ่านแล้วและเก่าเกินระยะเก็บ"""
    try:
        async with SessionLocal() as db:
            deleted = await cleanup_old_notifications(db, settings.NOTIFICATION_RETENTION_DAYS)
            await db.commit()
        if deleted:
            logger.info(f"🗑️ ลบการแจ้งเตือนเก่า {deleted} รายการ")
    except Exception as e:
        logger.warning(f"ล้างการแจ้งเตือนเก่าไม่สำเร็จ: {str(e)}")


def _trigger(job: Dict[str, Any]) -> CronTrigger:
    return CronTrigger(day_of_week=day_of_week(job["days"]), hour=job["hour"], minute=job["minute"])


def apply_cron_settings(jobs: List[Dict[str, Any]]) -> None:
    """ปรับเวลาและเปิด/ปิดงานตามการตั้งค่า (ไม่มีผลเมื่อ scheduler ไม่ได้ทำงาน)"""
    if not scheduler:
        return
    for job in jobs:
        scheduler.reschedule_job(job["id"], trigger=_trigger(job))
        if job["enabled"]:
            scheduler.resume_job(job["id"])
        else:
            scheduler.pause_job(job["id"])
        logger.info(
            f"⏰ {job['name']}: {job['hour']:02d}:{job['minute']:02d} "
            f"({day_of_week(job['days'])}){'' if job['enabled'] else ' ปิดอยู่'}"
        )


def init_scheduler():
    """สร้างและเริ่ม scheduler ด้วยเวลาเริ่มต้น"""
    global scheduler

    if not settings.ALERTS_ENABLED:
        logger.info("🔕 ปิดการแจ้งเตือนตามเวลา")
        return

    scheduler = AsyncIOScheduler()

    for job in default_cron_jobs().values():
        scheduler.add_job(
            alert_job,
            trigger=_trigger(job),
            args=[job["id"]],
            id=job["id"],
            name=job["name"],
            replace_existing=True
        )
    scheduler.add_job(
        cleanup_job,
        trigger=CronTrigger(hour=2, minute=0),
        id="notification-cleanup",
        name="ล้างการแจ้งเตือนเก่า",
        replace_existing=True
    )

    scheduler.start()
    logger.info(
        f"⏰ เริ่ม scheduler แล้ว - แจ้งเตือนสินค้าใกล้หมดทุกวันเวลา "
        f"{settings.LOW_STOCK_ALERT_HOUR:02d}:{settings.LOW_STOCK_ALERT_MINUTE:02d}"
    )


def shutdown_scheduler():
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("⏰ ปิด scheduler แล้ว")


def get_scheduler_status() -> dict:
    """สถานะ scheduler และเวลารันครั้งถัดไปของแต่ละงาน"""
    if not scheduler:
        return {
            "enabled": settings.ALERTS_ENABLED,
            "running": False,
            "jobs": []
        }

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None
        })

    return {
        "enabled": settings.ALERTS_ENABLED,
        "running": scheduler.running,
        "jobs": jobs
    }
