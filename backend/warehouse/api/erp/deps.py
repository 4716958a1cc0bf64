"""
การยืนยันตัวตนของ ERP API ด้วย X-API-Key

ตรวจโควตาคำขอก่อนค้นหา key ในฐานข้อมูล
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.config import settings
from warehouse.core.deps import get_db
from warehouse.core.errors import AppError, AuthError, RateLimitError
from warehouse.core.rate_limit import SlidingWindowRateLimiter
from warehouse.models.integration import ERPIntegration
from warehouse.models.user import User

logger = logging.getLogger(__name__)

INVALID_KEY = "Invalid or missing API key"

rate_limiter = SlidingWindowRateLimiter(settings.ERP_RATE_LIMIT, settings.ERP_RATE_WINDOW_SECONDS)


async def get_integration(
    db: AsyncSession = Depends(get_db),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> ERPIntegration:
    if not x_api_key:
        raise AuthError(INVALID_KEY)
    if not rate_limiter.hit(x_api_key):
        logger.warning(f"⚠️ ERP API เกินโควตา key=...{x_api_key[-4:]}")
        raise RateLimitError()
    result = await db.execute(
        select(ERPIntegration).where(
            ERPIntegration.api_key == x_api_key,
            ERPIntegration.provider == settings.ERP_PROVIDER,
            ERPIntegration.active.is_(True),
        )
    )
    integration = result.scalar_one_or_none()
    if not integration:
        raise AuthError(INVALID_KEY)
    return integration


def mark_synced(integration: ERPIntegration) -> None:
    """เรียกก่อน commit ของคำขอที่สำเร็จ"""
    integration.last_sync_at = datetime.utcnow()


async def get_system_user(db: AsyncSession) -> User:
    """ผู้ใช้ที่บันทึกเป็นผู้สร้างเอกสารจาก ERP (ADMIN คนแรก)"""
    result = await db.execute(
        select(User)
        .where(User.role == "ADMIN", User.active.is_(True), User.deleted_at.is_(None))
        .order_by(User.id)
        .limit(1)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise AppError("No system user available", "NO_SYSTEM_USER", 500)
    return user
