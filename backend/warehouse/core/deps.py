"""
dependency ที่ใช้ร่วมกันของ API

ระบบยืนยันตัวตนอยู่ภายนอก (reverse proxy / SSO) และส่ง ID ผู้ใช้มาทาง X-User-Id
"""
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.errors import AuthError, PermissionDeniedError
from warehouse.db.session import SessionLocal
from warehouse.models.user import User
from warehouse.services.notifications import deliver_outbox


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    เปิด session ฐานข้อมูลต่อหนึ่งคำขอ

    หลัง endpoint ทำงานเสร็จ ส่ง LINE/อีเมลที่ถูก commit ระหว่างคำขอ
    """
    async with SessionLocal() as session:
        yield session
        await deliver_outbox(session)


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> User:
    if not x_user_id or not x_user_id.isdigit():
        raise AuthError()
    result = await db.execute(
        select(User).where(
            User.id == int(x_user_id),
            User.active.is_(True),
            User.deleted_at.is_(None),
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        raise AuthError()
    return user


def require_permission(*permissions: str):
    """ต้องมีสิทธิ์อย่างน้อยหนึ่งข้อในรายการ"""

    async def checker(user: User = Depends(get_current_user)) -> User:
        if not user.has_any_permission(list(permissions)):
            raise PermissionDeniedError()
        return user

    return checker


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise PermissionDeniedError()
    return user
