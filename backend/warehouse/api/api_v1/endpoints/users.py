"""ผู้ใช้และสิทธิ์"""

from datetime import datetime
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, get_current_user, require_admin
from warehouse.core.errors import ValidationError, ConflictError, BusinessError, NotFoundError
from warehouse.core.permissions import ALL_PERMISSIONS, ROLES
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, MessageData, ok
from warehouse.schemas.user import (
    UserCreate, UserUpdate, RoleUpdate, PermissionsUpdate, UserResponse, CurrentUserResponse
)
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

router = APIRouter()


def build_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        name=user.name,
        email=user.email,
        role=user.role,
        role_display=user.role_display,
        custom_permissions=user.custom_permissions or [],
        active=user.active,
        created_at=user.created_at)


def _check_permissions(permissions: List[str]) -> None:
    invalid = [p for p in permissions if p not in ALL_PERMISSIONS]
    if invalid:
        raise ValidationError(f"สิทธิ์ไม่ถูกต้อง: {', '.join(invalid)}", "custom_permissions")


async def load_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user or user.deleted_at is not None:
        raise NotFoundError("ผู้ใช้")
    return user


@router.get("/me", response_model=ActionResult[CurrentUserResponse])
async def read_me(current_user: User = Depends(get_current_user)) -> Any:
    """ข้อมูลผู้ใช้ปัจจุบันพร้อมสิทธิ์ทั้งหมด"""
    base = build_user_response(current_user)
    return ok(CurrentUserResponse(**base.model_dump(), permissions=current_user.get_all_permissions()))


@router.get("/", response_model=ActionResult[List[UserResponse]])
async def list_users(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    search: Optional[str] = Query(None),
    role: Optional[str] = Query(None)) -> Any:
    query = select(User).where(User.deleted_at.is_(None))
    if search:
        query = query.where(or_(User.username.ilike(f"%{search}%"), User.name.ilike(f"%{search}%")))
    if role:
        query = query.where(User.role == role)
    users = (await db.execute(query.order_by(User.id))).scalars().all()
    return ok([build_user_response(u) for u in users])


@router.post("/", response_model=ActionResult[UserResponse])
async def create_user(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_in: UserCreate) -> Any:
    if user_in.role not in ROLES:
        raise ValidationError("บทบาทไม่ถูกต้อง", "role")
    _check_permissions(user_in.custom_permissions)

    existing = await db.execute(select(User.id).where(User.username == user_in.username))
    if existing.scalar_one_or_none():
        raise ConflictError("ชื่อผู้ใช้นี้มีอยู่แล้ว")

    user = User(**user_in.model_dump())
    db.add(user)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "USER", user.id,
                           {"username": user.username, "role": user.role})
    await db.commit()
    await db.refresh(user)
    return ok(build_user_response(user))


@router.put("/{user_id}", response_model=ActionResult[UserResponse])
async def update_user(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_id: int,
    user_in: UserUpdate) -> Any:
    user = await load_user(db, user_id)
    for field, value in user_in.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    await create_audit_log(db, current_user.id, "UPDATE", "USER", user.id,
                           user_in.model_dump(exclude_unset=True))
    await db.commit()
    await db.refresh(user)
    return ok(build_user_response(user))


@router.put("/{user_id}/role", response_model=ActionResult[UserResponse])
async def update_role(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_id: int,
    role_in: RoleUpdate) -> Any:
    if role_in.role not in ROLES:
        raise ValidationError("บทบาทไม่ถูกต้อง", "role")
    user = await load_user(db, user_id)
    old_role = user.role
    user.role = role_in.role
    await create_audit_log(db, current_user.id, "UPDATE", "USER", user.id,
                           {"role": role_in.role}, {"role": old_role})
    await db.commit()
    await db.refresh(user)
    return ok(build_user_response(user))


@router.put("/{user_id}/permissions", response_model=ActionResult[UserResponse])
async def update_permissions(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_id: int,
    perms_in: PermissionsUpdate) -> Any:
    _check_permissions(perms_in.custom_permissions)
    user = await load_user(db, user_id)
    user.custom_permissions = list(dict.fromkeys(perms_in.custom_permissions))
    await create_audit_log(db, current_user.id, "UPDATE", "USER", user.id,
                           {"custom_permissions": user.custom_permissions})
    await db.commit()
    await db.refresh(user)
    return ok(build_user_response(user))


@router.post("/{user_id}/toggle-active", response_model=ActionResult[UserResponse])
async def toggle_user_active(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_id: int) -> Any:
    if user_id == current_user.id:
        raise BusinessError("ไม่สามารถปิดการใช้งานบัญชีของตัวเองได้")
    user = await load_user(db, user_id)
    user.active = not user.active
    await create_audit_log(db, current_user.id, "UPDATE", "USER", user.id, {"active": user.active})
    await db.commit()
    await db.refresh(user)
    return ok(build_user_response(user))


@router.delete("/{user_id}", response_model=ActionResult[MessageData])
async def delete_user(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_id: int) -> Any:
    """ลบแบบ soft delete"""
    if user_id == current_user.id:
        raise BusinessError("ไม่สามารถลบบัญชีของตัวเองได้")
    user = await load_user(db, user_id)
    user.active = False
    user.deleted_at = datetime.utcnow()
    await create_audit_log(db, current_user.id, "DELETE", "USER", user.id, {"username": user.username})
    await db.commit()
    return ok(MessageData(message="ลบผู้ใช้เรียบร้อย"))
