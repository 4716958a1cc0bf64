"""การเชื่อมต่อ ERP (ADMIN) - จัดการ API key"""

import logging
import secrets
from typing import Any, List
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse.core.deps import get_db, require_admin
from warehouse.core.errors import NotFoundError
from warehouse.models.integration import ERPIntegration
from warehouse.models.user import User
from warehouse.schemas.common import ActionResult, MessageData, ok
from warehouse.schemas.integration import IntegrationCreate, IntegrationUpdate, IntegrationResponse
from warehouse.api.api_v1.endpoints.audit_logs import create_audit_log

logger = logging.getLogger(__name__)

router = APIRouter()


def generate_api_key() -> str:
    return secrets.token_urlsafe(32)


async def load_integration(db: AsyncSession, integration_id: int) -> ERPIntegration:
    integration = await db.get(ERPIntegration, integration_id)
    if not integration:
        raise NotFoundError("การเชื่อมต่อ")
    return integration


@router.get("/", response_model=ActionResult[List[IntegrationResponse]])
async def list_integrations(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)) -> Any:
    result = await db.execute(select(ERPIntegration).order_by(ERPIntegration.id))
    return ok([IntegrationResponse.model_validate(i) for i in result.scalars().all()])


@router.post("/", response_model=ActionResult[IntegrationResponse])
async def create_integration(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    integration_in: IntegrationCreate) -> Any:
    integration = ERPIntegration(
        name=integration_in.name,
        provider=integration_in.provider,
        api_key=generate_api_key(),
        active=True)
    db.add(integration)
    await db.flush()
    await create_audit_log(db, current_user.id, "CREATE", "INTEGRATION", integration.id,
                           {"name": integration.name, "provider": integration.provider})
    await db.commit()
    logger.info(f"🔑 สร้างการเชื่อมต่อ {integration.name}")
    return ok(IntegrationResponse.model_validate(integration))


@router.put("/{integration_id}", response_model=ActionResult[IntegrationResponse])
async def update_integration(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    integration_id: int,
    integration_in: IntegrationUpdate) -> Any:
    integration = await load_integration(db, integration_id)
    data = integration_in.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in data.items():
        setattr(integration, field, value)
    await create_audit_log(db, current_user.id, "UPDATE", "INTEGRATION", integration.id, data)
    await db.commit()
    await db.refresh(integration)
    return ok(IntegrationResponse.model_validate(integration))


@router.post("/{integration_id}/regenerate-key", response_model=ActionResult[IntegrationResponse])
async def regenerate_key(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    integration_id: int) -> Any:
    """สร้าง API key ใหม่ key เดิมใช้ไม่ได้ทันที"""
    integration = await load_integration(db, integration_id)
    integration.api_key = generate_api_key()
    await create_audit_log(db, current_user.id, "REGENERATE_KEY", "INTEGRATION", integration.id)
    await db.commit()
    await db.refresh(integration)
    return ok(IntegrationResponse.model_validate(integration))


@router.delete("/{integration_id}", response_model=ActionResult[MessageData])
async def delete_integration(
    *,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    integration_id: int) -> Any:
    integration = await load_integration(db, integration_id)
    await create_audit_log(db, current_user.id, "DELETE", "INTEGRATION", integration.id,
                           old_data={"name": integration.name})
    await db.delete(integration)
    await db.commit()
    return ok(MessageData(message="ลบการเชื่อมต่อสำเร็จ"))
