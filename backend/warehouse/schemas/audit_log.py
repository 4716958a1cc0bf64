from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class AuditLogResponse(BaseModel):
    id: int
    actor_id: int
    actor_name: str = ""
    action: str
    action_display: str
    ref_type: str
    ref_id: Optional[int] = None
    old_data: Optional[Any] = None
    new_data: Optional[Any] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
