"""รูปแบบผลลัพธ์กลาง {success, data|error} และผลลัพธ์แบบแบ่งหน้า"""
import math
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class ActionResult(BaseModel, Generic[DataT]):
    success: bool = True
    data: Optional[DataT] = None
    error: Optional[str] = None


class PaginatedResult(BaseModel, Generic[DataT]):
    items: List[DataT]
    total: int
    page: int
    limit: int
    total_pages: int


class MessageData(BaseModel):
    message: str


class BatchItemResult(BaseModel):
    id: int
    doc_number: Optional[str] = None
    success: bool
    error: Optional[str] = None


class BatchResult(BaseModel):
    total: int
    succeeded: int
    failed: int
    results: List[BatchItemResult] = Field(default_factory=list)


class ReasonInput(BaseModel):
    reason: str = Field(..., min_length=1, description="เหตุผล")


class OptionalReasonInput(BaseModel):
    reason: Optional[str] = Field(None, description="เหตุผล")


def ok(data=None) -> ActionResult:
    return ActionResult(success=True, data=data)


def failure(error: str) -> ActionResult:
    return ActionResult(success=False, error=error)


def paginate(items: list, total: int, page: int, limit: int) -> dict:
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
