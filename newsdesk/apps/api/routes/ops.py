from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk.apps.api.deps import Principal, get_db, require_caller
from newsdesk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from newsdesk.apps.api.response import SuccessEnvelope, success_response
from newsdesk.persistence.db import pool_stats
from newsdesk.services.newsletters import delivery_queue_summary


router = APIRouter(prefix="/admin", tags=["ops"], responses=DEFAULT_ERROR_RESPONSES)


class DeliveryQueueSummary(BaseModel):
    pending: int
    eligible: int
    retrying: int
    oldest_execute_after: str | None = None
    db_pool: dict[str, int | None]


@router.get("/delivery-queue", response_model=SuccessEnvelope[DeliveryQueueSummary])
async def delivery_queue(
    request: Request,
    _principal: Principal = Depends(require_caller),
    db: AsyncSession = Depends(get_db),
) -> dict:
    summary = await delivery_queue_summary(db)
    payload = DeliveryQueueSummary(**summary, db_pool=pool_stats())
    return success_response(request=request, data=payload)
