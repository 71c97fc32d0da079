from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, StringConstraints
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from newsdesk.apps.api.deps import Principal, get_db, require_caller
from newsdesk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from newsdesk.apps.api.response import SuccessEnvelope, get_request_id
from newsdesk.services.newsletters import publish_issue


router = APIRouter(prefix="/admin", tags=["newsletters"], responses=DEFAULT_ERROR_RESPONSES)


NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class NewsletterContent(BaseModel):
    text: NonBlank
    html: NonBlank


class PublishNewsletterRequest(BaseModel):
    title: NonBlank
    content: NewsletterContent
    # Length and emptiness are checked by IdempotencyKey so the error carries its own code.
    idempotency_key: str


class PublishAccepted(BaseModel):
    issue_id: str
    status: str
    recipients: int


@router.post("/newsletters", response_model=SuccessEnvelope[PublishAccepted])
async def publish_newsletter(
    request: Request,
    payload: PublishNewsletterRequest,
    principal: Principal = Depends(require_caller),
    db: AsyncSession = Depends(get_db),
) -> Response:
    # Returns once the issue and its delivery tasks are committed; delivery happens in workers.
    return await publish_issue(
        db,
        user_id=principal.user_id,
        idempotency_key=payload.idempotency_key,
        title=payload.title,
        text_content=payload.content.text,
        html_content=payload.content.html,
        request_id=get_request_id(request),
    )
