from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any
from uuid import UUID, uuid4

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import func, insert, literal, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from newsdesk.apps.api.response import API_VERSION
from newsdesk.core.errors import DatabaseError
from newsdesk.domain.models import (
    SUBSCRIPTION_STATUS_CONFIRMED,
    IssueDeliveryTask,
    NewsletterIssue,
    Subscription,
)
from newsdesk.services.idempotency import (
    IdempotencyKey,
    ReturnSaved,
    save_response,
    try_process,
)


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def insert_newsletter_issue(
    session: AsyncSession,
    *,
    title: str,
    text_content: str,
    html_content: str,
) -> UUID:
    issue_id = uuid4()
    session.add(
        NewsletterIssue(
            newsletter_issue_id=issue_id,
            title=title,
            text_content=text_content,
            html_content=html_content,
            published_at=_utc_now(),
        )
    )
    # Flush so the FK from queued tasks resolves inside the same transaction.
    await session.flush()
    return issue_id


async def enqueue_delivery_tasks(session: AsyncSession, *, issue_id: UUID) -> int:
    """Fan out one delivery task per currently confirmed subscriber.

    Runs as a single INSERT ... SELECT in the caller's transaction, so the
    recipient set is whatever is confirmed when the statement executes.
    """
    confirmed = select(
        literal(issue_id, type_=IssueDeliveryTask.newsletter_issue_id.type),
        Subscription.email,
    ).where(Subscription.status == SUBSCRIPTION_STATUS_CONFIRMED)
    result = await session.execute(
        insert(IssueDeliveryTask).from_select(
            ["newsletter_issue_id", "subscriber_email"],
            confirmed,
        )
    )
    return int(result.rowcount or 0)


async def publish_newsletter(
    session: AsyncSession,
    *,
    title: str,
    text_content: str,
    html_content: str,
) -> tuple[UUID, int]:
    # Issue row and its task set commit together or not at all; the caller owns the commit.
    issue_id = await insert_newsletter_issue(
        session,
        title=title,
        text_content=text_content,
        html_content=html_content,
    )
    task_count = await enqueue_delivery_tasks(session, issue_id=issue_id)
    return issue_id, task_count


def accepted_response(*, issue_id: UUID, recipients: int, request_id: str) -> Response:
    # Carry X-Request-Id on the stored response so replays echo the original id.
    payload: dict[str, Any] = {
        "data": {"issue_id": str(issue_id), "status": "accepted", "recipients": recipients},
        "meta": {"request_id": request_id, "api_version": API_VERSION},
    }
    return JSONResponse(
        content=jsonable_encoder(payload),
        status_code=200,
        headers={"X-Request-Id": request_id},
    )


async def publish_issue(
    session: AsyncSession,
    *,
    user_id: str,
    idempotency_key: str,
    title: str,
    text_content: str,
    html_content: str,
    request_id: str | None = None,
) -> Response:
    """Publish an issue once per (caller, idempotency key).

    Returns the saved response untouched for repeated keys; otherwise records
    the issue, enqueues its deliveries and saves the response in a single
    transaction.
    """
    key = IdempotencyKey.parse(idempotency_key)
    action = await try_process(session, user_id=user_id, key=key)
    if isinstance(action, ReturnSaved):
        logger.debug("Found saved response for idempotency key", extra={"idempotency_key": key.value})
        return action.response.to_response()
    # Only StartProcessing remains; its open transaction carries the unit of work.
    tx = action.session
    try:
        issue_id, task_count = await publish_newsletter(
            tx,
            title=title,
            text_content=text_content,
            html_content=html_content,
        )
        response = accepted_response(
            issue_id=issue_id,
            recipients=task_count,
            request_id=request_id or str(uuid4()),
        )
        saved = await save_response(tx, user_id=user_id, key=key, response=response)
    except SQLAlchemyError as exc:
        await tx.rollback()
        raise DatabaseError("Database error while publishing newsletter issue") from exc
    logger.info(
        "newsletter issue published",
        extra={"issue_id": str(issue_id), "recipients": task_count},
    )
    return saved


async def delivery_queue_summary(session: AsyncSession) -> dict[str, Any]:
    # Pending work only; delivered and abandoned tasks leave no rows behind.
    now = func.now()
    row = (
        await session.execute(
            select(
                func.count(),
                func.count().filter(IssueDeliveryTask.execute_after < now),
                func.count().filter(IssueDeliveryTask.n_retries > 0),
                func.min(IssueDeliveryTask.execute_after),
            ).select_from(IssueDeliveryTask)
        )
    ).one()
    pending, eligible, retrying, oldest = row
    return {
        "pending": int(pending or 0),
        "eligible": int(eligible or 0),
        "retrying": int(retrying or 0),
        "oldest_execute_after": oldest.isoformat() if oldest is not None else None,
    }
