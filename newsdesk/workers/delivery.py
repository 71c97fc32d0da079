from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsdesk.core.config import get_settings
from newsdesk.core.errors import DeliveryError, InvalidRecipientError, IssueNotFoundError
from newsdesk.domain.models import IssueDeliveryTask
from newsdesk.persistence.db import SessionLocal
from newsdesk.persistence.repos.issues import get_issue
from newsdesk.services.email_client import EmailClient, SubscriberEmail


logger = logging.getLogger(__name__)


class ExecutionOutcome(str, Enum):
    TASK_COMPLETED = "task_completed"
    RETRY_SCHEDULED = "retry_scheduled"
    TASK_ABANDONED = "task_abandoned"
    RECIPIENT_SKIPPED = "recipient_skipped"
    EMPTY_QUEUE = "empty_queue"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Per-task retry budget with a fixed (non-exponential) wait between attempts."""

    max_attempts: int
    retry_wait: timedelta

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        settings = get_settings()
        return cls(
            max_attempts=max(1, int(settings.delivery_max_attempts)),
            retry_wait=timedelta(seconds=max(0, int(settings.delivery_retry_wait_s))),
        )

    def should_abandon(self, n_retries: int) -> bool:
        # The attempt that just failed is attempt number n_retries + 1.
        return n_retries + 1 >= self.max_attempts

    def next_execute_after(self, execute_after: datetime, now: datetime) -> datetime:
        # Anchor on whichever is later so a backlogged task still waits the full interval.
        return max(execute_after, now) + self.retry_wait


@dataclass(frozen=True, slots=True)
class LoopBackoff:
    idle_s: float
    error_s: float

    @classmethod
    def from_settings(cls) -> LoopBackoff:
        settings = get_settings()
        return cls(
            idle_s=max(0.0, float(settings.delivery_idle_interval_s)),
            error_s=max(0.0, float(settings.delivery_error_backoff_s)),
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def dequeue_task(session: AsyncSession) -> IssueDeliveryTask | None:
    # SKIP LOCKED lets concurrent workers each take a different eligible row without waiting.
    return (
        await session.execute(
            select(IssueDeliveryTask)
            .where(IssueDeliveryTask.execute_after < _utc_now())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
    ).scalar_one_or_none()


async def delete_task(session: AsyncSession, task: IssueDeliveryTask) -> None:
    await session.execute(
        delete(IssueDeliveryTask).where(
            IssueDeliveryTask.newsletter_issue_id == task.newsletter_issue_id,
            IssueDeliveryTask.subscriber_email == task.subscriber_email,
        )
    )
    await session.commit()


async def schedule_next_retry(session: AsyncSession, task: IssueDeliveryTask, policy: RetryPolicy) -> datetime:
    next_attempt = policy.next_execute_after(task.execute_after, _utc_now())
    await session.execute(
        update(IssueDeliveryTask)
        .where(
            IssueDeliveryTask.newsletter_issue_id == task.newsletter_issue_id,
            IssueDeliveryTask.subscriber_email == task.subscriber_email,
        )
        .values(n_retries=task.n_retries + 1, execute_after=next_attempt)
    )
    await session.commit()
    return next_attempt


async def try_execute_task(
    *,
    email_client: EmailClient,
    policy: RetryPolicy,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
) -> ExecutionOutcome:
    """Claim at most one eligible task, attempt delivery and resolve it.

    The claiming transaction stays open across the send and is closed by the
    delete or reschedule commit. Any exception leaves the session context
    without a commit, which rolls back and releases the row lock.
    """
    async with session_factory() as session:
        task = await dequeue_task(session)
        if task is None:
            return ExecutionOutcome.EMPTY_QUEUE
        context = {
            "issue_id": str(task.newsletter_issue_id),
            "recipient": task.subscriber_email,
            "n_retries": task.n_retries,
        }
        try:
            recipient = SubscriberEmail.parse(task.subscriber_email)
        except InvalidRecipientError as exc:
            logger.error(
                "Skipping a confirmed subscriber. Their stored contact details are invalid",
                extra={**context, "error": str(exc)},
            )
            await delete_task(session, task)
            return ExecutionOutcome.RECIPIENT_SKIPPED

        issue = await get_issue(session, task.newsletter_issue_id)
        if issue is None:
            raise IssueNotFoundError(f"newsletter issue {task.newsletter_issue_id} not found")

        try:
            await email_client.send_email(recipient, issue.title, issue.html_content, issue.text_content)
        except DeliveryError as exc:
            if policy.should_abandon(task.n_retries):
                logger.warning(
                    "Failed to deliver issue to a confirmed subscriber. Exceeded max retries, cancelling delivery",
                    extra={**context, "error": str(exc)},
                )
                await delete_task(session, task)
                return ExecutionOutcome.TASK_ABANDONED
            next_attempt = await schedule_next_retry(session, task, policy)
            logger.warning(
                "Failed to deliver issue to a confirmed subscriber. Retrying later",
                extra={**context, "error": str(exc), "execute_after": next_attempt.isoformat()},
            )
            return ExecutionOutcome.RETRY_SCHEDULED

        await delete_task(session, task)
        logger.info("newsletter issue delivered", extra=context)
        return ExecutionOutcome.TASK_COMPLETED


async def run_delivery_loop(
    *,
    email_client: EmailClient,
    policy: RetryPolicy | None = None,
    backoff: LoopBackoff | None = None,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    max_iterations: int | None = None,
) -> None:
    # Poll forever in production; tests bound the loop with max_iterations.
    policy = policy or RetryPolicy.from_settings()
    backoff = backoff or LoopBackoff.from_settings()
    iterations = 0
    while max_iterations is None or iterations < max_iterations:
        iterations += 1
        try:
            outcome = await try_execute_task(
                email_client=email_client,
                policy=policy,
                session_factory=session_factory,
            )
        except Exception:  # noqa: BLE001 - keep the worker alive; the rollback released the task.
            logger.exception("delivery worker iteration failed")
            await asyncio.sleep(backoff.error_s)
            continue
        if outcome is ExecutionOutcome.EMPTY_QUEUE:
            await asyncio.sleep(backoff.idle_s)


async def run_delivery_workers(*, concurrency: int | None = None) -> None:
    # N loops share one HTTP client and the engine pool; all coordination happens in Postgres.
    settings = get_settings()
    workers = max(1, int(concurrency if concurrency is not None else settings.delivery_worker_concurrency))
    email_client = EmailClient.from_settings()
    policy = RetryPolicy.from_settings()
    backoff = LoopBackoff.from_settings()
    try:
        await asyncio.gather(
            *(
                run_delivery_loop(email_client=email_client, policy=policy, backoff=backoff)
                for _ in range(workers)
            )
        )
    finally:
        await email_client.aclose()
