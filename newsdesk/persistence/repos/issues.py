from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk.domain.models import NewsletterIssue


async def get_issue(session: AsyncSession, issue_id: UUID) -> NewsletterIssue | None:
    result = await session.execute(
        select(NewsletterIssue).where(NewsletterIssue.newsletter_issue_id == issue_id)
    )
    return result.scalar_one_or_none()
