from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk.domain.models import (
    SUBSCRIPTION_STATUS_CONFIRMED,
    SUBSCRIPTION_STATUS_PENDING,
    Subscription,
)


async def list_confirmed_emails(session: AsyncSession) -> list[str]:
    # Raw stored addresses; callers validate before sending.
    result = await session.execute(
        select(Subscription.email)
        .where(Subscription.status == SUBSCRIPTION_STATUS_CONFIRMED)
        .order_by(Subscription.subscribed_at, Subscription.email)
    )
    return list(result.scalars().all())


async def add_subscription(
    session: AsyncSession,
    *,
    email: str,
    name: str,
    confirmed: bool = False,
    subscription_id: UUID | None = None,
) -> Subscription:
    row = Subscription(
        id=subscription_id or uuid4(),
        email=email,
        name=name,
        status=SUBSCRIPTION_STATUS_CONFIRMED if confirmed else SUBSCRIPTION_STATUS_PENDING,
    )
    session.add(row)
    await session.flush()
    return row

