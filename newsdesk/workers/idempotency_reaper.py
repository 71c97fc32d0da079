from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsdesk.core.config import get_settings
from newsdesk.domain.models import IdempotencyRecord
from newsdesk.persistence.db import SessionLocal


logger = logging.getLogger(__name__)


async def delete_expired_idempotency_records(
    session: AsyncSession,
    *,
    ttl: timedelta,
    now: datetime | None = None,
) -> int:
    # Age is measured from creation, so crashed in-flight records expire the same way.
    cutoff = (now or datetime.now(timezone.utc)) - ttl
    result = await session.execute(
        delete(IdempotencyRecord).where(IdempotencyRecord.created_at < cutoff)
    )
    await session.commit()
    return int(result.rowcount or 0)


async def run_reaper_cycle(
    *,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    now: datetime | None = None,
) -> int:
    ttl = timedelta(seconds=max(0, int(get_settings().idempotency_ttl_seconds)))
    async with session_factory() as session:
        return await delete_expired_idempotency_records(session, ttl=ttl, now=now)


async def run_reaper_loop(
    *,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    max_iterations: int | None = None,
) -> None:
    interval = max(0.0, float(get_settings().idempotency_reaper_interval_s))
    iterations = 0
    while max_iterations is None or iterations < max_iterations:
        iterations += 1
        try:
            deleted = await run_reaper_cycle(session_factory=session_factory)
            logger.info("expired idempotency records cleaned", extra={"deleted": deleted})
        except Exception:  # noqa: BLE001 - cleanup failures must never stop the process.
            logger.exception("failed to clean expired idempotency records")
        await asyncio.sleep(interval)
