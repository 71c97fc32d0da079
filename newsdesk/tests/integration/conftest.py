from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import delete

from newsdesk.domain.models import (
    ApiKey,
    Base,
    IdempotencyRecord,
    IssueDeliveryTask,
    NewsletterIssue,
    Subscription,
    User,
)
from newsdesk.persistence.db import SessionLocal, engine
from newsdesk.tests.utils.db import handle_unavailable_database


_database_available: bool | None = None


async def _ensure_schema() -> bool:
    global _database_available
    if _database_available is None:
        try:
            async with engine.begin() as conn:
                await asyncio.wait_for(conn.run_sync(Base.metadata.create_all), timeout=5)
            _database_available = True
        except Exception:  # noqa: BLE001 - any connection failure means no database for this run.
            _database_available = False
        finally:
            await engine.dispose()
    return _database_available


@pytest.fixture(autouse=True)
async def clean_database() -> None:
    # Integration tests run against a real Postgres; see handle_unavailable_database.
    if not await _ensure_schema():
        handle_unavailable_database(engine.url.render_as_string(hide_password=True))
    async with SessionLocal() as session:
        await session.execute(delete(IssueDeliveryTask))
        await session.execute(delete(NewsletterIssue))
        await session.execute(delete(IdempotencyRecord))
        await session.execute(delete(Subscription))
        await session.execute(delete(ApiKey))
        await session.execute(delete(User))
        await session.commit()
    yield
