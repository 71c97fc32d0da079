from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from newsdesk.core.config import get_settings
from newsdesk.domain.models import IdempotencyRecord
from newsdesk.persistence.db import SessionLocal
from newsdesk.workers.idempotency_reaper import run_reaper_cycle


@pytest.mark.asyncio
async def test_reaper_deletes_only_expired_records(monkeypatch) -> None:
    monkeypatch.setenv("IDEMPOTENCY_TTL_SECONDS", "3600")
    get_settings.cache_clear()
    now = datetime.now(timezone.utc)
    async with SessionLocal() as session:
        session.add_all(
            [
                IdempotencyRecord(user_id="u1", idempotency_key="old", created_at=now - timedelta(hours=2)),
                IdempotencyRecord(
                    user_id="u1",
                    idempotency_key="old-in-flight",
                    created_at=now - timedelta(hours=3),
                ),
                IdempotencyRecord(
                    user_id="u2",
                    idempotency_key="fresh",
                    created_at=now - timedelta(minutes=5),
                    response_status_code=200,
                    response_headers=[],
                    response_body=b"{}",
                ),
            ]
        )
        await session.commit()

    deleted = await run_reaper_cycle(now=now)

    assert deleted == 2
    async with SessionLocal() as session:
        keys = (await session.execute(select(IdempotencyRecord.idempotency_key))).scalars().all()
    assert list(keys) == ["fresh"]
