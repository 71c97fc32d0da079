from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from newsdesk.domain.models import ApiKey, User
from newsdesk.persistence.db import SessionLocal
from newsdesk.services.auth.api_keys import generate_api_key


async def create_test_api_key(
    *,
    username: str | None = None,
    name: str = "test-key",
    revoked: bool = False,
) -> tuple[str, dict[str, str], str]:
    # Provision a user + API key pair for integration tests.
    user_id = uuid4().hex
    key_id, raw_key, key_prefix, key_hash = generate_api_key()
    async with SessionLocal() as session:
        session.add(User(id=user_id, username=username or f"publisher-{user_id}"))
        # Flush the user insert before the API key to satisfy FK constraints.
        await session.flush()
        api_key = ApiKey(
            id=key_id,
            user_id=user_id,
            key_prefix=key_prefix,
            key_hash=key_hash,
            name=name,
        )
        if revoked:
            api_key.revoked_at = datetime.now(timezone.utc)
        session.add(api_key)
        await session.commit()
    headers = {"Authorization": f"Bearer {raw_key}"}
    return raw_key, headers, user_id
