from __future__ import annotations

import argparse
import asyncio
import sys
from uuid import uuid4

from sqlalchemy import select

from newsdesk.core.logging import configure_logging
from newsdesk.domain.models import ApiKey, User
from newsdesk.persistence.db import SessionLocal
from newsdesk.services.auth.api_keys import generate_api_key


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create an API key for a newsletter publisher")
    parser.add_argument("--username", required=True, help="Publisher username")
    parser.add_argument("--name", required=True, help="Key label for auditing")
    return parser


async def _create_key(args: argparse.Namespace) -> int:
    key_id, raw_key, key_prefix, key_hash = generate_api_key()

    async with SessionLocal() as session:
        user = (
            await session.execute(select(User).where(User.username == args.username))
        ).scalar_one_or_none()
        if user is None:
            user = User(id=uuid4().hex, username=args.username)
            session.add(user)
            # Flush the user row before inserting API keys to satisfy FK constraints.
            await session.flush()
        session.add(
            ApiKey(
                id=key_id,
                user_id=user.id,
                key_prefix=key_prefix,
                key_hash=key_hash,
                name=args.name,
            )
        )
        await session.commit()

    print("API key created:")
    print(f"  user_id: {user.id}")
    print(f"  key_id: {key_id}")
    print(f"  key_prefix: {key_prefix}")
    print("  api_key: ")
    print(f"    {raw_key}")
    return 0


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_create_key(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_api_key failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
