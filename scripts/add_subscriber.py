from __future__ import annotations

import argparse
import asyncio
import sys

from newsdesk.core.logging import configure_logging
from newsdesk.persistence.db import SessionLocal
from newsdesk.persistence.repos.subscriptions import add_subscription


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Add a newsletter subscriber")
    parser.add_argument("--email", required=True, help="Subscriber email address")
    parser.add_argument("--name", required=True, help="Subscriber display name")
    parser.add_argument(
        "--confirmed",
        action="store_true",
        help="Mark the subscription confirmed so it receives the next published issue",
    )
    return parser


async def _add(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        row = await add_subscription(session, email=args.email, name=args.name, confirmed=args.confirmed)
        await session.commit()
    print(f"subscription_id={row.id} status={row.status}")
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_add(args))
    except Exception as exc:  # noqa: BLE001 - surface seeding failures clearly
        print(f"add_subscriber failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
