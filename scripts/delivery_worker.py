from __future__ import annotations

import argparse
import asyncio

from newsdesk.core.logging import configure_logging
from newsdesk.workers.delivery import run_delivery_workers


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drain the newsletter issue delivery queue")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of concurrent delivery loops (defaults to DELIVERY_WORKER_CONCURRENCY)",
    )
    return parser


async def _main(concurrency: int | None) -> None:
    # Boot dedicated delivery loops so sends never run inside API request handlers.
    configure_logging()
    await run_delivery_workers(concurrency=concurrency)


if __name__ == "__main__":
    args = _build_parser().parse_args()
    asyncio.run(_main(args.concurrency))
