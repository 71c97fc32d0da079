from __future__ import annotations

import asyncio

from newsdesk.core.logging import configure_logging
from newsdesk.workers.idempotency_reaper import run_reaper_cycle


async def prune() -> None:
    # Single reaper pass for cron-style schedulers.
    configure_logging()
    deleted = await run_reaper_cycle()
    print(f"pruned_idempotency_records={deleted}")


if __name__ == "__main__":
    asyncio.run(prune())
