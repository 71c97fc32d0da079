from __future__ import annotations

import asyncio

from newsdesk.core.logging import configure_logging
from newsdesk.workers.idempotency_reaper import run_reaper_loop


async def _main() -> None:
    # Run the TTL reaper as its own process so API replicas never race on cleanup.
    configure_logging()
    await run_reaper_loop()


if __name__ == "__main__":
    asyncio.run(_main())
