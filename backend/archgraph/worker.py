"""
Standalone consumer for the Redis queue backend.

    python -m archgraph.worker

Reads REDIS_URL and RUNTIME_QUEUE_NAME from the environment.
"""

import asyncio
import logging
import signal
import sys
from typing import Any, Dict

from archgraph.adapters.queue import RedisQueueAdapter
from archgraph.config import RuntimeSettings

logger = logging.getLogger("archgraph.worker")


async def handle_job(payload: Dict[str, Any]) -> None:
    logger.info("Job payload keys: %s", ", ".join(payload) or "(none)")


async def run_worker(settings: RuntimeSettings) -> None:
    adapter = RedisQueueAdapter(settings.redis_url)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await adapter.consume(settings.queue_name, handle_job, stop=stop)
    finally:
        await adapter.close()


def main() -> int:
    settings = RuntimeSettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.redis_url:
        logger.error("REDIS_URL is required to run the queue worker")
        return 1

    asyncio.run(run_worker(settings))
    return 0


if __name__ == "__main__":
    sys.exit(main())
