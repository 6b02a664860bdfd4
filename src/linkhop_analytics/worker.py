"""Standalone click consumer worker.

Runs the same consumer as the analytics service without the HTTP layer,
so consumption can be scaled independently::

    python -m linkhop_analytics.worker

Metrics are exposed on ``WORKER_METRICS_PORT`` (default 9201).
"""

import asyncio
import os
import signal

import structlog
from prometheus_client import start_http_server

from linkhop_analytics.consumers import start_consumer, stop_consumer
from linkhop_analytics.core.database import close_db
from linkhop_analytics.core.observability import setup_observability
from linkhop_analytics.core.redis import close_redis

__all__ = ["run"]

logger = structlog.get_logger()


async def run() -> None:
    setup_observability()

    metrics_port = int(os.getenv("WORKER_METRICS_PORT", "9201"))
    start_http_server(metrics_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    consumer = await start_consumer()
    logger.info("Click worker running", consumer=consumer.consumer_name, metrics_port=metrics_port)

    try:
        await stop_event.wait()
    finally:
        logger.info("Click worker shutting down")
        await stop_consumer()
        await close_redis()
        await close_db()


if __name__ == "__main__":
    asyncio.run(run())
