import asyncio
import logging
import signal
from typing import Optional

import uvicorn

from callsync.core.config import settings
from callsync.main import app

logger = logging.getLogger(__name__)


async def serve(host: str = "0.0.0.0", port: Optional[int] = None) -> None:
    """Run the API until SIGTERM or SIGINT, then let uvicorn drain and run shutdown hooks."""
    config = uvicorn.Config(app, host=host, port=port or settings.port, log_level=settings.log_level.lower())
    server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    server_task = asyncio.create_task(server.serve())
    stop_waiter = asyncio.create_task(stop_event.wait())
    await asyncio.wait({server_task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
    if not server_task.done():
        logger.info("Stopping API server on %s:%s", host, config.port)
        server.should_exit = True
    stop_waiter.cancel()
    await server_task


if __name__ == "__main__":
    asyncio.run(serve())
