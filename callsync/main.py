import asyncio
import json
import logging
from typing import Optional, Set

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import OperationalError

from callsync.api import calls, health, sync
from callsync.core.config import settings
from callsync.core.database import SessionLocal, engine, init_db
from callsync.core.logging import setup_logging
from callsync.services.adapters import build_adapters
from callsync.services.store import SqlCallStore
from callsync.services.sync import SyncOrchestrator, build_orchestrators

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(calls.router)
app.include_router(sync.router)

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None
scheduler_tasks: list[asyncio.Task] = []
running_syncs: Set[asyncio.Task] = set()


@app.on_event("startup")
async def on_startup() -> None:
    setup_logging()
    await wait_for_database()
    init_db()
    global redis_client
    if settings.publish_events:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    store = SqlCallStore(SessionLocal)
    app.state.orchestrators = build_orchestrators(build_adapters(), store, publish=publish_event)
    if settings.scheduler_backend == "inline":
        for orchestrator in app.state.orchestrators.values():
            scheduler_tasks.append(asyncio.create_task(run_scheduler(orchestrator)))
        logger.info("Inline scheduler started, interval %ss", settings.sync_interval_seconds)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    global redis_client
    for task in scheduler_tasks:
        task.cancel()
    scheduler_tasks.clear()
    if redis_client:
        await redis_client.close()
        redis_client = None


async def wait_for_database(max_attempts: int = 8, delay_seconds: float = 1.5) -> None:
    attempt = 0
    delay = delay_seconds
    while attempt < max_attempts:
        attempt += 1
        try:
            with engine.connect():
                return
        except OperationalError as exc:
            if attempt >= max_attempts:
                logger.error(
                    "Database connection failed after %s attempts.",
                    attempt,
                    exc_info=exc,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1fs.",
                attempt,
                max_attempts,
                delay,
            )
            await asyncio.sleep(delay)
            delay = min(delay * 1.5, 10.0)


async def publish_event(payload: dict) -> None:
    if redis_client:
        await redis_client.publish("events", json.dumps(payload, default=str))


async def run_scheduler(orchestrator: SyncOrchestrator) -> None:
    """Fire a periodic sync every interval without waiting for the last one.

    A tick that lands while the previous run is still going is dropped by the
    orchestrator's running guard.
    """
    while True:
        task = asyncio.create_task(orchestrator.run_periodic())
        running_syncs.add(task)
        task.add_done_callback(running_syncs.discard)
        await asyncio.sleep(settings.sync_interval_seconds)
