import asyncio
import logging
from typing import Dict, Optional

from celery import shared_task

from callsync.core.database import SessionLocal
from callsync.services.adapters import build_adapters
from callsync.services.store import SqlCallStore
from callsync.services.sync import SyncOrchestrator, build_orchestrators

logger = logging.getLogger(__name__)

_orchestrators: Optional[Dict[str, SyncOrchestrator]] = None


def get_orchestrators() -> Dict[str, SyncOrchestrator]:
    # one set per worker process so the running guard spans task invocations
    global _orchestrators
    if _orchestrators is None:
        _orchestrators = build_orchestrators(build_adapters(), SqlCallStore(SessionLocal))
    return _orchestrators


# No autoretry: the beat schedule is the retry mechanism.
@shared_task(name="callsync.tasks.sync_provider_calls")
def sync_provider_calls(provider: str) -> Optional[dict]:
    orchestrator = get_orchestrators().get(provider)
    if orchestrator is None:
        logger.error("Unknown provider %s", provider)
        return None
    result = asyncio.run(orchestrator.run_on_demand())
    if not result.ok:
        logger.error("%s sync failed at %s: %s", provider, result.stage, result.message)
    data = result.as_dict()
    data["started_at"] = result.started_at.isoformat()
    data["finished_at"] = result.finished_at.isoformat() if result.finished_at else None
    return data
