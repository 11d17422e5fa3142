from typing import Dict

from fastapi import HTTPException, Request, status

from callsync.core.database import SessionLocal
from callsync.services.store import SqlCallStore
from callsync.services.sync import SyncOrchestrator
from callsync.services.voximplant_client import VoximplantClient


def get_store() -> SqlCallStore:
    return SqlCallStore(SessionLocal)


def get_orchestrators(request: Request) -> Dict[str, SyncOrchestrator]:
    orchestrators = getattr(request.app.state, "orchestrators", None)
    if orchestrators is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Sync not initialised")
    return orchestrators


def get_voximplant_client() -> VoximplantClient:
    return VoximplantClient()
