from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from callsync.core.deps import get_orchestrators, get_voximplant_client
from callsync.schemas import DiagnosticsOut, SyncResultOut, SyncStatusOut
from callsync.services import account
from callsync.services.voximplant_client import VoximplantClient

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=List[SyncStatusOut])
def sync_status(orchestrators: dict = Depends(get_orchestrators)):
    return [
        SyncStatusOut(provider=name, state=orchestrator.state.value)
        for name, orchestrator in orchestrators.items()
    ]


@router.get("/voximplant/diagnose", response_model=DiagnosticsOut)
async def voximplant_diagnose(client: VoximplantClient = Depends(get_voximplant_client)):
    report = await account.diagnose(client)
    if report.configuration.error:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=report.model_dump(mode="json"))
    return report


@router.post("/{provider}", response_model=SyncResultOut)
async def trigger_sync(provider: str, orchestrators: dict = Depends(get_orchestrators)):
    orchestrator = orchestrators.get(provider.lower())
    if orchestrator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider {provider}")
    result = await orchestrator.run_on_demand()
    body = SyncResultOut(**result.as_dict())
    if not result.ok:
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=body.model_dump(mode="json"))
    return body
