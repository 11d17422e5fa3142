from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from callsync.core.deps import get_orchestrators, get_store, get_voximplant_client
from callsync.schemas import BalanceOut, CallSource, CallStats, CallStatus, ConversationDetailOut, UnifiedCallsOut
from callsync.services import account, calls_view
from callsync.services.errors import ConfigurationMissing, TransientProviderError
from callsync.services.store import SqlCallStore
from callsync.services.voximplant_client import VoximplantClient

router = APIRouter(prefix="/calls", tags=["calls"])


@router.get("", response_model=UnifiedCallsOut)
async def list_calls(
    search: str | None = None,
    status_filter: CallStatus | None = Query(default=None, alias="status"),
    from_date: datetime | None = Query(default=None, alias="from"),
    to_date: datetime | None = Query(default=None, alias="to"),
    live: bool = False,
    store: SqlCallStore = Depends(get_store),
    orchestrators: dict = Depends(get_orchestrators),
):
    if live:
        records = await calls_view.unified_from_providers(
            orchestrators["voximplant"].adapter,
            orchestrators["elevenlabs"].adapter,
            search=search,
            status=status_filter,
            start=from_date,
            end=to_date,
        )
    else:
        records = calls_view.unified_from_store(
            store, search=search, status=status_filter, start=from_date, end=to_date
        )
    merged = sum(1 for record in records if record.source is CallSource.MERGED)
    return UnifiedCallsOut(items=records, total=len(records), merged=merged)


@router.get("/stats", response_model=CallStats)
def call_stats(
    from_date: datetime | None = Query(default=None, alias="from"),
    to_date: datetime | None = Query(default=None, alias="to"),
    store: SqlCallStore = Depends(get_store),
):
    return store.aggregate(start=calls_view.as_utc(from_date), end=calls_view.as_utc(to_date))


@router.get("/balance", response_model=BalanceOut)
async def balance(client: VoximplantClient = Depends(get_voximplant_client)):
    try:
        return await account.account_balance(client)
    except TransientProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Error fetching balance") from exc


@router.get("/conversations/{conversation_id}", response_model=ConversationDetailOut)
async def conversation(conversation_id: str):
    try:
        return await calls_view.conversation_detail(conversation_id)
    except ConfigurationMissing as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except TransientProviderError as exc:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found") from exc
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
