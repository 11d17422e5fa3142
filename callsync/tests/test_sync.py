import asyncio

import httpx
import pytest

from callsync.schemas import CallSource, CallStatus
from callsync.services.adapters import ElevenLabsAdapter, PageResult, VoximplantAdapter
from callsync.services.elevenlabs_client import ElevenLabsClient
from callsync.services.normalizer import normalize_call_history
from callsync.services.sync import SyncOrchestrator, SyncOutcome, SyncState
from callsync.services.voximplant_client import VoximplantClient
from conftest import FakeAdapter, conversation_item, voximplant_item


def page(*items, next_token=None):
    return PageResult(items=list(items), next_token=next_token, done=next_token is None)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_sync_creates_records_in_page_order(store):
    adapter = FakeAdapter(
        [
            page(voximplant_item(1), voximplant_item(2), next_token="p2"),
            page(voximplant_item(3)),
        ]
    )
    result = await SyncOrchestrator(adapter, store).run_on_demand()

    assert result.status is SyncOutcome.SUCCESS
    assert result.pages == 2
    assert result.created == 3
    assert adapter.tokens == [None, "p2"]
    assert adapter.details_calls == ["1", "2", "3"]
    assert sorted(r.external_id for r in store.query()) == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_resync_is_idempotent(store):
    orchestrator = SyncOrchestrator(FakeAdapter([page(voximplant_item(1), voximplant_item(2))]), store)
    await orchestrator.run_on_demand()
    before = store.query()

    orchestrator.adapter = FakeAdapter([page(voximplant_item(1, duration=0), voximplant_item(2))])
    result = await orchestrator.run_on_demand()

    assert result.created == 0
    assert result.skipped == 2
    assert store.create_calls == 2
    assert store.query() == before
    assert store.query(status=CallStatus.MISSED) == []


@pytest.mark.asyncio
async def test_stored_records_are_valid(store):
    adapter = FakeAdapter([page(voximplant_item(1, duration=-3), voximplant_item(2, successful=False))])
    await SyncOrchestrator(adapter, store).run_on_demand()

    for record in store.query():
        assert record.duration_seconds >= 0
        assert record.status in (CallStatus.COMPLETED, CallStatus.MISSED)


@pytest.mark.asyncio
async def test_malformed_record_is_skipped(store):
    adapter = FakeAdapter(
        [page(voximplant_item(1), voximplant_item(None), voximplant_item(3, start_date="not a date"), voximplant_item(4))]
    )
    result = await SyncOrchestrator(adapter, store).run_on_demand()

    assert result.status is SyncOutcome.SUCCESS
    assert result.created == 2
    assert result.failed_records == 2
    assert sorted(r.external_id for r in store.query()) == ["1", "4"]


@pytest.mark.asyncio
async def test_fatal_page_aborts_loop(store):
    adapter = FakeAdapter(
        [page(voximplant_item(1), next_token="p2"), PageResult.fatal("HTTP 500"), page(voximplant_item(3))]
    )
    orchestrator = SyncOrchestrator(adapter, store)
    result = await orchestrator.run_on_demand()

    assert result.status is SyncOutcome.FAILED
    assert result.stage == "fetch_page"
    assert result.created == 1
    assert adapter.calls == 2
    assert orchestrator.state is SyncState.IDLE


@pytest.mark.asyncio
async def test_recoverable_page_ends_loop_quietly(store):
    adapter = FakeAdapter([PageResult.recoverable("HTTP 502")])
    result = await SyncOrchestrator(adapter, store).run_on_demand()

    assert result.status is SyncOutcome.SUCCESS
    assert result.created == 0
    assert result.warning == "HTTP 502"


@pytest.mark.asyncio
async def test_page_ceiling_stops_runaway_pagination(store):
    adapter = FakeAdapter([page(voximplant_item(1), next_token="again")])
    result = await SyncOrchestrator(adapter, store, max_pages=3).run_on_demand()

    assert adapter.calls == 3
    assert result.pages == 3
    assert result.created == 1
    assert result.skipped == 2


@pytest.mark.asyncio
async def test_trigger_while_running_is_dropped(store):
    gate = asyncio.Event()
    adapter = FakeAdapter([page(voximplant_item(1), voximplant_item(2))], gate=gate)
    orchestrator = SyncOrchestrator(adapter, store)

    first = asyncio.create_task(orchestrator.run_on_demand())
    await settle()
    assert orchestrator.state is SyncState.RUNNING

    second = await orchestrator.run_on_demand()
    await orchestrator.run_periodic()

    assert second.status is SyncOutcome.SKIPPED
    assert adapter.calls == 1
    assert store.create_calls == 0

    gate.set()
    result = await first
    assert result.created == 2
    assert adapter.calls == 1
    assert store.create_calls == 2
    assert orchestrator.state is SyncState.IDLE


@pytest.mark.asyncio
async def test_state_released_after_crash(store):
    class ExplodingAdapter(FakeAdapter):
        async def fetch_page(self, token=None):
            self.tokens.append(token)
            raise RuntimeError("adapter bug")

    orchestrator = SyncOrchestrator(ExplodingAdapter([]), store)
    result = await orchestrator.run_on_demand()

    assert result.status is SyncOutcome.FAILED
    assert result.stage == "sync"
    assert "adapter bug" in result.message
    assert orchestrator.state is SyncState.IDLE

    await orchestrator.run_periodic()
    assert orchestrator.adapter.calls == 2


@pytest.mark.asyncio
async def test_store_error_skips_record_and_continues(store):
    class FlakyStore(type(store)):
        def create(self, record):
            if record.external_id == "2":
                raise RuntimeError("disk full")
            return super().create(record)

    flaky = FlakyStore(store.session_factory)
    adapter = FakeAdapter([page(voximplant_item(1), voximplant_item(2), voximplant_item(3))])
    result = await SyncOrchestrator(adapter, flaky).run_on_demand()

    assert result.status is SyncOutcome.SUCCESS
    assert result.created == 2
    assert result.failed_records == 1


@pytest.mark.asyncio
async def test_events_are_published(store):
    events = []

    async def publish(event):
        events.append(event)

    adapter = FakeAdapter([page(voximplant_item(1), voximplant_item(None))])
    await SyncOrchestrator(adapter, store, publish=publish).run_on_demand()

    assert [event["type"] for event in events] == ["new_call", "sync_item_error", "sync_complete"]
    assert events[-1]["payload"]["new_count"] == 1


@pytest.mark.asyncio
async def test_publish_failure_does_not_break_sync(store):
    async def publish(event):
        raise ConnectionError("redis down")

    adapter = FakeAdapter([page(voximplant_item(1))])
    result = await SyncOrchestrator(adapter, store, publish=publish).run_on_demand()
    assert result.created == 1


@pytest.mark.asyncio
async def test_elevenlabs_sync_stops_on_missing_cursor(store):
    list_requests = []

    def handler(request):
        if request.url.path.endswith("/convai/conversations"):
            list_requests.append(request)
            return httpx.Response(
                200,
                json={"conversations": [conversation_item("c1")], "has_more": True, "next_cursor": None},
            )
        return httpx.Response(
            200,
            json={
                "transcript": [{"role": "agent", "message": "Hello"}, {"role": "user", "message": "Hi"}],
                "audio_url": "https://audio.example/c1.mp3",
                "analysis": {"transcript_summary": "Greeting"},
            },
        )

    client = ElevenLabsClient(api_key="key", transport=httpx.MockTransport(handler))
    result = await SyncOrchestrator(ElevenLabsAdapter(client=client), store).run_on_demand()

    assert result.status is SyncOutcome.SUCCESS
    assert len(list_requests) == 1
    stored = store.query(source=CallSource.ELEVENLABS)
    assert len(stored) == 1
    assert stored[0].transcription == "agent: Hello\nuser: Hi"
    assert stored[0].summary == "Greeting"


@pytest.mark.asyncio
async def test_voximplant_without_credentials_is_a_noop(store):
    def handler(request):
        raise AssertionError("no request expected")

    client = VoximplantClient(account_id="", api_key="", transport=httpx.MockTransport(handler))
    result = await SyncOrchestrator(VoximplantAdapter(client=client), store).run_on_demand()

    assert result.status is SyncOutcome.SUCCESS
    assert result.created == 0
    assert result.warning
    assert store.query(source=CallSource.VOXIMPLANT) == []


@pytest.mark.asyncio
async def test_non_object_items_count_as_failed_records(store):
    adapter = FakeAdapter([page(voximplant_item(1), None, "junk", voximplant_item(2))])
    result = await SyncOrchestrator(adapter, store).run_on_demand()

    assert result.status is SyncOutcome.SUCCESS
    assert result.created == 2
    assert result.failed_records == 2


@pytest.mark.asyncio
async def test_duplicate_on_create_counts_as_skipped(store):
    class StaleExistsStore(type(store)):
        def exists(self, source, external_id):
            return False

    store.create(normalize_call_history(voximplant_item(1)))
    stale = StaleExistsStore(store.session_factory)
    result = await SyncOrchestrator(FakeAdapter([page(voximplant_item(1))]), stale).run_on_demand()

    assert result.status is SyncOutcome.SUCCESS
    assert result.skipped == 1
    assert result.created == 0
    assert result.failed_records == 0
    assert len(store.query()) == 1
