from callsync import tasks
from callsync.services.adapters import PageResult
from callsync.services.sync import SyncOrchestrator
from conftest import FakeAdapter, voximplant_item


def test_task_runs_provider_sync(store, monkeypatch):
    orchestrator = SyncOrchestrator(FakeAdapter([PageResult(items=[voximplant_item(1)])]), store)
    monkeypatch.setattr(tasks, "_orchestrators", {"voximplant": orchestrator})

    data = tasks.sync_provider_calls("voximplant")

    assert data["status"] == "success"
    assert data["created"] == 1
    assert data["finished_at"] is not None


def test_task_unknown_provider(store, monkeypatch):
    monkeypatch.setattr(tasks, "_orchestrators", {})
    assert tasks.sync_provider_calls("twilio") is None
