from typer.testing import CliRunner

from callsync import entrypoint
from callsync.cli import app

runner = CliRunner()


def test_serve_runs_api_server(monkeypatch):
    calls = []

    async def fake_serve(host="0.0.0.0", port=None):
        calls.append((host, port))

    monkeypatch.setattr(entrypoint, "serve", fake_serve)
    result = runner.invoke(app, ["serve", "--host", "127.0.0.1", "--port", "8080"])

    assert result.exit_code == 0, result.output
    assert calls == [("127.0.0.1", 8080)]


def test_serve_defaults_port_to_settings(monkeypatch):
    calls = []

    async def fake_serve(host="0.0.0.0", port=None):
        calls.append((host, port))

    monkeypatch.setattr(entrypoint, "serve", fake_serve)
    result = runner.invoke(app, ["serve"])

    assert result.exit_code == 0, result.output
    assert calls == [("0.0.0.0", None)]


def test_sync_rejects_unknown_provider():
    result = runner.invoke(app, ["sync", "twilio"])
    assert result.exit_code == 2
