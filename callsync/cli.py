import asyncio
from typing import Optional

import typer

from callsync.core.database import SessionLocal, init_db
from callsync.core.logging import setup_logging
from callsync.services import calls_view
from callsync.services.adapters import build_adapters
from callsync.services.store import SqlCallStore
from callsync.services.sync import build_orchestrators

app = typer.Typer()


@app.callback()
def main(log_level: str = "INFO"):
    setup_logging(log_level)


@app.command()
def serve(host: str = "0.0.0.0", port: Optional[int] = typer.Option(None, help="Defaults to PORT")):
    from callsync import entrypoint

    asyncio.run(entrypoint.serve(host=host, port=port))


@app.command("init-db")
def init_database():
    init_db()
    typer.echo("Database ready")


@app.command()
def sync(provider: str = typer.Argument("all", help="elevenlabs, voximplant or all")):
    orchestrators = build_orchestrators(build_adapters(), SqlCallStore(SessionLocal))
    if provider == "all":
        selected = list(orchestrators.values())
    elif provider in orchestrators:
        selected = [orchestrators[provider]]
    else:
        typer.echo(f"Unknown provider {provider}", err=True)
        raise typer.Exit(code=2)

    failed = False
    for orchestrator in selected:
        result = asyncio.run(orchestrator.run_on_demand())
        line = f"{result.provider}: {result.status.value} (new={result.created}, skipped={result.skipped}, failed={result.failed_records})"
        if result.warning:
            line += f" warning: {result.warning}"
        if not result.ok:
            failed = True
            line += f" stage={result.stage}: {result.message}"
        typer.echo(line)
    if failed:
        raise typer.Exit(code=1)


@app.command()
def calls(limit: int = 20, search: str = ""):
    records = calls_view.unified_from_store(SqlCallStore(SessionLocal), search=search or None)
    for record in records[:limit]:
        typer.echo(
            f"{record.timestamp.isoformat()}  {record.source.value:<10}  "
            f"{record.caller_number or '-':<16}  {record.duration_seconds:>5}s  {record.status.value}"
        )


if __name__ == "__main__":
    app()
