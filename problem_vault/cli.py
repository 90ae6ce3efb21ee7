"""
Command-line interface for problem-vault.

Usage:
    problem-vault serve                # Run the control API
    problem-vault init-db              # Create tables and default configs
    problem-vault seed-targets         # Load default collector targets
    problem-vault collect REDDIT       # Run one collection in the foreground
    problem-vault process              # Drain unprocessed signals
    problem-vault status               # Show per-source run state
"""

import asyncio
import json
import signal
import sys
from pathlib import Path

import click

from problem_vault.collectors.cancellation import CancellationToken
from problem_vault.collectors.schemas import CollectionStatus, SourceType
from problem_vault.config.settings import get_settings
from problem_vault.llm.client import LLMClient
from problem_vault.observability.logging import setup_logging
from problem_vault.observability.metrics import get_metrics
from problem_vault.services.collection_service import CollectionError
from problem_vault.services.factory import (
    build_collection_service,
    build_pipeline_service,
    build_repositories,
    init_schema,
)
from problem_vault.storage.database import Database


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Problem Vault - collect pain-point signals and distil them into problems."""
    setup_logging("DEBUG" if debug else None)


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the control API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    if settings.metrics_enabled:
        get_metrics().start_server(port=settings.metrics_port)
        click.echo(f"Metrics available on http://localhost:{settings.metrics_port}/metrics")

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "problem_vault.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""

    async def run():
        db = Database()
        await db.connect()
        try:
            await init_schema(build_repositories(db))
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command("seed-targets")
@click.option(
    "--file",
    "path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON seed file (defaults to the bundled targets)",
)
def seed_targets(path: Path | None) -> None:
    """Insert or update collector targets from a JSON seed file."""

    async def run():
        db = Database()
        await db.connect()
        try:
            repos = build_repositories(db)
            await repos.targets.create_table()
            count = await repos.targets.seed_from_json(path)
            click.echo(f"Seeded {count} targets")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.argument("source_type")
def collect(source_type: str) -> None:
    """Run one collection for SOURCE_TYPE in the foreground (Ctrl-C stops it)."""
    parsed = SourceType.parse(source_type)
    if parsed is None:
        choices = ", ".join(s.value for s in SourceType)
        raise click.BadParameter(f"{source_type} (expected one of: {choices})")

    async def run() -> int:
        db = Database()
        await db.connect()
        try:
            repos = build_repositories(db)
            service = build_collection_service(repos, LLMClient())

            token = CancellationToken()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, token.cancel)

            try:
                result = await service.run_collection(parsed, token)
            except CollectionError as e:
                click.echo(click.style(e.message, fg="red"))
                return 1

            color = "green" if result.status == CollectionStatus.COMPLETED else "yellow"
            click.echo(click.style(f"{parsed.value}: {result.status.value}", fg=color))
            click.echo(f"  items collected:    {result.items_collected}")
            click.echo(f"  duplicates skipped: {result.duplicates_skipped}")
            click.echo(f"  duration:           {result.duration_ms} ms")
            if result.error:
                click.echo(click.style(f"  error: {result.error}", fg="red"))
            return 1 if result.status == CollectionStatus.FAILED else 0
        finally:
            await db.close()

    sys.exit(asyncio.run(run()))


@main.command()
def process() -> None:
    """Process all unprocessed signals into the problem vault."""

    async def run() -> int:
        db = Database()
        await db.connect()
        try:
            service = build_pipeline_service(build_repositories(db), LLMClient())

            token = CancellationToken()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, token.cancel)

            result = await service.process_unprocessed_signals(token)
            click.echo(json.dumps(result.to_dict(), indent=2))
            return 1 if result.error else 0
        finally:
            await db.close()

    sys.exit(asyncio.run(run()))


@main.command()
def status() -> None:
    """Show the run state of every source."""

    async def run():
        db = Database()
        await db.connect()
        try:
            configs = await build_repositories(db).configs.list_all()
        finally:
            await db.close()

        click.echo(f"{'SOURCE':<16}{'STATUS':<10}{'ITEMS':>7}  LAST RUN")
        click.echo("-" * 60)
        for config in configs:
            item = config.to_status()
            color = {"RUNNING": "yellow", "FAILED": "red"}.get(item["status"])
            line = (
                f"{item['sourceType']:<16}{item['status']:<10}"
                f"{item['itemsLastRun']:>7}  {item['lastRunAt'] or '-'}"
            )
            click.echo(click.style(line, fg=color))
            if item["lastError"]:
                click.echo(f"    {item['lastError']}")

    asyncio.run(run())


if __name__ == "__main__":
    main()
