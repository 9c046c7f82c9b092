"""CLI commands for the ledger store migrations."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from alembic import command
from alembic.config import Config
from rich.console import Console
from rich.table import Table

from py_household.infrastructure.config.settings import get_settings
from py_household.infrastructure.persistence.sqlalchemy.async_engine import get_async_engine

from .runner import STORES, MigrationRunner

app = typer.Typer(name="migrations", help="Manage ledger store database migrations.", pretty_exceptions_enable=False)
console = Console()

STORE = typer.Option("all", "--store", help="accounts, journal, goals or all.")


def _store_urls() -> dict[str, str]:
    settings = get_settings()
    return {
        "accounts": settings.accounts_database_url,
        "journal": settings.journal_database_url,
        "goals": settings.goals_database_url,
    }


def _selected(store: str) -> list[str]:
    if store == "all":
        return list(STORES)
    if store not in STORES:
        raise typer.BadParameter(f"store must be one of all, {', '.join(STORES)}")
    return [store]


async def _for_each(store: str, action: str, revision: str | None = None) -> dict[str, object]:
    urls = _store_urls()
    results: dict[str, object] = {}
    for name in _selected(store):
        engine = get_async_engine(urls[name])
        runner = MigrationRunner(engine, store=name)
        try:
            if action == "upgrade":
                if revision in (None, "head"):
                    await runner.upgrade_to_head()
                else:
                    await runner.upgrade_to_version(revision)
            elif action == "downgrade":
                await runner.downgrade(target=revision)
            elif action == "current":
                results[name] = await runner.get_current_version()
            elif action == "pending":
                results[name] = await runner.get_pending_migrations()
        finally:
            await engine.dispose()
    return results


@app.command()
def upgrade(revision: str = typer.Argument("head", help="Target revision"), store: str = STORE):
    """Apply migrations."""
    console.print(f"[blue]Upgrading {store} to {revision}...[/blue]")
    asyncio.run(_for_each(store, "upgrade", revision))
    console.print("[green]✓ Successfully upgraded[/green]")


@app.command()
def downgrade(revision: str, store: str = STORE):
    """Rollback migrations to a revision, -N or base."""
    console.print(f"[yellow]Downgrading {store} to {revision}...[/yellow]")
    asyncio.run(_for_each(store, "downgrade", revision))
    console.print("[green]✓ Successfully downgraded[/green]")


@app.command()
def current(store: str = STORE):
    """Show current schema version per store."""
    versions = asyncio.run(_for_each(store, "current"))
    for name, version in versions.items():
        if version:
            console.print(f"[green]{name}: {version}[/green]")
        else:
            console.print(f"[yellow]{name}: not initialized[/yellow]")


@app.command()
def pending(store: str = STORE):
    """Show pending migrations."""
    results = asyncio.run(_for_each(store, "pending"))
    table = Table(title="Pending Migrations")
    table.add_column("Store", style="magenta")
    table.add_column("Revision", style="cyan")
    count = 0
    for name, revisions in results.items():
        for rev in revisions:  # type: ignore[union-attr]
            table.add_row(name, rev)
            count += 1
    if not count:
        console.print("[green]✓ No pending migrations[/green]")
        return
    console.print(table)
    console.print(f"\n[yellow]{count} pending[/yellow]")


@app.command()
def history(store: str = typer.Option("journal", "--store")):
    """Show migration history of one store."""
    migrations_dir = Path(__file__).parent
    config = Config()
    config.set_main_option("script_location", str(migrations_dir))
    config.set_main_option("version_locations", str(migrations_dir / "versions" / _selected(store)[0]))
    config.set_main_option("store", _selected(store)[0])
    command.history(config)
