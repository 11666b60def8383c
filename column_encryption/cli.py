"""
Encrypted column CLI.

Usage:
    column-encryption [--env-file PATH] [--log-level LEVEL] COMMAND

Commands:
    create-table            Create the table if it does not exist
    insert TEAM EMAIL       Encrypt EMAIL (bound to TEAM) and insert a row
    query                   Print the newest rows, decrypted
    demo                    create-table, insert SPACES/hello@example.com, query

Settings are read from the environment or a .env file (see config.py).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import aclosing, asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional

import typer

from . import __version__
from .config import DecryptErrorPolicy, Settings
from .errors import ColumnEncryptionError
from .kms import get_envelope_aead
from .output import write_rows
from .postgres import PostgresRowStore, create_pool
from .service import EncryptedColumnService

app = typer.Typer(help="Client-side envelope encryption for a PostgreSQL column")

DEMO_TEAM = "SPACES"
DEMO_EMAIL = "hello@example.com"


@asynccontextmanager
async def open_backend(settings: Settings) -> AsyncIterator[EncryptedColumnService]:
    """Service over a Cloud KMS envelope AEAD and a pooled PostgreSQL table."""
    aead = get_envelope_aead(settings.kms_uri)
    pool = await create_pool(settings)
    try:
        store = PostgresRowStore(pool, settings.table_name)
        yield EncryptedColumnService(
            store, aead, on_decrypt_error=settings.on_decrypt_error
        )
    finally:
        await pool.close()


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"column-encryption {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    env_file: Optional[Path] = typer.Option(None, "--env-file", metavar="PATH"),
    log_level: str = typer.Option("WARNING", "--log-level"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True
    ),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Subcommand --help is parsed after this callback runs, so settings are
    # loaded by the command itself.
    ctx.obj = env_file


def _settings(ctx: typer.Context) -> Settings:
    """Load settings for a command, mapping configuration errors to exit code 1."""
    try:
        return Settings.from_env(ctx.obj)
    except ColumnEncryptionError as e:
        typer.echo(f"[ERROR] {e}", err=True)
        raise typer.Exit(code=1)


def _run(
    settings: Settings,
    action: Callable[[EncryptedColumnService], Awaitable[None]],
) -> None:
    """Open the backend, run one action, and map library errors to exit code 1."""

    async def runner() -> None:
        async with open_backend(settings) as service:
            await action(service)

    try:
        asyncio.run(runner())
    except (ColumnEncryptionError, ValueError) as e:
        typer.echo(f"[ERROR] {e}", err=True)
        raise typer.Exit(code=1)


async def _print_recent(
    service: EncryptedColumnService,
    limit: int,
    policy: Optional[DecryptErrorPolicy],
) -> None:
    async with aclosing(service.query_and_decrypt(limit, policy)) as rows:
        await write_rows(rows, sys.stdout)


@app.command("create-table")
def create_table(ctx: typer.Context) -> None:
    """Create the table if it does not exist."""
    settings = _settings(ctx)

    async def action(service: EncryptedColumnService) -> None:
        await service.store.create_table()
        typer.echo(f"[OK] Table {settings.table_name} ready")

    _run(settings, action)


@app.command()
def insert(ctx: typer.Context, team: str, email: str) -> None:
    """Encrypt EMAIL with TEAM as associated data and insert the row."""

    async def action(service: EncryptedColumnService) -> None:
        row = await service.encrypt_and_insert(team, email)
        typer.echo(f"[OK] Inserted row for {team} at {row.recorded_at}")

    _run(_settings(ctx), action)


@app.command()
def query(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1),
    on_error: Optional[DecryptErrorPolicy] = typer.Option(
        None, "--on-error", case_sensitive=False
    ),
) -> None:
    """Print the newest rows with their emails decrypted."""
    settings = _settings(ctx)

    async def action(service: EncryptedColumnService) -> None:
        await _print_recent(service, limit or settings.query_limit, on_error)

    _run(settings, action)


@app.command()
def demo(ctx: typer.Context) -> None:
    """Create the table, insert a sample row, and query it back."""
    settings = _settings(ctx)

    async def action(service: EncryptedColumnService) -> None:
        await service.store.create_table()
        await service.encrypt_and_insert(DEMO_TEAM, DEMO_EMAIL)
        await _print_recent(service, settings.query_limit, None)

    _run(settings, action)


def main() -> None:
    """CLI entry point for the column-encryption command."""
    app()


if __name__ == "__main__":
    main()
