"""CLI interface for trackshelf."""

from __future__ import annotations

import asyncio
import re
from collections import deque

import typer
from pydantic import SecretStr, ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from trackshelf.config import LOG_DIR, AppConfig, ensure_dirs, get_base_dir, load_config, save_config
from trackshelf.storage.models import TrackRecord

app = typer.Typer(
    name="trackshelf",
    help="Import tracks from Spotify into a local catalog and manage them.",
    add_completion=False,
)
console = Console()


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


async def _open_store():  # noqa: ANN202
    from trackshelf.storage.database import Database

    ensure_dirs()
    db = Database(load_config().database_path)
    await db.connect()
    await db.initialize()
    return db


def _records_table(records: list[TrackRecord]) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Artist")
    table.add_column("Released")
    table.add_column("External ID", style="dim")
    for r in records:
        table.add_row(str(r.id), r.name, r.artist, r.release_date or "—", r.external_id)
    return table


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: str = typer.Option("", "--host", help="Bind address (default: server.host from config)"),
    port: int = typer.Option(0, "--port", "-p", help="Port (default: server.port from config)"),
) -> None:
    """Run the HTTP server."""
    import uvicorn

    from trackshelf.logging import setup_logging
    from trackshelf.server.app import create_app

    ensure_dirs()
    cfg = load_config()
    setup_logging(cfg.server.log_level, cfg.log_dir, console=True)

    if not cfg.is_spotify_configured():
        console.print(
            "[yellow]Spotify credentials are not set; imports will fail.[/yellow]  "
            "Run [bold]trackshelf config set spotify.client_id <id>[/bold] and "
            "[bold]trackshelf config set spotify.client_secret <secret>[/bold]."
        )

    bind_host = host or cfg.server.host
    bind_port = port or cfg.server.port
    console.print(f"Serving on [bold]http://{bind_host}:{bind_port}/songs[/bold]")
    uvicorn.run(create_app(cfg), host=bind_host, port=bind_port, log_config=None)


@app.command(name="import")
def import_track(query: str = typer.Argument(help="Track name to search for")) -> None:
    """Search the catalog and import the best match."""
    from trackshelf.catalog.spotify import SpotifyCatalog
    from trackshelf.importer import AlreadyExists, Created, ImportReconciler, NotFound

    query = query.strip()
    if not query:
        console.print("[red]Query must not be empty.[/red]")
        raise typer.Exit(1)

    cfg = load_config()

    async def _run():  # noqa: ANN202
        db = await _open_store()
        try:
            async with SpotifyCatalog(cfg.spotify) as catalog:
                return await ImportReconciler(catalog, db).import_track(query)
        finally:
            await db.close()

    outcome = asyncio.run(_run())

    if isinstance(outcome, Created):
        r = outcome.record
        console.print(f"[green]Imported[/green] #{r.id} {r.name} — {r.artist} ({r.release_date or 'unknown date'})")
        return
    if isinstance(outcome, AlreadyExists):
        r = outcome.record
        console.print(f"[yellow]Already imported[/yellow] as #{r.id} {r.name} — {r.artist}")
        return
    if isinstance(outcome, NotFound):
        console.print(f"[yellow]No track found for[/yellow] {outcome.query!r}")
        raise typer.Exit(1)

    console.print(f"[red]Import failed:[/red] {escape(outcome.reason)}")
    raise typer.Exit(1)


@app.command(name="list")
def list_tracks(
    sort: str = typer.Option(
        "",
        "--sort",
        "-s",
        help="name_desc, date, date_desc, artist, artist_desc (default: name)",
    ),
) -> None:
    """List imported tracks."""
    from trackshelf.sorting import parse_sort_key

    key = parse_sort_key(sort)

    async def _run() -> list[TrackRecord]:
        db = await _open_store()
        try:
            return await db.list_records(key)
        finally:
            await db.close()

    records = asyncio.run(_run())
    if not records:
        console.print("[dim]No tracks imported yet.[/dim]")
        return
    console.print(_records_table(records))


@app.command()
def show(record_id: int = typer.Argument(help="Record ID")) -> None:
    """Show a single imported track."""

    async def _run() -> TrackRecord | None:
        db = await _open_store()
        try:
            return await db.get_record(record_id)
        finally:
            await db.close()

    record = asyncio.run(_run())
    if record is None:
        console.print(f"[red]Song {record_id} not found.[/red]")
        raise typer.Exit(1)

    console.print(f"\n  [bold]{record.name}[/bold]")
    console.print(f"    artist:      {record.artist}")
    console.print(f"    released:    {record.release_date or '—'}")
    console.print(f"    external id: {record.external_id}")
    console.print(f"    added:       {record.added_at.isoformat() if record.added_at else '—'}")
    console.print(f"    version:     {record.version}\n")


@app.command()
def delete(record_id: int = typer.Argument(help="Record ID")) -> None:
    """Delete an imported track."""

    async def _run() -> bool:
        db = await _open_store()
        try:
            if await db.get_record(record_id) is None:
                return False
            await db.delete_record(record_id)
            return True
        finally:
            await db.close()

    if not asyncio.run(_run()):
        console.print(f"[red]Song {record_id} not found.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted[/green] song {record_id}.")


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------

_LEVELS = ("debug", "info", "warning", "error", "critical")
_LEVEL_STYLES = {"debug": "dim", "warning": "yellow", "error": "red", "critical": "bold red"}
# ConsoleRenderer pads the level inside brackets; JSONRenderer writes a "level" key.
_LEVEL_RE = re.compile(r'\[(debug|info|warning|error|critical)\s*\]|"level": "(\w+)"')


def _line_level(line: str) -> str | None:
    match = _LEVEL_RE.search(line)
    if match is None:
        return None
    return match.group(1) or match.group(2)


@app.command()
def logs(
    lines: int = typer.Option(50, "--lines", "-n", min=1, help="How many trailing lines to show"),
    imports: bool = typer.Option(False, "--imports", help="Read imports.log (JSON) instead of server.log"),
    level: str = typer.Option("debug", "--level", "-l", help="Hide lines below this level"),
) -> None:
    """Print the tail of the server or import log."""
    from trackshelf.logging import IMPORTS_LOG, SERVER_LOG

    level = level.lower()
    if level not in _LEVELS:
        console.print(f"[red]Unknown level:[/red] {level} [dim](choose from {', '.join(_LEVELS)})[/dim]")
        raise typer.Exit(1)
    threshold = _LEVELS.index(level)

    path = get_base_dir() / LOG_DIR / (IMPORTS_LOG if imports else SERVER_LOG)
    if not path.is_file():
        console.print(f"[yellow]Log file not found:[/yellow] {path}")
        raise typer.Exit(1)

    with path.open(encoding="utf-8") as fh:
        tail = [line.rstrip("\n") for line in deque(fh, maxlen=lines)]

    shown = 0
    for line in tail:
        line_level = _line_level(line)
        # Continuation lines (tracebacks) have no level and are always kept.
        if not line or (line_level in _LEVELS and _LEVELS.index(line_level) < threshold):
            continue
        console.print(line, style=_LEVEL_STYLES.get(line_level or ""), highlight=False, markup=False)
        shown += 1

    if not shown:
        console.print("[dim]Nothing to show.[/dim]")


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

config_app = typer.Typer(name="config", help="Inspect or change ~/.trackshelf/config.toml.", add_completion=False)
app.add_typer(config_app)


def _display(value: object) -> str:
    if isinstance(value, SecretStr):
        return "[bold]***[/bold]" if value.get_secret_value() else "[dim](not set)[/dim]"
    if value == "":
        return "[dim](not set)[/dim]"
    return escape(str(value))


@config_app.command(name="show")
def config_show() -> None:
    """Print the effective configuration, environment overrides included."""
    cfg = load_config()
    for section in AppConfig.model_fields:
        console.print(f"\n[bold cyan]\\[{section}][/bold cyan]")
        values = getattr(cfg, section).model_dump(mode="python")
        width = max(len(name) for name in values)
        for name, value in values.items():
            console.print(f"  {name:<{width}} = {_display(value)}")
    console.print()


@config_app.command(name="set")
def config_set(
    key: str = typer.Argument(help="section.field, e.g. server.port"),
    value: str = typer.Argument(help="New value"),
) -> None:
    """Validate and store one setting in the config file."""
    section, _, field = key.partition(".")
    if section not in AppConfig.model_fields:
        console.print(f"[red]Unknown section:[/red] {escape(section)}")
        console.print(f"[dim]Sections: {', '.join(AppConfig.model_fields)}[/dim]")
        raise typer.Exit(1)

    # Env overrides must not leak into the file.
    cfg = load_config(use_env=False)
    current = getattr(cfg, section)
    model = type(current)
    if field not in model.model_fields:
        console.print(f"[red]Unknown field:[/red] {escape(key)}")
        console.print(f"[dim]Fields: {', '.join(model.model_fields)}[/dim]")
        raise typer.Exit(1)

    try:
        updated = model.model_validate({**current.model_dump(mode="python"), field: value})
    except ValidationError as exc:
        console.print(f"[red]Invalid value for {escape(key)}:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc

    setattr(cfg, section, updated)
    path = save_config(cfg)
    console.print(f"[green]Set[/green] {escape(key)} = {_display(getattr(updated, field))}  [dim]({path})[/dim]")
