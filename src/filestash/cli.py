import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from filestash.config import Config, load_config
from filestash.errors import CacheError
from filestash.store import FileStore
from filestash.util.logging import setup_logging

app = typer.Typer(add_completion=False)
console = Console()


def _store(ctx: typer.Context) -> tuple[Config, FileStore]:
    cfg: Config = ctx.obj
    try:
        return cfg, cfg.open_store()
    except (CacheError, OSError) as exc:
        _fail(exc)


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[red]{escape(str(exc))}[/red]")
    raise typer.Exit(code=1)


def _format_value(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError):
        return repr(value)


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="Path to a filestash TOML file."),
) -> None:
    """Inspect and maintain a filestash cache directory."""
    cfg = load_config(config)
    setup_logging(cfg.logging.level)
    ctx.obj = cfg


@app.command()
def get(ctx: typer.Context, keys: list[str]) -> None:
    """Print the live values stored under KEYS."""
    _, store = _store(ctx)
    try:
        values = store.fetch(keys)
    except CacheError as exc:
        _fail(exc)
    for key in keys:
        if key in values:
            console.print(f"{escape(key)} = {escape(_format_value(values[key]))}")
        else:
            console.print(f"[yellow]Missing: {escape(key)}[/yellow]")


@app.command("set")
def set_value(
    ctx: typer.Context,
    key: str,
    value: str,
    ttl: int | None = typer.Option(None, help="Lifetime in seconds; 0 never expires."),
    as_json: bool = typer.Option(False, "--json", help="Parse VALUE as JSON."),
) -> None:
    """Store VALUE under KEY."""
    cfg, store = _store(ctx)
    parsed: Any = value
    if as_json:
        try:
            parsed = json.loads(value)
        except ValueError as exc:
            _fail(exc)
    lifetime = cfg.store.default_lifetime if ttl is None else ttl
    try:
        ok = store.save({key: parsed}, lifetime)
    except CacheError as exc:
        _fail(exc)
    if not ok:
        console.print(f"[red]Failed to write {escape(key)}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Stored: {escape(key)}")


@app.command()
def has(ctx: typer.Context, key: str) -> None:
    """Exit with status 0 if KEY holds a live value, 1 otherwise."""
    _, store = _store(ctx)
    try:
        found = store.have(key)
    except CacheError as exc:
        _fail(exc)
    console.print("yes" if found else "no")
    if not found:
        raise typer.Exit(code=1)


@app.command()
def delete(ctx: typer.Context, key: str) -> None:
    """Remove the entry stored under KEY."""
    _, store = _store(ctx)
    try:
        deleted = store.delete(key)
    except CacheError as exc:
        _fail(exc)
    if not deleted:
        console.print(f"[red]Failed to delete {escape(key)}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Deleted: {escape(key)}")


@app.command()
def prune(ctx: typer.Context) -> None:
    """Remove every expired entry."""
    _, store = _store(ctx)
    if not store.prune():
        console.print("[red]Some expired entries could not be removed.[/red]")
        raise typer.Exit(code=1)
    console.print("Prune complete.")


@app.command()
def clear(ctx: typer.Context) -> None:
    """Remove every entry, expired or not."""
    _, store = _store(ctx)
    if not store.clear():
        console.print("[red]Some entries could not be removed.[/red]")
        raise typer.Exit(code=1)
    console.print("Cache cleared.")
