"""
polykv CLI entry point.

Commands:
    polykv keys [PREFIX]        — List keys
    polykv get KEY              — Print a value
    polykv set KEY VALUE        — Store a value
    polykv rm KEY               — Remove a key
    polykv clear [PREFIX]       — Remove every key under a prefix
    polykv meta KEY             — Show key metadata
    polykv version              — Show version

The backend comes from --url/--base, POLYKV_* variables, or polykv.toml.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from polykv.core.config import PolyKVConfig
from polykv.core.errors import PolyKVError
from polykv.core.logging import setup_logging
from polykv.core.registry import create_driver
from polykv.drivers.base import Driver

app = typer.Typer(
    name="polykv",
    help="polykv — one key-value interface over many storage backends.",
    add_completion=False,
)

console = Console()

T = TypeVar("T")


@app.callback()
def main(
    ctx: typer.Context,
    url: str = typer.Option(None, "--url", "-u", help="Backend URL (memory://, file://, redis://, ...)"),
    base: str = typer.Option(None, "--base", "-b", help="Key prefix for this session"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Load configuration shared by every command."""
    driver_overrides: dict[str, Any] = {}
    if url is not None:
        driver_overrides["url"] = url
    if base is not None:
        driver_overrides["base"] = base

    try:
        config = PolyKVConfig.load(overrides={"driver": driver_overrides})
    except PolyKVError as e:
        console.print(f"[red]Error:[/red] {escape(e.message)}", highlight=False)
        raise typer.Exit(1)

    setup_logging(
        level=logging.DEBUG if verbose else config.logging.level,
        log_file=config.logging.file,
    )
    ctx.obj = config


@app.command()
def keys(
    ctx: typer.Context,
    prefix: str = typer.Argument("", help="Only list keys starting with this"),
) -> None:
    """List keys."""
    found = _run(ctx, lambda driver: driver.keys(prefix))
    if not found:
        console.print("[dim]No keys.[/dim]")
        return
    for key in sorted(found):
        console.print(key, markup=False, highlight=False)


@app.command()
def get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Key to read"),
) -> None:
    """Print a value."""
    value = _run(ctx, lambda driver: driver.require(key))
    if isinstance(value, bytes):
        console.print(f"<{len(value)} bytes> {value.hex()}", markup=False, highlight=False)
    else:
        console.print(json.dumps(value, ensure_ascii=False), markup=False, highlight=False)


@app.command("set")
def set_(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Key to write"),
    value: str = typer.Argument(..., help="Value (a string unless --json)"),
    as_json: bool = typer.Option(False, "--json", "-j", help="Parse VALUE as JSON"),
    ttl: int = typer.Option(None, "--ttl", "-t", help="Expire after N seconds"),
) -> None:
    """Store a value."""
    parsed: Any = value
    if as_json:
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            console.print(f"[red]Error:[/red] VALUE is not valid JSON: {e}", highlight=False)
            raise typer.Exit(1)

    _run(ctx, lambda driver: driver.set(key, parsed, ttl=ttl))
    console.print(f"[green]✓[/green] {escape(key)}", highlight=False)


@app.command()
def rm(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Key to remove"),
) -> None:
    """Remove a key."""
    _run(ctx, lambda driver: driver.remove(key))
    console.print(f"[green]✓[/green] removed {escape(key)}", highlight=False)


@app.command()
def clear(
    ctx: typer.Context,
    prefix: str = typer.Argument("", help="Only remove keys starting with this"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
) -> None:
    """Remove every key under a prefix."""
    config: PolyKVConfig = ctx.obj
    target = f"{config.driver.base}{prefix}*"
    if not yes and not typer.confirm(f"Remove all keys matching {target}?"):
        raise typer.Exit(1)

    _run(ctx, lambda driver: driver.clear(prefix))
    console.print(f"[green]✓[/green] cleared {escape(target)}", highlight=False)


@app.command()
def meta(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Key to inspect"),
) -> None:
    """Show key metadata."""
    info = _run(ctx, lambda driver: driver.meta(key))

    table = Table(title=key, show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")
    table.add_row("encoding", info.tag.value if info.tag else "-")
    table.add_row("size", str(info.size) if info.size is not None else "-")
    table.add_row("modified", info.mtime.isoformat() if info.mtime else "-")
    table.add_row("ttl", f"{info.ttl:.0f}s" if info.ttl is not None else "-")
    console.print(table)


@app.command()
def version() -> None:
    """Show polykv version."""
    from polykv import __version__
    console.print(f"polykv v{__version__}")


def _run(ctx: typer.Context, action: Callable[[Driver], Awaitable[T]]) -> T:
    """Open the configured driver, run one action, dispose."""
    config: PolyKVConfig = ctx.obj

    async def runner() -> T:
        async with create_driver(config.driver) as driver:
            return await action(driver)

    try:
        return asyncio.run(runner())
    except PolyKVError as e:
        console.print(f"[red]Error:[/red] {escape(e.message)}", highlight=False)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
