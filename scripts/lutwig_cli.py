#!/usr/bin/env python3
"""lutwig CLI: patch RPG Maker VX Ace games with the runtime package."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from lutwig.errors import LutwigError
from lutwig.fetcher import build_client, build_timeout
from lutwig.pipeline import inspect_cache, run
from lutwig.schemas import CacheStatus, PipelineReport
from lutwig.settings import DecoupleEnvironment, Environment, Settings, get_settings, load_config

console = Console()
err_console = Console(stderr=True)
cli = typer.Typer(help="Fetch the RTP and merge its assets into a game directory.")


def _resolve_settings() -> Settings:
    return get_settings()


def _resolve_environment(settings: Settings) -> Environment:
    return DecoupleEnvironment(load_config(settings.env_path))


def _client(settings: Settings) -> httpx.Client:
    return build_client(build_timeout(settings.mirror))


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("lutwig")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)


@cli.callback()
def main(
    ctx: typer.Context,
    cache: Optional[Path] = typer.Option(
        None,
        "--cache",
        "-C",
        metavar="DIR",
        help="Use this existing directory as the cache root instead of the user cache.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug details to stderr."),
) -> None:
    try:
        settings = _resolve_settings()
    except LutwigError as exc:
        err_console.print(f"[red]{type(exc).__name__}[/]: {exc}")
        raise typer.Exit(code=exc.exit_code) from exc
    _configure_logging("DEBUG" if verbose else settings.logging.level)
    ctx.obj = {"cache": cache, "settings": settings}


@cli.command()
def patch(
    ctx: typer.Context,
    target: Path = typer.Argument(..., help="Game directory to patch"),
    json_output: bool = typer.Option(False, "--json", help="Print the run report as JSON."),
) -> None:
    """Download, unpack and merge the RTP assets into TARGET."""

    settings: Settings = ctx.obj["settings"]
    environment = _resolve_environment(settings)
    client = _client(settings)
    echo = _silent if json_output else _echo
    try:
        report = run(
            ctx.obj["cache"],
            target,
            settings=settings,
            environment=environment,
            client=client,
            echo=echo,
        )
    finally:
        client.close()

    if json_output:
        typer.echo(report.model_dump_json(indent=2))
    elif not report.ok:
        _print_failure(report)
    if not report.ok:
        raise typer.Exit(code=report.exit_code)


@cli.command()
def install(
    target: str = typer.Argument(..., help="Game name or directory to add to the library"),
) -> None:
    """Add a patched game to the local game library (not supported yet)."""

    console.print(f"[yellow]Library installation is not supported yet; {target} was left unchanged.[/]")


@cli.command()
def status(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Print raw JSON instead of a table."),
) -> None:
    """Show which cached artifacts exist and what the next patch would do."""

    settings: Settings = ctx.obj["settings"]
    try:
        cache_status = inspect_cache(
            ctx.obj["cache"],
            settings=settings,
            environment=_resolve_environment(settings),
        )
    except LutwigError as exc:
        console.print(f"[red]{exc}[/]")
        raise typer.Exit(code=exc.exit_code) from exc

    if json_output:
        payload: dict[str, Any] = cache_status.model_dump(mode="json")
        payload["pending"] = [phase.value for phase in cache_status.pending]
        typer.echo(json.dumps(payload, indent=2))
        return
    _print_status(cache_status)


def _echo(line: str) -> None:
    console.print(line, highlight=False, markup=False)


def _silent(_: str) -> None:
    return None


def _print_failure(report: PipelineReport) -> None:
    # The failure itself was already echoed by the pipeline.
    if report.merge and report.merge.merged:
        console.print(f"[dim]{len(report.merge.merged)} directories were merged before the failure.[/]")


def _print_status(cache_status: CacheStatus) -> None:
    table = Table("Artifact", "Path", "Present", title=f"Cache {cache_status.cache_root}")
    table.add_row("archive", str(cache_status.archive), _yes_no(cache_status.archive_present))
    table.add_row("partial download", f"{cache_status.archive}.part", _yes_no(cache_status.partial_present))
    table.add_row("unpacked tree", str(cache_status.tree), _yes_no(cache_status.tree_present))
    console.print(table)
    pending = ", ".join(phase.value for phase in cache_status.pending)
    console.print(f"Next patch runs: [bold]{pending}[/]")
    console.print(f"[dim]Mirror: {cache_status.mirror_url}[/]")
    if cache_status.marker is not None and cache_status.marker != cache_status.cache_root:
        console.print(f"[yellow]Last run used a different cache root: {cache_status.marker}[/]")


def _yes_no(value: bool) -> str:
    return "[green]yes[/]" if value else "[dim]no[/]"


if __name__ == "__main__":  # pragma: no cover
    cli()
