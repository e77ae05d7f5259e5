"""
Play command: paced playback of commit history
"""

import asyncio
import json
from dataclasses import replace
from typing import Optional

import typer
from rich.console import Console

from playback.config import PlaybackConfig, parse_timestamp
from playback.core.errors import PlaybackError
from playback.logging_config import setup_logging
from playback.metrics import start_metrics_server
from playback.replay.scheduler import PlaybackScheduler

from ..consumer import ConsoleConsumer
from ._common import open_store

console = Console()


def play_command(
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Repository / collection name"),
    store_type: Optional[str] = typer.Option(None, "--store", help="Store type: file, s3, firestore"),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory for the file store"),
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Start date (ISO-8601 or epoch ms)"),
    commit: Optional[str] = typer.Option(None, "--commit", "-c", help="Commit hash to load first"),
    link: Optional[str] = typer.Option(None, "--link", help="Deep-link query string, e.g. '?date=2018-01-01'"),
    delay: Optional[int] = typer.Option(None, "--delay", help="Milliseconds between commits"),
    max_commits: Optional[int] = typer.Option(None, "--max-commits", "-n", help="Stop after N commits"),
    full_only: bool = typer.Option(False, "--full-only", help="Never read the _changes collection"),
    metrics_port: Optional[int] = typer.Option(None, "--metrics-port", help="Serve Prometheus metrics"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    json_output: bool = typer.Option(False, "--json", help="One JSON object per commit"),
):
    """
    Replay commit history at a fixed cadence.

    Examples:
        repo-playback play --repo myrepo --path ./data
        repo-playback play --repo myrepo --date 2018-03-01 --delay 250
        repo-playback play --repo myrepo --commit deadbeef -n 10 --json
    """
    setup_logging(level=log_level)

    try:
        config = PlaybackConfig.from_env()
        overrides = {}
        if repo:
            overrides["repo"] = repo
        if delay is not None:
            overrides["delay_ms"] = delay
        if full_only:
            overrides["use_changes_projection"] = False
        if overrides:
            config = replace(config, **overrides)
        if link:
            config = config.with_deep_link(link)
        if date:
            config = replace(config, start_time=parse_timestamp(date))
        if commit:
            config = replace(config, start_hash=commit)

        store = open_store(config.repo, store_type, path)
    except PlaybackError as e:
        _fail(e, json_output)

    if metrics_port:
        start_metrics_server(enabled=True, port=metrics_port)

    consumer = ConsoleConsumer(console, json_output=json_output)
    scheduler = PlaybackScheduler(store, consumer, config)

    try:
        state = asyncio.run(scheduler.run(max_commits=max_commits))
    except KeyboardInterrupt:
        state = scheduler.engine_state

    if not json_output:
        console.print(
            f"\n[bold]Delivered:[/bold] {state.delivered}  "
            f"[bold]Skipped:[/bold] {state.skipped}  "
            f"[bold]Next from:[/bold] {state.cursor.latest_time}"
        )
    raise typer.Exit(0)


def _fail(error: Exception, json_output: bool) -> None:
    if json_output:
        print(json.dumps({"error": str(error)}))
    else:
        console.print(f"[red]Error:[/red] {error}")
    raise typer.Exit(2)
