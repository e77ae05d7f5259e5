"""
Commit store commands: import, inspect
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from playback.core.errors import PlaybackError

from ._common import open_store, projection_for

app = typer.Typer()
console = Console()


def _read_documents(source: Path) -> List[Dict[str, Any]]:
    """Read a JSON array or JSONL file of commit documents."""
    text = source.read_text(encoding="utf-8")
    if text.lstrip().startswith("["):
        return json.loads(text)
    return [json.loads(line) for line in text.splitlines() if line.strip()]


@app.command("import")
def import_commits(
    source: Path = typer.Argument(..., help="JSON array or JSONL file of commit documents"),
    repo: str = typer.Option("repo", "--repo", "-r", help="Repository / collection name"),
    store_type: Optional[str] = typer.Option(None, "--store", help="Store type: file, s3"),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory for the file store"),
    changes: bool = typer.Option(False, "--changes", help="Write to the _changes collection"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Load exported commit documents into a store.

    Examples:
        repo-playback store import history.json --repo myrepo --path ./data
        repo-playback store import diffs.jsonl --repo myrepo --changes
    """
    try:
        documents = _read_documents(source)
        store = open_store(repo, store_type, path)
        writer = getattr(store, "append", None) or getattr(store, "put", None)
        if writer is None:
            raise PlaybackError(f"{type(store).__name__} is read-only")
        projection = projection_for(changes)
        for doc in documents:
            writer(doc, projection)
    except FileNotFoundError:
        _fail(f"File not found: {source}", json_output)
    except (PlaybackError, ValueError, KeyError) as e:
        _fail(str(e), json_output)

    if json_output:
        print(json.dumps({"imported": len(documents), "collection": store.collection(projection)}))
    else:
        console.print(
            f"[green]✓ Imported {len(documents)} commits into[/green] {store.collection(projection)}"
        )
    raise typer.Exit(0)


@app.command()
def inspect(
    repo: str = typer.Option("repo", "--repo", "-r", help="Repository / collection name"),
    store_type: Optional[str] = typer.Option(None, "--store", help="Store type: file, s3, firestore"),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory for the file store"),
    from_time: int = typer.Option(0, "--from", help="Lower-bound date (epoch ms)"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum commits to list"),
    changes: bool = typer.Option(False, "--changes", help="Read the _changes collection"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    List commits in date order.

    Examples:
        repo-playback store inspect --repo myrepo --limit 5
        repo-playback store inspect --repo myrepo --changes --json
    """
    projection = projection_for(changes)
    try:
        store = open_store(repo, store_type, path)
        records = asyncio.run(store.query_range(from_time, limit, projection))
    except PlaybackError as e:
        _fail(str(e), json_output)

    if json_output:
        print(json.dumps({"commits": [r.to_document() for r in records], "count": len(records)}, indent=2))
        raise typer.Exit(0)

    if not records:
        console.print("[yellow]No commits match[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Commits: {store.collection(projection)}")
    table.add_column("Date", style="cyan")
    table.add_column("Hash", style="yellow")
    table.add_column("Author", style="green")
    table.add_column("Kind")
    table.add_column("Nodes", justify="right")
    table.add_column("Message", style="dim")

    for record in records:
        kind = "snapshot" if record.raw_nodes is not None else "diff"
        table.add_row(
            record.formatted_date,
            record.sha[:10],
            record.author,
            kind,
            str(record.node_count),
            record.message.splitlines()[0] if record.message else "",
        )

    console.print(table)
    console.print(f"\n[bold]Total commits:[/bold] {len(records)}")
    raise typer.Exit(0)


def _fail(message: str, json_output: bool) -> None:
    if json_output:
        print(json.dumps({"error": message}))
    else:
        console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(2)
