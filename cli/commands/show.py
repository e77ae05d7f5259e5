"""
Show command: materialize the node set of one commit
"""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from playback.core.canonical import node_set_digest
from playback.core.errors import InvalidDiffBase, PlaybackError
from playback.core.nodes import NodeSet
from playback.core.reducer import apply_full
from playback.replay.runner import ReplayResult, collect_range, reconstruct
from playback.store import CommitStore, Projection

from ._common import open_store, projection_for

console = Console()


async def _materialize(store: CommitStore, sha: str, rebuild: bool, projection: Projection) -> ReplayResult:
    target = await store.get_by_hash(sha, Projection.FULL if not rebuild else projection)
    if rebuild:
        records = await collect_range(store, until_time=target.date, projection=projection)
        return reconstruct(records, until_sha=sha)

    payload = target.payload()
    if not payload.has_snapshot:
        raise InvalidDiffBase(sha)
    return ReplayResult(
        nodes=apply_full(NodeSet(), payload.nodes_full),
        edges=payload.edges,
        applied=1,
        last=target,
    )


def show_command(
    sha: str = typer.Argument(..., help="Commit hash"),
    repo: str = typer.Option("repo", "--repo", "-r", help="Repository / collection name"),
    store_type: Optional[str] = typer.Option(None, "--store", help="Store type: file, s3, firestore"),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory for the file store"),
    rebuild: bool = typer.Option(False, "--rebuild", help="Replay history up to the commit instead of loading its snapshot"),
    changes: bool = typer.Option(False, "--changes", help="Rebuild from the _changes collection"),
    show_nodes: bool = typer.Option(False, "--nodes", help="List every node"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show the graph state at a commit.

    Examples:
        repo-playback show deadbeef --repo myrepo
        repo-playback show deadbeef --repo myrepo --rebuild --changes --nodes
    """
    try:
        store = open_store(repo, store_type, path)
        result = asyncio.run(_materialize(store, sha, rebuild, projection_for(changes)))
    except InvalidDiffBase as e:
        _fail(f"{e} (try --rebuild)", json_output)
    except PlaybackError as e:
        _fail(str(e), json_output)

    digest = node_set_digest(result.nodes)
    last = result.last

    if json_output:
        output = {
            "sha": last.sha if last else sha,
            "date": last.date if last else None,
            "applied": result.applied,
            "skipped": result.skipped,
            "node_count": len(result.nodes),
            "edge_count": len(result.edges),
            "digest": digest,
        }
        if show_nodes:
            output["nodes"] = result.nodes.to_list()
        print(json.dumps(output, indent=2))
        raise typer.Exit(0)

    if last is not None:
        console.print(f"[bold]Commit[/bold] [yellow]{last.sha}[/yellow]  {last.formatted_date}")
        console.print(f"  Author: [green]{last.author}[/green] <{last.email}>")
        if last.message:
            console.print(f"  {last.message.splitlines()[0]}")
    console.print(f"  Commits applied: [cyan]{result.applied}[/cyan]")
    if result.skipped:
        console.print(f"  Skipped (malformed): [red]{len(result.skipped)}[/red]")
    console.print(f"  Nodes: [cyan]{len(result.nodes)}[/cyan]  Edges: [cyan]{len(result.edges)}[/cyan]")
    console.print(f"  Digest: [yellow]{digest}[/yellow]")

    if show_nodes:
        table = Table(title="Nodes")
        table.add_column("Path", style="green")
        table.add_column("Updated", justify="center")
        for node in result.nodes:
            table.add_row(node.path, "✓" if node.updated else "")
        console.print(table)

    raise typer.Exit(0)


def _fail(message: str, json_output: bool) -> None:
    if json_output:
        print(json.dumps({"error": message}))
    else:
        console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(2)
