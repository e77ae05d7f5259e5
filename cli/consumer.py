"""
Console graph consumer: prints one line per delivered commit.
"""

import json

from rich.console import Console

from playback.replay.consumer import GraphConsumer, GraphSnapshot


class ConsoleConsumer(GraphConsumer):
    """Renders each snapshot as a line of text (or a JSON object per line)."""

    def __init__(self, console: Console, json_output: bool = False) -> None:
        self.console = console
        self.json_output = json_output
        self.refreshes = 0

    def refresh_graph(self) -> None:
        self.refreshes += 1

    def initialize_graph(self, snapshot: GraphSnapshot) -> None:
        commit = snapshot.commit
        updated = snapshot.updated_paths

        if self.json_output:
            print(
                json.dumps(
                    {
                        "sha": commit.sha,
                        "date": commit.date,
                        "author": commit.author,
                        "message": commit.message,
                        "nodes": len(snapshot.nodes),
                        "edges": len(snapshot.edges),
                        "node_count": snapshot.node_count,
                        "updated": updated,
                        "discontinuity": snapshot.discontinuity,
                    }
                ),
                flush=True,
            )
            return

        marker = "[magenta]↷[/magenta]" if snapshot.discontinuity else "[green]●[/green]"
        self.console.print(
            f"{marker} [cyan]{commit.formatted_date}[/cyan] "
            f"[yellow]{commit.sha[:10]}[/yellow] "
            f"{commit.author or 'unknown'}: {commit.message.splitlines()[0] if commit.message else ''}"
        )
        self.console.print(
            f"    nodes=[bold]{len(snapshot.nodes)}[/bold] edges={len(snapshot.edges)} "
            f"updated={len(updated)}",
            style="dim",
        )
