#!/usr/bin/env python3
"""
Repository Playback CLI

Main entrypoint for the repo-playback command-line tool.
"""

import typer
from rich.console import Console
from rich.table import Table

from cli.commands import play, show, store

app = typer.Typer(
    name="repo-playback",
    help="Replay repository history as a paced stream of graph states",
    add_completion=False,
)

console = Console()

app.add_typer(store.app, name="store", help="Commit store operations")

app.command("play")(play.play_command)
app.command("show")(show.show_command)


@app.command()
def version():
    """Show version information."""
    from cli import __version__
    from playback import __version__ as engine_version

    table = Table(show_header=False, box=None)
    table.add_row("[bold]Repo Playback CLI[/bold]", f"v{__version__}")
    table.add_row("Engine", f"v{engine_version}")

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
