"""
whaticon CLI.

Command-line interface for finding visually similar icons and building indexes.
"""

import typer

import whaticon
from whaticon.cli.build import build_command
from whaticon.cli.common import console
from whaticon.cli.index import cache_command, download_command
from whaticon.cli.match import match_command

__all__ = ["app", "main"]


app = typer.Typer(
    name="whaticon",
    help="Find matching Iconify icons by visual similarity",
    no_args_is_help=True,
)

# Register commands
app.command(name="match")(match_command)
app.command(name="build")(build_command)
app.command(name="download")(download_command)
app.command(name="cache")(cache_command)


@app.command()
def version():
    # type: () -> None
    """Show version information."""
    console.print(f"whaticon version {whaticon.__version__}")


def main():
    # type: () -> None
    """CLI entry point."""
    app()
