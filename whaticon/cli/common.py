"""
Shared utilities for the whaticon CLI.
"""

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from whaticon.cache import IndexCache
from whaticon.store import IconIndex


__all__ = ["console", "fail", "open_index"]


# Shared console instance for all CLI commands
console = Console()


# Configure loguru to use rich's console for proper output coordination
logger.remove()
logger.add(
    RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_level=True,
        show_path=False,
    ),
    format="{message}",
    level="INFO",
)


def fail(message):
    # type: (str) -> None
    """Print an error message. Callers raise ``typer.Exit(code=1)`` afterwards."""
    console.print(f"[red]Error: {escape(message)}[/red]", highlight=False)


def open_index(variant, index_dir=None):
    # type: (str, str|None) -> IconIndex
    """
    Load the index to search.

    An explicit ``index_dir`` wins; otherwise the cached variant is used and
    downloaded on first use.

    :param variant: Prebuilt variant name (core, popular, full)
    :param index_dir: Directory holding ``names.txt.gz`` and ``hashes.bin.gz``
    """
    if index_dir is not None:
        return IconIndex.read(index_dir)
    cache = IndexCache()
    try:
        return cache.ensure(variant, progress=lambda msg: console.print(msg, style="dim", highlight=False))
    finally:
        cache.close()
