"""
Index cache commands for the whaticon CLI.

Downloads prebuilt index variants and inspects or clears the local cache.
"""

import typer
from rich.table import Table

from whaticon.cache import INDEX_VARIANTS, IndexCache
from whaticon.cli.common import console, fail
from whaticon.errors import WhaticonError

__all__ = ["download_command", "cache_command"]


def download_command(
    variant: str | None = typer.Argument(None, help="Index variant to download (core, popular, full)"),
    force: bool = typer.Option(False, "--force", "-f", help="Download even if already cached"),
):
    # type: (...) -> None
    """
    Download a prebuilt index variant into the local cache.

    Example:
        whaticon download core
        whaticon download full --force
    """
    from whaticon.settings import whaticon_settings

    variant = variant or whaticon_settings.index_variant
    cache = IndexCache()
    try:
        if cache.is_downloaded(variant) and not force:
            console.print(f"Index '{variant}' already cached at {cache.variant_dir(variant)}", highlight=False)
            return
        cache.download(variant, progress=lambda msg: console.print(msg, highlight=False))
    except WhaticonError as e:
        fail(str(e))
        raise typer.Exit(code=1)
    finally:
        cache.close()
    console.print(f"[green]Index '{variant}' ready[/green]")


def cache_command(
    clear: bool = typer.Option(False, "--clear", help="Delete all cached indexes"),
):
    # type: (...) -> None
    """Show the index cache location and cached variants."""
    cache = IndexCache()

    if clear:
        cache.clear()
        console.print(f"[green]Cleared {cache.cache_dir}[/green]")
        return

    console.print(f"Cache directory: {cache.cache_dir}", highlight=False)
    table = Table()
    table.add_column("Variant")
    table.add_column("Cached")
    table.add_column("Icons", justify="right")
    table.add_column("Sets", justify="right")
    for variant in INDEX_VARIANTS:
        downloaded = cache.is_downloaded(variant)
        metadata = cache.read_metadata(variant) or {}
        table.add_row(
            variant,
            "yes" if downloaded else "no",
            f"{metadata['icons']:,}" if "icons" in metadata else "-",
            str(len(metadata["prefixes"])) if "prefixes" in metadata else "-",
        )
    console.print(table)
