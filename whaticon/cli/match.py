"""
Match command for the whaticon CLI.

Finds catalog icons that look like an SVG file, a URL or another catalog icon.
"""

import json
from pathlib import Path

import typer

from whaticon.catalog import IconifyClient
from whaticon.cli.common import console, fail, open_index
from whaticon.errors import WhaticonError
from whaticon.matching import match_svg
from whaticon.models import MatchOptions

__all__ = ["match_command"]


def read_input(file, url, icon):
    # type: (str|None, str|None, str|None) -> str|None
    """
    Load the query SVG from the first given source (URL, icon name, file).

    :raises FileNotFoundError: If ``file`` does not exist
    :raises ResolutionError: If a URL or icon name cannot be fetched
    """
    if url:
        with IconifyClient() as client:
            return client.fetch_svg(url)
    if icon:
        with IconifyClient() as client:
            return client.resolve(icon)
    if file:
        path = Path(file).resolve()
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return path.read_text(encoding="utf-8")
    return None


def match_command(
    file: str | None = typer.Argument(None, help="SVG file to match"),
    url: str | None = typer.Option(None, "--url", help="Fetch SVG from URL"),
    icon: str | None = typer.Option(None, "--icon", help="Find similar icons (e.g., lucide:home)"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Maximum results"),
    threshold: float | None = typer.Option(None, "--threshold", "-t", help="Minimum similarity 0-1"),
    prefix: str | None = typer.Option(None, "--prefix", "-p", help="Limit to icon sets (comma-separated)"),
    prefer: str | None = typer.Option(
        None, "--prefer", help="Prefer icon sets (comma-separated), sorted first at equal similarity"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    variant: str | None = typer.Option(None, "--variant", help="Prebuilt index variant (core, popular, full)"),
    index_dir: str | None = typer.Option(None, "--index-dir", help="Use a local index directory instead"),
):
    # type: (...) -> None
    """
    Find icons that look like the given SVG.

    Example:
        whaticon match icon.svg
        whaticon match --icon lucide:home -n 5 --prefer mdi
        whaticon match --url https://example.com/logo.svg --json
    """
    from whaticon.settings import whaticon_settings

    try:
        svg = read_input(file, url, icon)
    except (WhaticonError, FileNotFoundError) as e:
        fail(str(e))
        raise typer.Exit(code=1)

    if not svg:
        fail("No input provided. Use --help for usage.")
        raise typer.Exit(code=1)

    try:
        options = MatchOptions(
            size=whaticon_settings.hash_size,
            limit=whaticon_settings.limit if limit is None else limit,
            threshold=whaticon_settings.threshold if threshold is None else threshold,
            prefixes=prefix,
            prefer=prefer,
        )
    except ValueError as e:
        fail(str(e))
        raise typer.Exit(code=1)

    try:
        index = open_index(variant or whaticon_settings.index_variant, index_dir)
        matches = match_svg(svg, index, options)
    except (WhaticonError, FileNotFoundError) as e:
        fail(str(e))
        raise typer.Exit(code=1)

    if json_output:
        console.print_json(json.dumps([m.model_dump() for m in matches]))
        return

    if not matches:
        console.print("No matches found above threshold.")
        return
    for m in matches:
        console.print(f"{m.similarity * 100:.1f}%  {m.name}", highlight=False)
