"""
Build command for the whaticon CLI.

Builds an index from Iconify JSON collections using sprite sheet batching.
"""

import json
from pathlib import Path

import typer
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from whaticon.builder import build_variant
from whaticon.catalog import find_collection, load_collection, variant_prefixes
from whaticon.cli.common import console, fail
from whaticon.errors import WhaticonError

__all__ = ["build_command", "collect_paths", "ProgressObserver"]


class ProgressObserver:
    """Forwards build progress to a rich progress task."""

    def __init__(self, progress, task):
        # type: (Progress, TaskID) -> None
        self.progress = progress
        self.task = task

    def on_progress(self, processed, total):
        # type: (int, int) -> None
        self.progress.update(self.task, completed=processed, total=total)


def collect_paths(collections, variant, collections_dir):
    # type: (list[Path]|None, str|None, Path) -> list[Path]
    """
    Collection files to index: explicit paths plus the installed sets of ``variant``.

    :raises ValidationError: If the variant is unknown
    :raises ResolutionError: If the collection list for ``full`` cannot be fetched
    """
    paths = list(collections or [])
    if variant is None:
        return paths
    prefixes = variant_prefixes(variant)
    console.print(f"Building {variant!r} index ({len(prefixes)} sets)", highlight=False)
    for prefix in prefixes:
        path = find_collection(prefix, collections_dir)
        if path is None:
            console.print(f"  {prefix}: not installed", style="dim", highlight=False)
            continue
        paths.append(path)
    return paths


def build_command(
    collections: list[Path] | None = typer.Argument(None, help="Iconify JSON collection files (icons.json)"),
    variant: str | None = typer.Option(
        None, "--variant", help="Index the icon sets of a prebuilt variant (core, popular, full)"
    ),
    collections_dir: Path = typer.Option(
        Path("node_modules/@iconify-json"),
        "--collections-dir",
        help="Directory with <prefix>/icons.json or <prefix>.json collections for --variant",
    ),
    out: Path = typer.Option(Path("dist/indexes"), "--out", "-o", help="Output directory"),
    name: str | None = typer.Option(None, "--name", help="Variant name (default: --variant, else custom)"),
    batch_size: int | None = typer.Option(None, "--batch-size", help="Icons per sprite sheet"),
    columns: int | None = typer.Option(None, "--columns", help="Grid columns per sprite sheet"),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Sprite sheets rendered concurrently"),
):
    # type: (...) -> None
    """
    Build an icon index from Iconify JSON collections.

    Example:
        whaticon build node_modules/@iconify-json/lucide/icons.json --name lucide
        whaticon build --variant core --collections-dir node_modules/@iconify-json
        whaticon build sets/*.json --out dist/indexes --name popular --workers 4
    """
    from whaticon.settings import whaticon_settings

    name = name or variant or "custom"
    try:
        paths = collect_paths(collections, variant, collections_dir)
    except WhaticonError as e:
        fail(str(e))
        raise typer.Exit(code=1)

    icons = []
    for path in paths:
        try:
            loaded = load_collection(path)
        except (OSError, ValueError) as e:
            console.print(f"[yellow]Skipping {path}: {escape(str(e))}[/yellow]", highlight=False)
            continue
        console.print(f"Loaded {path}: {len(loaded):,} icons", highlight=False)
        icons.extend(loaded)

    if not icons:
        fail("No icons loaded")
        raise typer.Exit(code=1)

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Hashing...", total=len(icons))
        try:
            summary = build_variant(
                name,
                icons,
                out,
                size=whaticon_settings.hash_size,
                observer=ProgressObserver(progress, task),
                batch_size=batch_size or whaticon_settings.batch_size,
                columns=columns or whaticon_settings.sprite_columns,
                workers=workers or whaticon_settings.workers,
            )
        except WhaticonError as e:
            fail(str(e))
            raise typer.Exit(code=1)

    manifest_path = out / "manifest.json"
    manifest = json.loads(manifest_path.read_text(encoding="utf-8")) if manifest_path.exists() else {"variants": {}}
    manifest.setdefault("variants", {})[name] = {
        "icons": summary["icons"],
        "sizeBytes": summary["sizeBytes"],
        "files": ["names.txt.gz", "hashes.bin.gz", "metadata.json"],
    }
    manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")

    table = Table(title="Index built")
    table.add_column("Variant")
    table.add_column("Icons", justify="right")
    table.add_column("Dropped", justify="right")
    table.add_column("Size", justify="right")
    table.add_row(name, f"{summary['icons']:,}", f"{summary['dropped']:,}", f"{summary['sizeBytes'] / 1024 / 1024:.2f} MB")
    console.print(table)
    console.print(f"Saved to {summary['path']}", highlight=False)
