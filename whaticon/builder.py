"""
Batched index construction.

Icons are partitioned into batches, each batch is composed into one sprite
sheet, rendered once, and its cells are fingerprinted. A batch that fails to
parse or render falls back to rendering its icons one by one; icons that still
fail are dropped from the index without aborting the build.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from loguru import logger

from whaticon.errors import BuildCancelledError, RasterizationError, ValidationError
from whaticon.fingerprint import fingerprint_nbytes
from whaticon.models import DEFAULT_SIZE, IconSource
from whaticon.sprite import SpriteLayout, fingerprint_svg, render_sheet
from whaticon.store import IconIndex, IndexWriter
from whaticon.utils import timer


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_COLUMNS",
    "BuildObserver",
    "BuildResult",
    "CallbackObserver",
    "LogObserver",
    "build_index",
    "build_variant",
]


DEFAULT_COLUMNS = 50
# 20 rows of 50 icons keep a 1650 x 640 pixel sheet at the default size
DEFAULT_BATCH_SIZE = DEFAULT_COLUMNS * 20


class BuildObserver(Protocol):
    """Receives advisory progress notifications at batch boundaries."""

    def on_progress(self, processed, total):
        # type: (int, int) -> None
        ...


class CallbackObserver:
    """Adapts a plain ``callback(processed, total)`` function to ``BuildObserver``."""

    def __init__(self, callback):
        # type: (Callable[[int, int], None]) -> None
        self.callback = callback

    def on_progress(self, processed, total):
        # type: (int, int) -> None
        self.callback(processed, total)


class LogObserver:
    """Logs build throughput every ``every`` icons and on completion."""

    def __init__(self, every=5000):
        # type: (int) -> None
        self.every = every
        self.start_time = time.perf_counter()
        self._next = every

    def on_progress(self, processed, total):
        # type: (int, int) -> None
        if processed < self._next and processed != total:
            return
        while self._next <= processed:
            self._next += self.every
        elapsed = max(time.perf_counter() - self.start_time, 1e-9)
        pct = processed / total * 100 if total else 100.0
        logger.info(f"Hashed {processed:,}/{total:,} icons ({pct:.0f}%, {processed / elapsed:,.0f}/s)")


@dataclass
class BuildResult:
    """Output of ``build_index``. Unpacks to ``(names, hashes)``."""

    names: str
    hashes: bytes
    count: int
    nbytes: int
    dropped: list[str] = field(default_factory=list)

    def __iter__(self):
        yield self.names
        yield self.hashes

    def to_index(self):
        # type: () -> IconIndex
        return IconIndex.load(self.names, self.hashes, nbytes=self.nbytes)


def _process_batch(batch, layout, rasterizer):
    # type: (list[IconSource], SpriteLayout, Rasterizer|None) -> tuple[list[tuple[str, bytes]], list[str]]
    try:
        fingerprints = render_sheet([icon.svg for icon in batch], layout, rasterizer)
        return [(icon.name, fp) for icon, fp in zip(batch, fingerprints)], []
    except (ValidationError, RasterizationError) as e:
        logger.warning(f"Sprite sheet of {len(batch)} icons failed, hashing one by one: {e}")

    records, dropped = [], []
    for icon in batch:
        try:
            fp = fingerprint_svg(icon.svg, size=layout.size, rasterizer=rasterizer)
        except (ValidationError, RasterizationError) as e:
            logger.warning(f"Skipping {icon.name}: {e}")
            dropped.append(icon.name)
            continue
        records.append((icon.name, fp))
    return records, dropped


def _notify(observer, processed, total):
    # type: (BuildObserver|None, int, int) -> None
    if observer is None:
        return
    try:
        observer.on_progress(processed, total)
    except Exception:
        logger.exception("Progress observer failed")


def build_index(
    icons,
    size=DEFAULT_SIZE,
    observer=None,
    batch_size=DEFAULT_BATCH_SIZE,
    columns=DEFAULT_COLUMNS,
    rasterizer=None,
    workers=1,
    cancel=None,
):
    # type: (Iterable[IconSource|tuple[str, str]], int, BuildObserver|Callable|None, int, int, Rasterizer|None, int, threading.Event|None) -> BuildResult
    """
    Fingerprint many icons using sprite sheet batching.

    :param icons: ``(name, svg)`` pairs in output order
    :param size: Hash edge length (32 -> 128 byte fingerprints)
    :param observer: Progress observer (or plain callback), notified after every batch
    :param batch_size: Icons per sprite sheet
    :param columns: Grid columns per sprite sheet
    :param rasterizer: Renderer (defaults to CairoSVG)
    :param workers: Sprite sheets rendered concurrently
    :param cancel: Event checked before each batch; when set the build stops
    :return: Newline-joined names and concatenated fingerprints in processing order
    :raises BuildCancelledError: If ``cancel`` was set before the build finished
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if observer is not None and not hasattr(observer, "on_progress"):
        observer = CallbackObserver(observer)

    nbytes = fingerprint_nbytes(size)
    layout = SpriteLayout(size=size, columns=columns)
    sources = [icon if isinstance(icon, IconSource) else IconSource(*icon) for icon in icons]
    total = len(sources)
    batches = [sources[i : i + batch_size] for i in range(0, total, batch_size)]

    writer = IndexWriter(nbytes=nbytes)
    dropped = []  # type: list[str]
    processed = 0

    def process(batch):
        # type: (list[IconSource]) -> tuple[list[tuple[str, bytes]], list[str]]
        return _process_batch(batch, layout, rasterizer)

    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="whaticon-build") if workers > 1 else None
    try:
        with timer(f"Built index of {total:,} icons in {len(batches)} sprite sheets", level="DEBUG"):
            for start in range(0, len(batches), workers):
                if cancel is not None and cancel.is_set():
                    raise BuildCancelledError(processed, total)
                wave = batches[start : start + workers]
                results = pool.map(process, wave) if pool is not None else map(process, wave)
                # map yields in submission order, keeping batches in sequence
                for batch, (records, batch_dropped) in zip(wave, results):
                    writer.extend(records)
                    dropped.extend(batch_dropped)
                    processed += len(batch)
                    logger.debug(f"Batch done: {len(records)} hashed, {len(batch_dropped)} dropped")
                    _notify(observer, processed, total)
    finally:
        if pool is not None:
            pool.shutdown(wait=True, cancel_futures=True)

    if dropped:
        logger.warning(f"Dropped {len(dropped):,} of {total:,} icons that failed to render")
    names, hashes = writer.finalize()
    return BuildResult(names=names, hashes=hashes, count=len(writer), nbytes=nbytes, dropped=dropped)


def build_variant(name, icons, out_dir, size=DEFAULT_SIZE, observer=None, **kwargs):
    # type: (str, Sequence[IconSource], str|os.PathLike, int, BuildObserver|None, Any) -> dict
    """
    Build an index variant and write it to ``out_dir/name``.

    :param name: Variant name (e.g. ``core``)
    :param icons: Icons to index
    :param out_dir: Parent directory of the variant directory
    :param kwargs: Extra arguments for ``build_index``
    :return: Summary with ``icons``, ``dropped``, ``sizeBytes`` and ``path``
    """
    with timer(f"Built {name!r} index", log_start=True):
        result = build_index(icons, size=size, observer=observer, **kwargs)
        index = result.to_index()
        variant_dir = Path(out_dir) / name
        sizes = index.write(variant_dir, metadata={"variant": name})
    total_size = sum(sizes.values())
    logger.info(f"Saved {len(index):,} icons to {variant_dir} ({total_size / 1024 / 1024:.2f} MB)")
    return {
        "icons": len(index),
        "dropped": len(result.dropped),
        "sizeBytes": total_size,
        "path": str(variant_dir),
    }
