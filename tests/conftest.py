"""Test fixtures for whaticon."""

import re
import zlib

import numpy as np
import pytest
from loguru import logger

from whaticon.errors import RasterizationError


SIMPLE_RECT = """<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">
  <rect x="4" y="4" width="16" height="16" fill="black"/>
</svg>"""

SIMPLE_CIRCLE = """<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">
  <circle cx="12" cy="12" r="8" fill="black"/>
</svg>"""

SIMPLE_LINE = """<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">
  <path stroke="black" stroke-width="2" d="M4 12h16"/>
</svg>"""

RECT_48 = """<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 48 48">
  <rect x="8" y="8" width="32" height="32" fill="black"/>
</svg>"""

# Geometry reaches far past the right edge of the viewBox
OVERFLOWING = """<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">
  <rect data-overflow="1" x="12" y="4" width="30" height="16" fill="black"/>
</svg>"""


# One composed sprite cell: optional clip reference, integer origin, then the icon body
CELL = re.compile(
    r'(?:<g clip-path="url\(#(?P<clip>[\w-]+)\)">)?'
    r'<g transform="translate\((?P<x>\d+),(?P<y>\d+)\)"><g transform="[^"]*"[^>]*>(?P<body>.*?)</g></g>',
    re.DOTALL,
)
CLIP_RECT = re.compile(
    r'<clipPath id="(?P<id>[\w-]+)"><rect x="(?P<x>\d+)" y="(?P<y>\d+)" width="(?P<w>\d+)" height="(?P<h>\d+)"/></clipPath>'
)

# Icon bodies carrying this marker paint a strip past the right edge of their frame
OVERFLOW_MARKER = "data-overflow"
OVERFLOW_WIDTH = 6


class PatternRasterizer:
    """
    Deterministic stand-in for a renderer.

    Fills every composed cell with pseudo-random pixels seeded by the icon body,
    so the same icon yields the same cell pixels wherever it is placed. Bodies
    marked with ``data-overflow`` also paint a dark strip beyond their cell,
    limited by the cell's clip rectangle when one is referenced. Sheets
    containing the text ``FAIL`` raise ``RasterizationError``.
    """

    def __init__(self, size=32):
        # type: (int) -> None
        self.size = size
        self.calls = []  # type: list[tuple[int, int]]

    def rasterize(self, svg, width, height, background="#ffffff"):
        # type: (str, int, int, str) -> np.ndarray
        self.calls.append((width, height))
        if "FAIL" in svg:
            raise RasterizationError("renderer failed")
        clips = {m["id"]: (int(m["x"]), int(m["y"]), int(m["w"]), int(m["h"])) for m in CLIP_RECT.finditer(svg)}
        raster = np.full((height, width), 255, dtype=np.uint8)
        overflows = []
        for m in CELL.finditer(svg):
            x, y, body = int(m["x"]), int(m["y"]), m["body"]
            rng = np.random.default_rng(zlib.crc32(body.encode("utf-8")))
            raster[y : y + self.size, x : x + self.size + 1] = rng.integers(0, 256, (self.size, self.size + 1))
            if OVERFLOW_MARKER in body:
                overflows.append((x + self.size + 1, y, clips.get(m["clip"])))
        # overflow is drawn on top of every cell, as transparent icon content would be
        for x0, y0, clip in overflows:
            x1, y1 = x0 + OVERFLOW_WIDTH, y0 + self.size
            if clip is not None:
                cx, cy, cw, ch = clip
                x0, y0, x1, y1 = max(x0, cx), max(y0, cy), min(x1, cx + cw), min(y1, cy + ch)
            if x0 < x1 and y0 < y1:
                raster[y0:y1, x0:x1] = 0
        return raster


def make_icons(count, prefix="test"):
    # type: (int, str) -> list[tuple[str, str]]
    """Distinct small icons named ``{prefix}:icon-{i}``."""
    return [
        (
            f"{prefix}:icon-{i}",
            f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24"><rect x="{i % 20}" y="2" width="3" height="{i % 17 + 1}"/></svg>',
        )
        for i in range(count)
    ]


@pytest.fixture
def pattern_rasterizer():
    # type: () -> PatternRasterizer
    return PatternRasterizer()


@pytest.fixture
def random_fingerprints():
    # type: () -> list[bytes]
    """Ten reproducible random 128-byte fingerprints."""
    rng = np.random.default_rng(42)
    return [rng.integers(0, 256, 128, dtype=np.uint8).tobytes() for _ in range(10)]


@pytest.fixture(scope="session")
def cairo_rasterizer():
    # type: () -> CairoRasterizer
    """Real CairoSVG renderer; skips when the native cairo library is missing."""
    from whaticon.raster import CairoRasterizer

    rasterizer = CairoRasterizer()
    try:
        rasterizer.rasterize(SIMPLE_RECT, 8, 8)
    except RasterizationError as e:  # pragma: no cover
        if isinstance(e.__cause__, (ImportError, OSError)):
            pytest.skip(f"cairo not available: {e}")
        raise
    return rasterizer


@pytest.fixture
def capture_logs():
    # type: () -> list[str]
    """Collect loguru messages emitted during the test."""
    messages = []  # type: list[str]
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG", format="{message}")
    yield messages
    logger.remove(handler_id)
