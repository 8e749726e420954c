"""
Sprite sheet composition and per-cell fingerprint extraction.

Rendering many icons one by one pays the renderer setup cost for every icon.
A sprite sheet places a batch of icons into a grid of cells of one composite SVG
document so the batch is rendered in a single pass. Every cell is
``(size + 1) x size`` pixels, exactly the raster a single fingerprint needs.

Both composition and extraction derive all geometry from one ``SpriteLayout``.
Single icons are fingerprinted through a one-cell sheet, which makes batch and
direct fingerprints of an icon bit-identical.
"""

import re
from dataclasses import dataclass, field
from xml.sax.saxutils import quoteattr, unescape

import numpy as np
from numpy.typing import NDArray

from whaticon.errors import RasterizationError, SvgSourceError
from whaticon.fingerprint import compute_fingerprint, dhash_cells, fingerprint_nbytes
from whaticon.models import DEFAULT_SIZE
from whaticon.raster import BACKGROUND, Rasterizer, default_rasterizer


__all__ = [
    "DEFAULT_ICON_SIZE",
    "SpriteLayout",
    "SvgIcon",
    "compose_sheet",
    "extract_fingerprints",
    "fingerprint_svg",
    "parse_svg",
    "render_sheet",
]


# Fallback coordinate space for icons without viewBox or size attributes
DEFAULT_ICON_SIZE = 24.0

# Root presentation attributes inherited by the icon content
INHERITED_ATTRIBUTES = frozenset(
    {
        "color",
        "fill",
        "fill-opacity",
        "fill-rule",
        "opacity",
        "stroke",
        "stroke-dasharray",
        "stroke-linecap",
        "stroke-linejoin",
        "stroke-miterlimit",
        "stroke-opacity",
        "stroke-width",
    }
)

SVG_OPEN = re.compile(r"<svg\b([^>]*)>", re.IGNORECASE)
SVG_CLOSE = re.compile(r"</svg\s*>", re.IGNORECASE)
ATTRIBUTE = re.compile(r"""([A-Za-z_:][\w:.-]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
ID_ATTRIBUTE = re.compile(r"""(\bid\s*=\s*["'])([^"']+)(["'])""")
ID_REFERENCE = re.compile(r"""(url\(\s*['"]?#|\bhref\s*=\s*["']#)([^)'"\s]+)""")

# Quote entities decoded before re-quoting root attribute values
ENTITIES = {"&quot;": '"', "&apos;": "'"}
# Ids of the per-cell clip rectangles; icon ids are scoped ``c{i}-`` and cannot collide
CELL_CLIP_PREFIX = "whaticon-cell-"


@dataclass(frozen=True)
class SvgIcon:
    """Drawable content of an SVG icon and its native coordinate frame."""

    body: str
    width: float = DEFAULT_ICON_SIZE
    height: float = DEFAULT_ICON_SIZE
    min_x: float = 0.0
    min_y: float = 0.0
    attributes: dict = field(default_factory=dict)


def _number(value):
    # type: (str|None) -> float|None
    if not value:
        return None
    match = NUMBER.match(value.strip())
    return float(match.group(0)) if match else None


def _view_box(value):
    # type: (str|None) -> tuple[float, float, float, float]|None
    if not value:
        return None
    parts = NUMBER.findall(value)
    if len(parts) != 4:
        return None
    min_x, min_y, width, height = (float(p) for p in parts)
    if width <= 0 or height <= 0:
        return None
    return min_x, min_y, width, height


def parse_svg(svg):
    # type: (str|bytes) -> SvgIcon
    """
    Split SVG source into its inner content and coordinate frame.

    The frame comes from ``viewBox``, else from ``width``/``height``, else 24x24.

    :raises SvgSourceError: If no ``<svg>`` root element can be found
    """
    if isinstance(svg, bytes):
        try:
            svg = svg.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SvgSourceError(f"SVG source is not valid UTF-8: {e}") from e

    opening = SVG_OPEN.search(svg)
    if opening is None:
        raise SvgSourceError("No <svg> element found in source")

    attrs_text = opening.group(1)
    self_closing = attrs_text.rstrip().endswith("/")
    attributes = {m.group(1): m.group(2) if m.group(2) is not None else m.group(3) for m in ATTRIBUTE.finditer(attrs_text)}

    if self_closing:
        body = ""
    else:
        closings = list(SVG_CLOSE.finditer(svg, opening.end()))
        if not closings:
            raise SvgSourceError("Unterminated <svg> element")
        body = svg[opening.end() : closings[-1].start()]

    view_box = _view_box(attributes.get("viewBox"))
    if view_box is not None:
        min_x, min_y, width, height = view_box
    else:
        min_x = min_y = 0.0
        width = _number(attributes.get("width")) or DEFAULT_ICON_SIZE
        height = _number(attributes.get("height")) or DEFAULT_ICON_SIZE
        if width <= 0 or height <= 0:
            raise SvgSourceError(f"Invalid SVG size {width}x{height}")

    inherited = {k: v for k, v in attributes.items() if k in INHERITED_ATTRIBUTES}
    return SvgIcon(body=body, width=width, height=height, min_x=min_x, min_y=min_y, attributes=inherited)


def scope_ids(body, scope):
    # type: (str, str) -> str
    """Prefix element ids and their local references so cells cannot collide."""
    ids = {m.group(2) for m in ID_ATTRIBUTE.finditer(body)}
    if not ids:
        return body
    body = ID_ATTRIBUTE.sub(lambda m: f"{m.group(1)}{scope}{m.group(2)}{m.group(3)}", body)

    def reference(m):
        # type: (re.Match) -> str
        target = m.group(2)
        return f"{m.group(1)}{scope}{target}" if target in ids else m.group(0)

    return ID_REFERENCE.sub(reference, body)


def _fmt(value):
    # type: (float) -> str
    return f"{value:.6f}"


@dataclass(frozen=True)
class SpriteLayout:
    """Grid geometry shared by sheet composition and fingerprint extraction."""

    size: int = DEFAULT_SIZE
    columns: int = 50

    def __post_init__(self):
        fingerprint_nbytes(self.size)
        if self.columns < 1:
            raise ValueError(f"columns must be >= 1, got {self.columns}")

    @property
    def cell_width(self):
        # type: () -> int
        return self.size + 1

    @property
    def cell_height(self):
        # type: () -> int
        return self.size

    def grid(self, count):
        # type: (int) -> tuple[int, int]
        """Columns and rows used by a sheet of ``count`` icons."""
        if count < 1:
            raise ValueError("A sprite sheet needs at least one icon")
        columns = min(count, self.columns)
        rows = -(-count // self.columns)
        return columns, rows

    def sheet_size(self, count):
        # type: (int) -> tuple[int, int]
        """Pixel width and height of a sheet of ``count`` icons."""
        columns, rows = self.grid(count)
        return columns * self.cell_width, rows * self.cell_height

    def origin(self, i):
        # type: (int) -> tuple[int, int]
        """Top-left pixel of cell ``i``."""
        return (i % self.columns) * self.cell_width, (i // self.columns) * self.cell_height


def _attribute(name, value):
    # type: (str, str) -> str
    # Source values are raw attribute text; decode entities once before quoting
    return f" {name}={quoteattr(unescape(value, ENTITIES))}"


def _cell(icon, layout, x, y, scope):
    # type: (SvgIcon, SpriteLayout, int, int, str) -> str
    scale = min(layout.cell_width / icon.width, layout.cell_height / icon.height)
    # Center inside the cell like a "contain" fit
    dx = (layout.cell_width - icon.width * scale) / 2
    dy = (layout.cell_height - icon.height * scale) / 2
    transform = f"translate({_fmt(dx)},{_fmt(dy)}) scale({_fmt(scale)}) translate({_fmt(-icon.min_x)},{_fmt(-icon.min_y)})"
    attrs = "".join(_attribute(k, v) for k, v in sorted(icon.attributes.items()))
    body = scope_ids(icon.body, scope)
    return f'<g transform="translate({x},{y})"><g transform="{transform}"{attrs}>{body}</g></g>'


def _clip(i, layout):
    # type: (int, SpriteLayout) -> str
    x, y = layout.origin(i)
    return (
        f'<clipPath id="{CELL_CLIP_PREFIX}{i}">'
        f'<rect x="{x}" y="{y}" width="{layout.cell_width}" height="{layout.cell_height}"/></clipPath>'
    )


def compose_sheet(icons, layout):
    # type: (Sequence[SvgIcon], SpriteLayout) -> str
    """
    Build one SVG document holding every icon in its own grid cell.

    Every cell is clipped to its own rectangle, so content reaching beyond an
    icon's frame never paints into a neighbouring cell.

    :param icons: Parsed icons in cell order
    :param layout: Grid geometry
    :return: SVG source of the sheet
    """
    width, height = layout.sheet_size(len(icons))
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" '
        f'width="{width}" height="{height}" viewBox="0 0 {width} {height}">',
        "<defs>",
        *(_clip(i, layout) for i in range(len(icons))),
        "</defs>",
        f'<rect width="{width}" height="{height}" fill="{BACKGROUND}"/>',
    ]
    for i, icon in enumerate(icons):
        x, y = layout.origin(i)
        parts.append(f'<g clip-path="url(#{CELL_CLIP_PREFIX}{i})">')
        parts.append(_cell(icon, layout, x, y, f"c{i}-"))
        parts.append("</g>")
    parts.append("</svg>")
    return "".join(parts)


def extract_fingerprints(raster, count, layout):
    # type: (NDArray[np.uint8], int, SpriteLayout) -> list[bytes]
    """
    Difference hash every cell of a rendered sheet.

    Comparisons never cross a cell boundary: each cell is ``size + 1`` pixels wide
    and yields ``size`` comparisons per row.

    :param raster: Rendered sheet of shape ``(height, width)``
    :param count: Number of icons on the sheet
    :param layout: Geometry the sheet was composed with
    :return: Fingerprints in cell order
    :raises RasterizationError: If the raster does not have the sheet dimensions
    """
    width, height = layout.sheet_size(count)
    raster = np.asarray(raster, dtype=np.uint8)
    if raster.shape != (height, width):
        raise RasterizationError(f"Expected {width}x{height} sheet raster, got shape {raster.shape}")
    columns, rows = layout.grid(count)
    cells = (
        raster.reshape(rows, layout.cell_height, columns, layout.cell_width)
        .transpose(0, 2, 1, 3)
        .reshape(rows * columns, layout.cell_height, layout.cell_width)
    )
    return [row.tobytes() for row in dhash_cells(cells[:count])]


def render_sheet(sources, layout, rasterizer=None):
    # type: (Sequence[str|bytes], SpriteLayout, Rasterizer|None) -> list[bytes]
    """
    Parse, compose, rasterize and fingerprint a batch of SVG sources in one pass.

    :raises SvgSourceError: If any source cannot be parsed
    :raises RasterizationError: If rendering fails
    """
    rasterizer = rasterizer or default_rasterizer()
    icons = [parse_svg(svg) for svg in sources]
    sheet = compose_sheet(icons, layout)
    width, height = layout.sheet_size(len(icons))
    raster = rasterizer.rasterize(sheet, width, height, BACKGROUND)
    return extract_fingerprints(raster, len(icons), layout)


def fingerprint_svg(svg, size=DEFAULT_SIZE, rasterizer=None):
    # type: (str|bytes, int, Rasterizer|None) -> bytes
    """
    Fingerprint a single SVG icon.

    :param svg: SVG source
    :param size: Hash edge length
    :param rasterizer: Renderer (defaults to CairoSVG)
    :return: Fingerprint of ``size * size // 8`` bytes
    :raises SvgSourceError: If the source cannot be parsed
    :raises RasterizationError: If rendering fails
    """
    rasterizer = rasterizer or default_rasterizer()
    layout = SpriteLayout(size=size, columns=1)
    sheet = compose_sheet([parse_svg(svg)], layout)
    width, height = layout.sheet_size(1)
    pixels = rasterizer.rasterize(sheet, width, height, BACKGROUND)
    pixels = np.asarray(pixels, dtype=np.uint8)
    if pixels.shape != (height, width):
        raise RasterizationError(f"Expected {width}x{height} raster, got shape {pixels.shape}")
    return compute_fingerprint(pixels, size)
