"""
Rasterizer adapter: vector image to grayscale pixels.

The matching core only consumes grayscale pixel buffers. Rendering is delegated
to CairoSVG, Pillow flattens transparency onto the background and converts to
8-bit grayscale.
"""

import io
from typing import Protocol

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageColor, ImageOps

from whaticon.errors import RasterizationError


__all__ = ["BACKGROUND", "Rasterizer", "CairoRasterizer", "default_rasterizer"]


BACKGROUND = "#ffffff"


class Rasterizer(Protocol):
    """Renders vector images to grayscale pixel buffers."""

    def rasterize(self, svg, width, height, background=BACKGROUND):
        # type: (str|bytes, int, int, str) -> NDArray[np.uint8]
        """
        Render ``svg`` into a ``height x width`` uint8 array (row-major).

        Content is fit inside the frame preserving aspect ratio and padded with
        ``background``. Output dimensions always match the request.

        :raises RasterizationError: If rendering fails
        """
        ...


class CairoRasterizer:
    """Rasterizer backed by CairoSVG and Pillow."""

    def __init__(self, unsafe=False):
        # type: (bool) -> None
        """
        :param unsafe: Allow external entities and remote resources in SVG input
        """
        self.unsafe = unsafe

    def rasterize(self, svg, width, height, background=BACKGROUND):
        # type: (str|bytes, int, int, str) -> NDArray[np.uint8]
        if width < 1 or height < 1:
            raise RasterizationError(f"Invalid raster size {width}x{height}")
        data = svg.encode("utf-8") if isinstance(svg, str) else bytes(svg)
        try:
            # Loads the native cairo library on first use
            import cairosvg
        except (ImportError, OSError) as e:
            raise RasterizationError(f"CairoSVG renderer unavailable: {e}") from e
        try:
            png = cairosvg.svg2png(
                bytestring=data,
                output_width=width,
                output_height=height,
                background_color=background,
                unsafe=self.unsafe,
            )
            with Image.open(io.BytesIO(png)) as img:
                rgba = img.convert("RGBA")
        except Exception as e:
            raise RasterizationError(f"Failed to rasterize SVG at {width}x{height}: {e}") from e

        canvas = Image.new("RGBA", rgba.size, background)
        canvas.alpha_composite(rgba)
        gray = canvas.convert("L")
        if gray.size != (width, height):
            fill = ImageColor.getcolor(background, "L")
            gray = ImageOps.pad(gray, (width, height), color=fill)
        return np.asarray(gray, dtype=np.uint8)


_default = None  # type: CairoRasterizer|None


def default_rasterizer():
    # type: () -> Rasterizer
    """Shared CairoRasterizer instance."""
    global _default
    if _default is None:
        _default = CairoRasterizer()
    return _default
