"""
Exception hierarchy for whaticon.

Validation problems surface synchronously to the caller and are never coerced
into a low-confidence match. Only the batch builder recovers from rendering
failures (by falling back to per-icon rendering).
"""

__all__ = [
    "WhaticonError",
    "ValidationError",
    "FingerprintLengthError",
    "InvalidIconNameError",
    "SvgSourceError",
    "CorruptIndexError",
    "RasterizationError",
    "ResolutionError",
    "IconNotFoundError",
    "BuildCancelledError",
    "DownloadError",
]


class WhaticonError(Exception):
    """Base class for all whaticon errors."""


class ValidationError(WhaticonError, ValueError):
    """Invalid input supplied by the caller."""


class FingerprintLengthError(ValidationError):
    """Two fingerprints of different byte length were compared."""

    def __init__(self, length_a, length_b):
        # type: (int, int) -> None
        self.length_a = length_a
        self.length_b = length_b
        super().__init__(f"Hash length mismatch: {length_a} vs {length_b}")


class InvalidIconNameError(ValidationError):
    """Icon name does not have the form ``prefix:identifier``."""

    def __init__(self, name):
        # type: (str) -> None
        self.name = name
        super().__init__(f"Invalid icon name: {name!r}. Expected format: prefix:icon")


class SvgSourceError(ValidationError):
    """SVG source text could not be parsed into a drawable icon."""


class CorruptIndexError(WhaticonError):
    """Names and fingerprint blobs of an index do not belong together."""


class RasterizationError(WhaticonError):
    """The external renderer failed to produce a pixel buffer."""


class ResolutionError(WhaticonError):
    """Remote lookup of an icon name failed."""


class IconNotFoundError(ResolutionError):
    """The catalog service does not know the requested icon."""

    def __init__(self, name, status_code=404):
        # type: (str, int) -> None
        self.name = name
        self.status_code = status_code
        super().__init__(f"Failed to fetch icon {name}: {status_code}")


class BuildCancelledError(WhaticonError):
    """Index build was cancelled between batches."""

    def __init__(self, processed, total):
        # type: (int, int) -> None
        self.processed = processed
        self.total = total
        super().__init__(f"Index build cancelled after {processed}/{total} icons")


class DownloadError(WhaticonError):
    """Release lookup or index artifact download failed."""
