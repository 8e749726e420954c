"""
Data models for icon matching.

Icon names have the form ``prefix:identifier`` where the prefix names the icon set
(e.g. ``lucide:home``). The prefix is the unit of filtering and preference.
"""

import re
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from whaticon.errors import InvalidIconNameError


__all__ = [
    "DEFAULT_SIZE",
    "ICON_NAME_PATTERN",
    "IconMatch",
    "IconSource",
    "MatchOptions",
    "icon_prefix",
    "parse_icon_name",
]


DEFAULT_SIZE = 32

ICON_NAME_PATTERN = re.compile(r"^([a-z0-9-]+):([a-z0-9-]+)$", re.IGNORECASE)


def parse_icon_name(name):
    # type: (str) -> tuple[str, str]
    """
    Split an icon name into icon set prefix and identifier.

    :param name: Icon name like ``lucide:home``
    :return: Tuple of (prefix, identifier)
    :raises InvalidIconNameError: If name is not of the form ``prefix:identifier``
    """
    match = ICON_NAME_PATTERN.match(name)
    if match is None:
        raise InvalidIconNameError(name)
    return match.group(1), match.group(2)


def icon_prefix(name):
    # type: (str) -> str
    """Return the icon set of a catalog name (text before the first colon)."""
    return name.partition(":")[0]


class IconSource(NamedTuple):
    """An icon to be indexed: catalog name and SVG source text."""

    name: str
    svg: str


class IconMatch(BaseModel):
    """A catalog entry that cleared the similarity threshold."""

    model_config = ConfigDict(frozen=True)

    name: str
    similarity: float = Field(ge=0.0, le=1.0)


class MatchOptions(BaseModel):
    """
    Query options for ``find_matches``.

    ``prefixes`` and ``prefer`` accept any iterable of icon set names or a
    comma-separated string. Empty collections mean "not set".
    """

    model_config = ConfigDict(frozen=True)

    size: int = Field(DEFAULT_SIZE, ge=2, description="Raster edge length used to fingerprint the query")
    limit: int = Field(10, ge=0, description="Maximum number of results")
    threshold: float = Field(0.8, ge=0.0, le=1.0, description="Minimum similarity 0-1")
    prefixes: frozenset[str] | None = Field(None, description="Icon sets to search (default: all)")
    prefer: frozenset[str] | None = Field(None, description="Icon sets sorted first at near-equal similarity")

    @field_validator("prefixes", "prefer", mode="before")
    @classmethod
    def parse_sets(cls, v):
        # type: (str|Iterable[str]|None) -> frozenset[str]|None
        if v is None:
            return None
        if isinstance(v, str):
            v = v.split(",")
        sets = frozenset(p.strip() for p in v if p and p.strip())
        return sets or None

    @field_validator("size")
    @classmethod
    def check_size(cls, v):
        # type: (int) -> int
        if (v * v) % 8:
            raise ValueError(f"size**2 must be a multiple of 8, got size={v}")
        return v
