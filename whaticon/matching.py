"""
Ranked similarity search over an icon index.

The search is a dense linear scan over the packed fingerprint buffer. A
similarity floor is converted once into a maximum bit distance so the scan only
compares integers. Survivors are ranked by similarity; candidates whose
similarity lies within ``TIE_EPSILON`` of the head of their tie band can be
reordered so preferred icon sets come first.
"""

import math

import numpy as np
from loguru import logger

from whaticon.errors import FingerprintLengthError
from whaticon.fingerprint import as_uint8, scan_hashes
from whaticon.models import IconMatch, MatchOptions
from whaticon.sprite import fingerprint_svg


__all__ = ["TIE_EPSILON", "find_matches", "match_svg", "rank_candidates", "threshold_distance"]


TIE_EPSILON = 0.001

_NO_MASK = np.zeros(0, dtype=np.bool_)


def threshold_distance(threshold, nbytes):
    # type: (float, int) -> int
    """Largest Hamming distance whose similarity still reaches ``threshold``."""
    return math.floor((1.0 - threshold) * nbytes * 8)


def rank_candidates(candidates, preferred=None):
    # type: (list[tuple[int, float]], Callable[[int], bool]|None) -> list[tuple[int, float]]
    """
    Order ``(record, similarity)`` candidates for output.

    Candidates must already be sorted by similarity descending (stable). Runs of
    candidates within ``TIE_EPSILON`` of the first candidate of the run form a
    tie band. Inside a band, records for which ``preferred`` returns True move
    to the front; relative order is otherwise preserved.

    :param candidates: Candidates sorted by similarity descending
    :param preferred: Predicate on record index, or None for no preference
    :return: Ranked candidates
    """
    if preferred is None:
        return candidates
    ranked = []  # type: list[tuple[int, float]]
    start, n = 0, len(candidates)
    while start < n:
        head = candidates[start][1]
        end = start + 1
        while end < n and head - candidates[end][1] < TIE_EPSILON:
            end += 1
        band = candidates[start:end]
        ranked.extend(c for c in band if preferred(c[0]))
        ranked.extend(c for c in band if not preferred(c[0]))
        start = end
    return ranked


def find_matches(query, index, options=None):
    # type: (bytes|NDArray[np.uint8], IconIndex, MatchOptions|None) -> list[IconMatch]
    """
    Find the catalog entries most similar to a query fingerprint.

    :param query: Query fingerprint (same width as the index records)
    :param index: Loaded icon index
    :param options: Limit, threshold and icon set filters
    :return: At most ``options.limit`` matches with similarity >= ``options.threshold``
    :raises FingerprintLengthError: If the query width differs from the index width
    """
    options = options or MatchOptions()
    q = as_uint8(query)
    if q.size != index.nbytes:
        raise FingerprintLengthError(q.size, index.nbytes)
    if options.limit == 0 or len(index) == 0:
        return []

    total_bits = index.nbytes * 8
    max_distance = threshold_distance(options.threshold, index.nbytes)
    mask = index.set_mask(options.prefixes) if options.prefixes else _NO_MASK

    indices, distances = scan_hashes(q, index.hashes, len(index), mask, max_distance)
    logger.debug(f"Scanned {len(index):,} icons, {len(indices):,} within distance {max_distance}")

    # Indices come out ascending, a stable sort keeps index order among equal distances
    order = np.argsort(distances, kind="stable")
    candidates = []  # type: list[tuple[int, float]]
    for k in order:
        sim = 1.0 - int(distances[k]) / total_bits
        if sim >= options.threshold:
            candidates.append((int(indices[k]), sim))

    if options.prefer:
        preferred_mask = index.set_mask(options.prefer)
        candidates = rank_candidates(candidates, lambda i: bool(preferred_mask[i]))

    return [IconMatch(name=index.names[i], similarity=sim) for i, sim in candidates[: options.limit]]


def match_svg(svg, index, options=None, rasterizer=None):
    # type: (str|bytes, IconIndex, MatchOptions|None, Rasterizer|None) -> list[IconMatch]
    """
    Fingerprint an SVG and search the index for it.

    Rendering failures abort the request; they never turn into empty or
    low-confidence results.

    :raises SvgSourceError: If the SVG cannot be parsed
    :raises RasterizationError: If rendering fails
    """
    options = options or MatchOptions()
    fingerprint = fingerprint_svg(svg, size=options.size, rasterizer=rasterizer)
    return find_matches(fingerprint, index, options)
