"""
Difference hash fingerprints for grayscale rasters and their bit distance.

A fingerprint of edge ``size`` is derived from a ``(size + 1) x size`` raster by
comparing every pixel with its right neighbour. Each comparison yields one bit
(1 if the left pixel is strictly darker), packed MSB first in row-major order.
With the default ``size = 32`` this gives 1024 bits (128 bytes).

Distances are computed with a 32-bit SWAR popcount over little-endian words and
can be evaluated directly against a packed buffer of many fingerprints without
slicing per-record copies.
"""

import numpy as np
from numba import njit
from numpy.typing import NDArray

from whaticon.errors import FingerprintLengthError, ValidationError
from whaticon.models import DEFAULT_SIZE


__all__ = [
    "FINGERPRINT_BYTES",
    "as_uint8",
    "compute_fingerprint",
    "dhash_cells",
    "fingerprint_nbytes",
    "hamming_distance",
    "hamming_distance_at",
    "scan_hashes",
    "similarity",
]


# 1024 bits for the default 32 x 32 comparison grid
FINGERPRINT_BYTES = DEFAULT_SIZE * DEFAULT_SIZE // 8


@njit(cache=True)
def popcount32(x):  # pragma: no cover
    # type: (int) -> int
    """Count set bits of a 32-bit word held in a 64-bit integer."""
    x = x - ((x >> 1) & 0x55555555)
    x = (x & 0x33333333) + ((x >> 2) & 0x33333333)
    x = (x + (x >> 4)) & 0x0F0F0F0F
    return ((x * 0x01010101) & 0xFFFFFFFF) >> 24


@njit(cache=True)
def hamming_at(query, buffer, offset):  # pragma: no cover
    # type: (NDArray[np.uint8], NDArray[np.uint8], int) -> int
    """
    Hamming distance between ``query`` and ``buffer[offset:offset + len(query)]``.

    XORs 4-byte little-endian words and sums their popcounts. Trailing bytes of
    fingerprints whose length is not a multiple of 4 are counted one by one.
    """
    nbytes = query.shape[0]
    distance = 0
    i = 0
    while i + 4 <= nbytes:
        o = offset + i
        x = (
            np.int64(query[i] ^ buffer[o])
            | (np.int64(query[i + 1] ^ buffer[o + 1]) << 8)
            | (np.int64(query[i + 2] ^ buffer[o + 2]) << 16)
            | (np.int64(query[i + 3] ^ buffer[o + 3]) << 24)
        )
        distance += popcount32(x)
        i += 4
    while i < nbytes:
        distance += popcount32(np.int64(query[i] ^ buffer[offset + i]))
        i += 1
    return distance


@njit(cache=True)
def scan_hashes(query, hashes, count, mask, max_distance):  # pragma: no cover
    # type: (NDArray[np.uint8], NDArray[np.uint8], int, NDArray[np.bool_], int) -> tuple[NDArray[np.int64], NDArray[np.int64]]
    """
    Linear scan of a packed fingerprint buffer.

    :param query: Query fingerprint
    :param hashes: Flat buffer of ``count`` fingerprints of ``len(query)`` bytes each
    :param count: Number of records in ``hashes``
    :param mask: Per-record bool filter, or an empty array to scan every record
    :param max_distance: Largest accepted Hamming distance
    :return: Record indices (ascending) and their distances for records within ``max_distance``
    """
    nbytes = query.shape[0]
    indices = np.empty(count, dtype=np.int64)
    distances = np.empty(count, dtype=np.int64)
    use_mask = mask.shape[0] > 0
    found = 0
    for i in range(count):
        if use_mask and not mask[i]:
            continue
        d = hamming_at(query, hashes, i * nbytes)
        if d <= max_distance:
            indices[found] = i
            distances[found] = d
            found += 1
    return indices[:found], distances[:found]


def as_uint8(data):
    # type: (bytes|bytearray|memoryview|NDArray) -> NDArray[np.uint8]
    """View bytes-like data or an array as a flat uint8 array (no copy when possible)."""
    if isinstance(data, np.ndarray):
        if data.dtype != np.uint8:
            raise ValidationError(f"Expected uint8 data, got {data.dtype}")
        return np.ascontiguousarray(data).reshape(-1)
    return np.frombuffer(data, dtype=np.uint8)


def fingerprint_nbytes(size):
    # type: (int) -> int
    """
    Number of bytes of a fingerprint with edge ``size``.

    :raises ValidationError: If ``size**2`` bits do not pack into whole bytes
    """
    if size < 2 or (size * size) % 8:
        raise ValidationError(f"Invalid hash size {size}: size**2 must be a positive multiple of 8")
    return size * size // 8


def dhash_cells(cells):
    # type: (NDArray[np.uint8]) -> NDArray[np.uint8]
    """
    Difference hash a stack of raster cells.

    :param cells: Array of shape ``(n, size, size + 1)``
    :return: Array of shape ``(n, size * size // 8)`` with packed fingerprints
    """
    n = cells.shape[0]
    bits = cells[:, :, :-1] < cells[:, :, 1:]
    return np.packbits(bits.reshape(n, -1), axis=1, bitorder="big")


def compute_fingerprint(pixels, size=DEFAULT_SIZE):
    # type: (bytes|bytearray|memoryview|NDArray[np.uint8], int) -> bytes
    """
    Compute the difference hash of a grayscale raster.

    :param pixels: Row-major grayscale buffer of exactly ``(size + 1) * size`` bytes
    :param size: Logical hash edge (default 32)
    :return: Fingerprint of ``size * size // 8`` bytes
    :raises ValidationError: If the buffer length does not match ``size``
    """
    fingerprint_nbytes(size)
    data = as_uint8(pixels)
    expected = (size + 1) * size
    if data.size != expected:
        raise ValidationError(f"Expected {expected} pixels for hash size {size}, got {data.size}")
    cell = data.reshape(1, size, size + 1)
    return dhash_cells(cell)[0].tobytes()


def _check_lengths(a, b):
    # type: (NDArray[np.uint8], NDArray[np.uint8]) -> None
    if a.size != b.size:
        raise FingerprintLengthError(a.size, b.size)
    if a.size == 0:
        raise ValidationError("Cannot compare empty fingerprints")


def hamming_distance(a, b):
    # type: (bytes|NDArray[np.uint8], bytes|NDArray[np.uint8]) -> int
    """
    Number of differing bits between two fingerprints.

    :raises FingerprintLengthError: If the fingerprints differ in length
    """
    qa, qb = as_uint8(a), as_uint8(b)
    _check_lengths(qa, qb)
    return int(hamming_at(qa, qb, 0))


def hamming_distance_at(query, buffer, offset):
    # type: (bytes|NDArray[np.uint8], bytes|NDArray[np.uint8], int) -> int
    """
    Hamming distance between ``query`` and the record stored at ``offset`` of ``buffer``.

    :param query: Query fingerprint
    :param buffer: Packed fingerprint buffer
    :param offset: Byte offset of the record inside ``buffer``
    :raises ValidationError: If the record does not fit inside ``buffer``
    """
    q, buf = as_uint8(query), as_uint8(buffer)
    if q.size == 0:
        raise ValidationError("Cannot compare empty fingerprints")
    if offset < 0 or offset + q.size > buf.size:
        raise FingerprintLengthError(q.size, max(0, buf.size - max(offset, 0)))
    return int(hamming_at(q, buf, offset))


def similarity(a, b):
    # type: (bytes|NDArray[np.uint8], bytes|NDArray[np.uint8]) -> float
    """
    Similarity of two fingerprints in ``[0, 1]`` (1.0 only for identical fingerprints).

    :raises FingerprintLengthError: If the fingerprints differ in length
    """
    distance = hamming_distance(a, b)
    return 1.0 - distance / (as_uint8(a).size * 8)
