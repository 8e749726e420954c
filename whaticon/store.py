"""
Binary icon index: catalog names and a packed fingerprint buffer.

An index is stored as two independently gzip-compressed artifacts:

- ``names.txt.gz``: UTF-8 text, one icon name per line (line order = record index)
- ``hashes.bin.gz``: concatenated fixed-width fingerprints in the same order

There is no header or checksum. Integrity is enforced by checking at load time
that the fingerprint buffer holds exactly one record per name.

The icon set (prefix) of every record is derived once at load and stored as a
small integer id per record, so filtering by set does not split names during
the scan.
"""

import gzip
import json
import zlib
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from whaticon.errors import CorruptIndexError, FingerprintLengthError, ValidationError
from whaticon.fingerprint import FINGERPRINT_BYTES, as_uint8
from whaticon.models import icon_prefix


__all__ = [
    "HASHES_FILE",
    "METADATA_FILE",
    "NAMES_FILE",
    "IconIndex",
    "IndexWriter",
    "load_index",
]


NAMES_FILE = "names.txt.gz"
HASHES_FILE = "hashes.bin.gz"
METADATA_FILE = "metadata.json"


def _split_names(text):
    # type: (str) -> list[str]
    return [line for line in (raw.rstrip("\r") for raw in text.split("\n")) if line]


class IconIndex:
    """Immutable sequence of ``(name, fingerprint)`` records.

    CONCURRENCY: Read-only after construction and safe to share between threads
    running queries concurrently.
    """

    def __init__(self, names, hashes, nbytes=FINGERPRINT_BYTES):
        # type: (Iterable[str], bytes|bytearray|memoryview|NDArray[np.uint8], int) -> None
        """
        Create an index from names and their packed fingerprints.

        :param names: Icon names in record order
        :param hashes: Concatenated fingerprints, ``nbytes`` per record
        :param nbytes: Fingerprint width in bytes (default 128)
        :raises CorruptIndexError: If ``len(hashes) != len(names) * nbytes``
        """
        if nbytes < 1:
            raise ValidationError(f"nbytes must be >= 1, got {nbytes}")
        self.names = tuple(names)  # type: tuple[str, ...]
        self.nbytes = nbytes
        if not isinstance(hashes, bytes):
            hashes = as_uint8(hashes).tobytes()
        expected = len(self.names) * nbytes
        if len(hashes) != expected:
            raise CorruptIndexError(
                f"Index corrupt: {len(self.names)} names require {expected} fingerprint bytes, got {len(hashes)}"
            )
        # np.frombuffer over bytes is read-only
        self._hashes = np.frombuffer(hashes, dtype=np.uint8)

        set_index = {}  # type: dict[str, int]
        set_ids = np.empty(len(self.names), dtype=np.int32)
        for i, name in enumerate(self.names):
            set_ids[i] = set_index.setdefault(icon_prefix(name), len(set_index))
        set_ids.flags.writeable = False
        self.sets = tuple(set_index)  # type: tuple[str, ...]
        self.set_ids = set_ids
        self._set_index = set_index

    @classmethod
    def load(cls, names_blob, hashes_blob, nbytes=FINGERPRINT_BYTES):
        # type: (bytes|str, bytes, int) -> IconIndex
        """
        Create an index from decompressed blobs.

        Blank lines in the names blob are discarded.

        :param names_blob: UTF-8 text, one name per line
        :param hashes_blob: Concatenated fingerprints
        :raises CorruptIndexError: If the blobs do not describe the same records
        """
        if isinstance(names_blob, (bytes, bytearray, memoryview)):
            try:
                names_blob = bytes(names_blob).decode("utf-8")
            except UnicodeDecodeError as e:
                raise CorruptIndexError(f"Index names are not valid UTF-8: {e}") from e
        return cls(_split_names(names_blob), hashes_blob, nbytes=nbytes)

    @classmethod
    def from_gzip(cls, names_gz, hashes_gz, nbytes=FINGERPRINT_BYTES):
        # type: (bytes, bytes, int) -> IconIndex
        """
        Create an index from the gzip-compressed artifacts.

        :raises CorruptIndexError: If decompression fails or the blobs do not match
        """
        try:
            names_blob = gzip.decompress(names_gz)
            hashes_blob = gzip.decompress(hashes_gz)
        except (OSError, EOFError, zlib.error) as e:
            raise CorruptIndexError(f"Failed to decompress index: {e}") from e
        return cls.load(names_blob, hashes_blob, nbytes=nbytes)

    @classmethod
    def read(cls, directory, nbytes=None):
        # type: (str|os.PathLike, int|None) -> IconIndex
        """
        Read an index from ``names.txt.gz`` and ``hashes.bin.gz`` in ``directory``.

        :param nbytes: Fingerprint width; defaults to the width recorded in ``metadata.json``, else 128
        :raises FileNotFoundError: If either artifact is missing
        """
        directory = Path(directory)
        if nbytes is None:
            meta_path = directory / METADATA_FILE
            meta = json.loads(meta_path.read_text(encoding="utf-8")) if meta_path.exists() else {}
            nbytes = meta.get("nbytes", FINGERPRINT_BYTES)
        names_gz = (directory / NAMES_FILE).read_bytes()
        hashes_gz = (directory / HASHES_FILE).read_bytes()
        index = cls.from_gzip(names_gz, hashes_gz, nbytes=nbytes)
        logger.debug(f"Loaded {len(index):,} icons from {directory}")
        return index

    def to_blobs(self):
        # type: () -> tuple[str, bytes]
        """Return ``(names_text, hashes)`` in the shape accepted by ``load``."""
        return "\n".join(self.names), self._hashes.tobytes()

    def write(self, directory, metadata=None):
        # type: (str|os.PathLike, dict|None) -> dict[str, int]
        """
        Write gzip-compressed artifacts (and optional ``metadata.json``) to ``directory``.

        :param directory: Target directory (created if missing)
        :param metadata: Extra metadata; ``icons``, ``prefixes`` and ``created`` are filled in
        :return: Compressed size in bytes per written artifact
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        names_text, hashes = self.to_blobs()
        names_gz = gzip.compress(names_text.encode("utf-8"))
        hashes_gz = gzip.compress(hashes)
        (directory / NAMES_FILE).write_bytes(names_gz)
        (directory / HASHES_FILE).write_bytes(hashes_gz)
        sizes = {NAMES_FILE: len(names_gz), HASHES_FILE: len(hashes_gz)}
        if metadata is not None:
            meta = {
                "version": 1,
                "prefixes": list(self.sets),
                "icons": len(self),
                "nbytes": self.nbytes,
                "created": datetime.now(timezone.utc).isoformat(),
            }
            meta.update(metadata)
            text = json.dumps(meta, indent=2)
            (directory / METADATA_FILE).write_text(text, encoding="utf-8")
            sizes[METADATA_FILE] = len(text)
        return sizes

    @property
    def hashes(self):
        # type: () -> NDArray[np.uint8]
        """Read-only flat view of the packed fingerprint buffer."""
        return self._hashes

    def __len__(self):
        # type: () -> int
        return len(self.names)

    def __iter__(self):
        # type: () -> Iterator[tuple[str, bytes]]
        for i, name in enumerate(self.names):
            yield name, self.fingerprint_at(i).tobytes()

    def __repr__(self):
        # type: () -> str
        return f"IconIndex(icons={len(self)}, sets={len(self.sets)}, nbytes={self.nbytes})"

    def offset_of(self, i):
        # type: (int) -> int
        """Byte offset of record ``i`` inside the fingerprint buffer."""
        if not 0 <= i < len(self.names):
            raise IndexError(f"Record {i} out of range for index of {len(self.names)} icons")
        return i * self.nbytes

    def fingerprint_at(self, i):
        # type: (int) -> NDArray[np.uint8]
        """Fingerprint of record ``i`` as a read-only view (no copy)."""
        offset = self.offset_of(i)
        return self._hashes[offset : offset + self.nbytes]

    def prefix_at(self, i):
        # type: (int) -> str
        """Icon set of record ``i``."""
        return self.sets[self.set_ids[i]]

    def set_mask(self, prefixes):
        # type: (Iterable[str]) -> NDArray[np.bool_]
        """Per-record mask of records that belong to one of ``prefixes``."""
        ids = [self._set_index[p] for p in prefixes if p in self._set_index]
        if not ids:
            return np.zeros(len(self.names), dtype=np.bool_)
        return np.isin(self.set_ids, np.array(ids, dtype=np.int32))


def load_index(names_blob, hashes_blob, nbytes=FINGERPRINT_BYTES):
    # type: (bytes|str, bytes, int) -> IconIndex
    """Create an index from decompressed names and fingerprint blobs."""
    return IconIndex.load(names_blob, hashes_blob, nbytes=nbytes)


class IndexWriter:
    """Accumulates ``(name, fingerprint)`` records for a new index."""

    def __init__(self, nbytes=FINGERPRINT_BYTES):
        # type: (int) -> None
        self.nbytes = nbytes
        self._names = []  # type: list[str]
        self._chunks = []  # type: list[bytes]

    def add(self, name, fingerprint):
        # type: (str, bytes) -> None
        """
        Append one record.

        :raises ValidationError: If the name is empty or contains a line break
        :raises FingerprintLengthError: If the fingerprint has the wrong width
        """
        if not name or "\n" in name or "\r" in name:
            raise ValidationError(f"Invalid index name: {name!r}")
        if len(fingerprint) != self.nbytes:
            raise FingerprintLengthError(self.nbytes, len(fingerprint))
        self._names.append(name)
        self._chunks.append(bytes(fingerprint))

    def extend(self, records):
        # type: (Iterable[tuple[str, bytes]]) -> None
        for name, fingerprint in records:
            self.add(name, fingerprint)

    def __len__(self):
        # type: () -> int
        return len(self._names)

    def finalize(self):
        # type: () -> tuple[str, bytes]
        """Return ``(names_text, hashes)`` blobs in record order."""
        return "\n".join(self._names), b"".join(self._chunks)

    def build(self):
        # type: () -> IconIndex
        names_text, hashes = self.finalize()
        return IconIndex.load(names_text, hashes, nbytes=self.nbytes)
