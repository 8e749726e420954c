"""Tests for the binary icon index."""

import gzip
import json
from pathlib import Path

import numpy as np
import pytest

from whaticon.errors import CorruptIndexError, FingerprintLengthError, ValidationError
from whaticon.store import HASHES_FILE, METADATA_FILE, NAMES_FILE, IconIndex, IndexWriter, load_index


NAMES = ["lucide:home", "mdi:home", "lucide:search", "tabler:home"]


@pytest.fixture
def sample_index(random_fingerprints):
    # type: (list[bytes]) -> IconIndex
    return IconIndex(NAMES, b"".join(random_fingerprints[:4]))


def test_load_from_blobs(random_fingerprints):
    # type: (list[bytes]) -> None
    """An index loads from plain blobs."""
    hashes = b"".join(random_fingerprints[:4])
    index = load_index("\n".join(NAMES).encode("utf-8"), hashes)
    assert len(index) == 4
    assert index.names == tuple(NAMES)
    for i, fp in enumerate(random_fingerprints[:4]):
        assert index.fingerprint_at(i).tobytes() == fp


def test_load_discards_blank_lines(random_fingerprints):
    # type: (list[bytes]) -> None
    """Blank lines and carriage returns in names are ignored."""
    blob = b"lucide:home\n\nmdi:home\r\n\n"
    index = IconIndex.load(blob, b"".join(random_fingerprints[:2]))
    assert index.names == ("lucide:home", "mdi:home")


def test_load_length_mismatch():
    # type: () -> None
    """Mismatched blobs raise CorruptIndexError."""
    with pytest.raises(CorruptIndexError):
        IconIndex.load(b"a:b\nc:d", bytes(128))
    with pytest.raises(CorruptIndexError):
        IconIndex.load(b"a:b", bytes(129))


def test_load_invalid_utf8():
    # type: () -> None
    """Undecodable names raise CorruptIndexError."""
    with pytest.raises(CorruptIndexError):
        IconIndex.load(b"\xff\xfe", bytes(128))


def test_empty_index():
    # type: () -> None
    """Empty blobs load as an empty index."""
    index = IconIndex.load(b"", b"")
    assert len(index) == 0
    assert index.sets == ()


def test_gzip_roundtrip(sample_index):
    # type: (IconIndex) -> None
    """Compressed artifacts load back to the same index."""
    names, hashes = sample_index.to_blobs()
    loaded = IconIndex.from_gzip(gzip.compress(names.encode("utf-8")), gzip.compress(hashes))
    assert loaded.names == sample_index.names
    assert loaded.hashes.tobytes() == sample_index.hashes.tobytes()


def test_from_gzip_corrupt():
    # type: () -> None
    """Undecompressable artifacts raise CorruptIndexError."""
    with pytest.raises(CorruptIndexError):
        IconIndex.from_gzip(b"not gzip", gzip.compress(b""))


def test_write_and_read(tmp_path, sample_index):
    # type: (Path, IconIndex) -> None
    """Indexes round trip through a directory with metadata."""
    sizes = sample_index.write(tmp_path / "core", metadata={"variant": "core"})
    assert set(sizes) == {NAMES_FILE, HASHES_FILE, METADATA_FILE}
    loaded = IconIndex.read(tmp_path / "core")
    assert loaded.names == sample_index.names
    assert loaded.hashes.tobytes() == sample_index.hashes.tobytes()

    meta = json.loads((tmp_path / "core" / METADATA_FILE).read_text())
    assert meta["variant"] == "core"
    assert meta["icons"] == 4
    assert meta["prefixes"] == ["lucide", "mdi", "tabler"]
    assert meta["version"] == 1
    assert "created" in meta


def test_read_uses_recorded_width(tmp_path):
    # type: (Path) -> None
    """read uses the fingerprint width recorded in metadata."""
    index = IconIndex(["mdi:a", "mdi:b"], bytes(range(16)), nbytes=8)
    index.write(tmp_path, metadata={})
    loaded = IconIndex.read(tmp_path)
    assert loaded.nbytes == 8
    assert len(loaded) == 2


def test_write_without_metadata(tmp_path, sample_index):
    # type: (Path, IconIndex) -> None
    """No metadata file is written unless requested."""
    sample_index.write(tmp_path)
    assert not (tmp_path / METADATA_FILE).exists()


def test_read_missing(tmp_path):
    # type: (Path) -> None
    """Reading a missing index raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        IconIndex.read(tmp_path)


def test_hashes_read_only(sample_index):
    # type: (IconIndex) -> None
    """The fingerprint buffer is read-only."""
    with pytest.raises(ValueError):
        sample_index.hashes[0] = 1
    with pytest.raises(ValueError):
        sample_index.fingerprint_at(0)[0] = 1


def test_fingerprint_at_is_view(sample_index):
    # type: (IconIndex) -> None
    """fingerprint_at returns a view, not a copy."""
    view = sample_index.fingerprint_at(2)
    assert view.base is not None
    assert sample_index.offset_of(2) == 256
    with pytest.raises(IndexError):
        sample_index.fingerprint_at(4)


def test_catalog_sets(sample_index):
    # type: (IconIndex) -> None
    """Set ids are derived once per record."""
    assert sample_index.sets == ("lucide", "mdi", "tabler")
    assert list(sample_index.set_ids) == [0, 1, 0, 2]
    assert [sample_index.prefix_at(i) for i in range(4)] == ["lucide", "mdi", "lucide", "tabler"]


def test_set_mask(sample_index):
    # type: (IconIndex) -> None
    """set_mask selects records of the given sets."""
    assert list(sample_index.set_mask(["lucide"])) == [True, False, True, False]
    assert list(sample_index.set_mask({"mdi", "tabler", "unknown"})) == [False, True, False, True]
    assert not sample_index.set_mask(["unknown"]).any()


def test_iteration(sample_index, random_fingerprints):
    # type: (IconIndex, list[bytes]) -> None
    """Iteration yields names with their fingerprints."""
    records = list(sample_index)
    assert records[1] == ("mdi:home", random_fingerprints[1])


def test_accepts_numpy_and_bytearray(random_fingerprints):
    # type: (list[bytes]) -> None
    """Hash buffers may be numpy arrays or bytearrays."""
    data = b"".join(random_fingerprints[:2])
    from_array = IconIndex(["a:b", "c:d"], np.frombuffer(data, dtype=np.uint8).copy())
    from_bytearray = IconIndex(["a:b", "c:d"], bytearray(data))
    assert from_array.hashes.tobytes() == from_bytearray.hashes.tobytes() == data


def test_custom_record_width():
    # type: () -> None
    """Record widths other than 128 are supported."""
    index = IconIndex.load(b"a:b\nc:d", bytes(16), nbytes=8)
    assert len(index) == 2
    assert index.nbytes == 8


def test_writer_finalize(random_fingerprints):
    # type: (list[bytes]) -> None
    """IndexWriter emits blobs in record order."""
    writer = IndexWriter()
    writer.add("lucide:home", random_fingerprints[0])
    writer.extend([("mdi:home", random_fingerprints[1])])
    assert len(writer) == 2
    names, hashes = writer.finalize()
    assert names == "lucide:home\nmdi:home"
    assert hashes == random_fingerprints[0] + random_fingerprints[1]
    index = writer.build()
    assert index.names == ("lucide:home", "mdi:home")


def test_writer_rejects_bad_records():
    # type: () -> None
    """IndexWriter rejects bad names and widths."""
    writer = IndexWriter()
    with pytest.raises(FingerprintLengthError):
        writer.add("lucide:home", bytes(64))
    with pytest.raises(ValidationError):
        writer.add("bad\nname", bytes(128))
    with pytest.raises(ValidationError):
        writer.add("", bytes(128))
    assert len(writer) == 0
