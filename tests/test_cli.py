"""Tests for the whaticon command line interface."""

import json
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

import whaticon
from conftest import PatternRasterizer, make_icons
from whaticon.builder import build_variant
from whaticon.cli import app


runner = CliRunner()


@pytest.fixture(autouse=True)
def pattern_renderer(monkeypatch):
    # type: (pytest.MonkeyPatch) -> PatternRasterizer
    """Route every default rendering through the deterministic test renderer."""
    rasterizer = PatternRasterizer()
    monkeypatch.setattr("whaticon.sprite.default_rasterizer", lambda: rasterizer)
    return rasterizer


@pytest.fixture
def index_dir(tmp_path, pattern_renderer):
    # type: (Path, PatternRasterizer) -> Path
    icons = make_icons(20, prefix="lucide") + make_icons(20, prefix="mdi")
    build_variant("custom", icons, tmp_path, rasterizer=pattern_renderer)
    return tmp_path / "custom"


@pytest.fixture
def query_file(tmp_path):
    # type: (Path) -> Path
    path = tmp_path / "query.svg"
    path.write_text(make_icons(6, prefix="lucide")[5][1], encoding="utf-8")
    return path


def test_version():
    # type: () -> None
    """version prints the package version."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"whaticon version {whaticon.__version__}" in result.output


def test_help():
    # type: () -> None
    """Help lists every command."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("match", "build", "download", "cache"):
        assert command in result.output


def test_match_file(index_dir, query_file):
    # type: (Path, Path) -> None
    """Matching a file prints ranked matches."""
    result = runner.invoke(app, ["match", str(query_file), "--index-dir", str(index_dir), "-n", "3"])
    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    # lucide:icon-5 and mdi:icon-5 share the same body and are tied at 100%
    assert lines[0] == "100.0%  lucide:icon-5"
    assert lines[1] == "100.0%  mdi:icon-5"


def test_match_prefer(index_dir, query_file):
    # type: (Path, Path) -> None
    """--prefer moves preferred sets first among ties."""
    result = runner.invoke(app, ["match", str(query_file), "--index-dir", str(index_dir), "--prefer", "mdi"])
    assert result.exit_code == 0, result.output
    assert result.output.strip().splitlines()[0] == "100.0%  mdi:icon-5"


def test_match_prefix(index_dir, query_file):
    # type: (Path, Path) -> None
    """--prefix limits results to the given sets."""
    result = runner.invoke(app, ["match", str(query_file), "--index-dir", str(index_dir), "-p", "mdi"])
    assert result.exit_code == 0, result.output
    assert "lucide:" not in result.output
    assert "mdi:icon-5" in result.output


def test_match_json(index_dir, query_file):
    # type: (Path, Path) -> None
    """--json prints name and similarity objects."""
    result = runner.invoke(app, ["match", str(query_file), "--index-dir", str(index_dir), "--json", "-n", "1"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data == [{"name": "lucide:icon-5", "similarity": 1.0}]


def test_match_no_results(index_dir, tmp_path):
    # type: (Path, Path) -> None
    """A query without matches prints a notice."""
    path = tmp_path / "other.svg"
    path.write_text('<svg viewBox="0 0 24 24"><circle r="3"/></svg>', encoding="utf-8")
    result = runner.invoke(app, ["match", str(path), "--index-dir", str(index_dir)])
    assert result.exit_code == 0, result.output
    assert "No matches found above threshold." in result.output


def test_match_no_input():
    # type: () -> None
    """match without input fails with a hint."""
    result = runner.invoke(app, ["match"])
    assert result.exit_code == 1
    assert "No input provided" in result.output


def test_match_missing_file(tmp_path):
    # type: (Path) -> None
    """A missing query file fails cleanly."""
    result = runner.invoke(app, ["match", str(tmp_path / "missing.svg")])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_match_invalid_icon_name():
    # type: () -> None
    """Malformed --icon names fail cleanly."""
    result = runner.invoke(app, ["match", "--icon", "nocolon"])
    assert result.exit_code == 1
    assert "Invalid icon name" in result.output


def test_match_invalid_threshold(index_dir, query_file):
    # type: (Path, Path) -> None
    """Out of range thresholds fail cleanly."""
    result = runner.invoke(app, ["match", str(query_file), "--index-dir", str(index_dir), "-t", "2"])
    assert result.exit_code == 1
    assert "Error" in result.output


def test_match_invalid_svg(index_dir, tmp_path):
    # type: (Path, Path) -> None
    """Unparsable query SVG fails cleanly."""
    path = tmp_path / "bad.svg"
    path.write_text("this is not svg", encoding="utf-8")
    result = runner.invoke(app, ["match", str(path), "--index-dir", str(index_dir)])
    assert result.exit_code == 1
    assert "No <svg> element" in result.output


def test_match_corrupt_index(tmp_path, query_file):
    # type: (Path, Path) -> None
    """A corrupt index fails cleanly."""
    import gzip

    (tmp_path / "names.txt.gz").write_bytes(gzip.compress(b"a:b\nc:d"))
    (tmp_path / "hashes.bin.gz").write_bytes(gzip.compress(bytes(128)))
    result = runner.invoke(app, ["match", str(query_file), "--index-dir", str(tmp_path)])
    assert result.exit_code == 1
    assert "corrupt" in result.output


def test_build(tmp_path):
    # type: (Path) -> None
    """build writes the index and the manifest."""
    collection = {
        "prefix": "demo",
        "icons": {f"icon-{i}": {"body": f'<rect x="{i}" width="3" height="{i + 1}"/>'} for i in range(12)},
    }
    source = tmp_path / "icons.json"
    source.write_text(json.dumps(collection), encoding="utf-8")
    out = tmp_path / "dist"

    result = runner.invoke(app, ["build", str(source), "--out", str(out), "--name", "demo", "--batch-size", "5"])
    assert result.exit_code == 0, result.output
    assert (out / "demo" / "names.txt.gz").exists()
    assert (out / "demo" / "hashes.bin.gz").exists()
    manifest = json.loads((out / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["variants"]["demo"]["icons"] == 12


def test_build_without_icons(tmp_path):
    # type: (Path) -> None
    """build fails when no collection could be loaded."""
    source = tmp_path / "broken.json"
    source.write_text("{}", encoding="utf-8")
    result = runner.invoke(app, ["build", str(source), "--out", str(tmp_path / "dist")])
    assert result.exit_code == 1
    assert "No icons loaded" in result.output


def test_cache_listing(tmp_path, monkeypatch):
    # type: (Path, pytest.MonkeyPatch) -> None
    """cache lists every variant."""
    monkeypatch.setattr("whaticon.settings.whaticon_settings.cache_dir", tmp_path)
    result = runner.invoke(app, ["cache"])
    assert result.exit_code == 0, result.output
    assert "core" in result.output
    assert "popular" in result.output


def test_download_unknown_variant(tmp_path, monkeypatch):
    # type: (Path, pytest.MonkeyPatch) -> None
    """download rejects unknown variants."""
    monkeypatch.setattr("whaticon.settings.whaticon_settings.cache_dir", tmp_path)
    result = runner.invoke(app, ["download", "everything"])
    assert result.exit_code == 1
    assert "Unknown index variant" in result.output


def test_match_renderer_unavailable(index_dir, query_file, monkeypatch):
    # type: (Path, Path, pytest.MonkeyPatch) -> None
    """A missing renderer library fails cleanly instead of crashing."""
    from whaticon.raster import CairoRasterizer

    monkeypatch.setattr("whaticon.sprite.default_rasterizer", lambda: CairoRasterizer())
    monkeypatch.setitem(sys.modules, "cairosvg", None)
    result = runner.invoke(app, ["match", str(query_file), "--index-dir", str(index_dir)])
    assert result.exit_code == 1
    assert "renderer unavailable" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)


def write_collection(path, prefix, count):
    # type: (Path, str, int) -> None
    """Write an Iconify JSON collection of ``count`` distinct icons."""
    icons = {f"icon-{i}": {"body": f'<rect x="{i}" width="2" height="{i + 1}"/>'} for i in range(count)}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"prefix": prefix, "icons": icons}), encoding="utf-8")


def test_build_variant_from_collections_dir(tmp_path):
    # type: (Path) -> None
    """build --variant picks the variant's installed collections."""
    collections_dir = tmp_path / "iconify-json"
    write_collection(collections_dir / "lucide" / "icons.json", "lucide", 4)
    write_collection(collections_dir / "tabler.json", "tabler", 3)
    write_collection(collections_dir / "mdi.json", "mdi", 5)
    out = tmp_path / "dist"

    result = runner.invoke(
        app, ["build", "--variant", "core", "--collections-dir", str(collections_dir), "--out", str(out)]
    )
    assert result.exit_code == 0, result.output
    assert "heroicons: not installed" in result.output
    manifest = json.loads((out / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["variants"]["core"]["icons"] == 7
    metadata = json.loads((out / "core" / "metadata.json").read_text(encoding="utf-8"))
    assert metadata["prefixes"] == ["lucide", "tabler"]


def test_build_unknown_variant(tmp_path):
    # type: (Path) -> None
    """build rejects unknown variants."""
    result = runner.invoke(app, ["build", "--variant", "huge", "--collections-dir", str(tmp_path)])
    assert result.exit_code == 1
    assert "Unknown index variant" in result.output


def test_build_without_sources():
    # type: () -> None
    """build without collections or variant fails."""
    result = runner.invoke(app, ["build"])
    assert result.exit_code == 1
    assert "No icons loaded" in result.output
