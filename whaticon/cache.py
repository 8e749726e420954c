"""
Local cache of prebuilt index variants.

Prebuilt indexes are published as release assets of a GitHub repository under
tags starting with ``index-v``. Each variant consists of
``<variant>-names.txt.gz``, ``<variant>-hashes.bin.gz`` and
``<variant>-metadata.json`` and is cached in ``<cache_dir>/<variant>/``.
"""

import json
import shutil
from pathlib import Path

import httpx
from loguru import logger

from whaticon.errors import DownloadError, ValidationError
from whaticon.store import HASHES_FILE, METADATA_FILE, NAMES_FILE, IconIndex


__all__ = ["INDEX_VARIANTS", "RELEASE_TAG_PREFIX", "IndexCache"]


INDEX_VARIANTS = ("core", "popular", "full")
RELEASE_TAG_PREFIX = "index-v"
GITHUB_API = "https://api.github.com"


class IndexCache:
    """Downloads and loads prebuilt index variants."""

    def __init__(self, cache_dir=None, release_repo=None, client=None, timeout=None):
        # type: (str|os.PathLike|None, str|None, httpx.Client|None, float|None) -> None
        """
        :param cache_dir: Cache root (defaults to settings)
        :param release_repo: ``owner/name`` of the repository publishing releases
        :param client: Preconfigured httpx client
        :param timeout: HTTP timeout in seconds
        """
        from whaticon.settings import whaticon_settings

        self.cache_dir = Path(cache_dir or whaticon_settings.cache_dir)
        self.release_repo = release_repo or whaticon_settings.release_repo
        self.timeout = timeout or whaticon_settings.http_timeout
        self._client = client  # type: httpx.Client|None
        # Clients passed in belong to the caller and are left open
        self._owns_client = client is None

    @property
    def client(self):
        # type: () -> httpx.Client
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def variant_dir(self, variant):
        # type: (str) -> Path
        if variant not in INDEX_VARIANTS:
            raise ValidationError(f"Unknown index variant {variant!r}, expected one of {', '.join(INDEX_VARIANTS)}")
        return self.cache_dir / variant

    def is_downloaded(self, variant):
        # type: (str) -> bool
        directory = self.variant_dir(variant)
        return (directory / NAMES_FILE).exists() and (directory / HASHES_FILE).exists()

    def latest_tag(self):
        # type: () -> str
        """
        Tag of the newest index release.

        :raises DownloadError: If releases cannot be listed or none is an index release
        """
        url = f"{GITHUB_API}/repos/{self.release_repo}/releases"
        try:
            response = self.client.get(url)
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to fetch releases: {e}") from e
        if not response.is_success:
            raise DownloadError(f"Failed to fetch releases: {response.status_code}")
        for release in response.json():
            tag = release.get("tag_name", "")
            if tag.startswith(RELEASE_TAG_PREFIX):
                return tag
        raise DownloadError("No index release found")

    def _download_file(self, url, dest):
        # type: (str, Path) -> None
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(dest.name + ".part")
        try:
            with self.client.stream("GET", url) as response:
                if not response.is_success:
                    raise DownloadError(f"Failed to download {url}: {response.status_code}")
                with partial.open("wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
            partial.replace(dest)
        except (httpx.HTTPError, OSError) as e:
            raise DownloadError(f"Failed to download {url}: {e}") from e
        finally:
            partial.unlink(missing_ok=True)

    def download(self, variant, progress=None):
        # type: (str, Callable[[str], None]|None) -> dict
        """
        Download a variant from the latest index release.

        :param variant: Variant name (core, popular, full)
        :param progress: Receives human readable status messages
        :return: Variant metadata
        :raises DownloadError: If the release or an artifact cannot be fetched
        """
        log = progress or logger.info
        directory = self.variant_dir(variant)

        log("Finding latest index release...")
        tag = self.latest_tag()
        log(f"Latest: {tag}")

        base_url = f"https://github.com/{self.release_repo}/releases/download/{tag}"
        log(f"Downloading {variant} index...")
        for filename in (NAMES_FILE, HASHES_FILE, METADATA_FILE):
            log(f"  {variant}-{filename}")
            self._download_file(f"{base_url}/{variant}-{filename}", directory / filename)

        metadata = self.read_metadata(variant) or {}
        log(f"Downloaded {metadata.get('icons', '?')} icons from {len(metadata.get('prefixes', []))} sets")
        return metadata

    def read_metadata(self, variant):
        # type: (str) -> dict|None
        path = self.variant_dir(variant) / METADATA_FILE
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def load(self, variant):
        # type: (str) -> IconIndex|None
        """Load a cached variant, or None if it was not downloaded."""
        if not self.is_downloaded(variant):
            return None
        return IconIndex.read(self.variant_dir(variant))

    def ensure(self, variant, progress=None):
        # type: (str, Callable[[str], None]|None) -> IconIndex
        """Load a cached variant, downloading it first if needed."""
        index = self.load(variant)
        if index is not None:
            return index
        self.download(variant, progress)
        index = self.load(variant)
        if index is None:
            raise DownloadError("Failed to load index after download")
        return index

    def clear(self):
        # type: () -> None
        """Delete every cached variant."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            logger.info(f"Removed index cache {self.cache_dir}")

    def close(self):
        # type: () -> None
        """Close the HTTP client if it was created here."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
