"""
Icon catalog access: Iconify API resolution and Iconify JSON collections.

Resolving ``prefix:identifier`` names is delegated to the Iconify API. No
retries are attempted; failures surface as ``ResolutionError``.
"""

import json
from pathlib import Path

import httpx
from loguru import logger

from whaticon.errors import IconNotFoundError, ResolutionError, ValidationError
from whaticon.models import IconSource, parse_icon_name


__all__ = [
    "CORE_SETS",
    "POPULAR_SETS",
    "VARIANT_SETS",
    "IconifyClient",
    "find_collection",
    "load_collection",
    "variant_prefixes",
]


CORE_SETS = ["lucide", "heroicons", "tabler"]

POPULAR_SETS = [
    "lucide",
    "mdi",
    "heroicons",
    "tabler",
    "ph",
    "ri",
    "bi",
    "fa6-solid",
    "fa6-regular",
    "ion",
    "carbon",
    "fluent",
]

# The "full" variant covers every collection listed by the API
VARIANT_SETS = {"core": CORE_SETS, "popular": POPULAR_SETS}


class IconifyClient:
    """HTTP client for the Iconify API."""

    def __init__(self, api_url=None, timeout=None, client=None):
        # type: (str|None, float|None, httpx.Client|None) -> None
        """
        :param api_url: API base URL (defaults to settings)
        :param timeout: Request timeout in seconds (defaults to settings)
        :param client: Preconfigured httpx client (used as is)
        """
        from whaticon.settings import whaticon_settings

        self.api_url = (api_url or whaticon_settings.api_url).rstrip("/")
        self.timeout = timeout or whaticon_settings.http_timeout
        self._client = client  # type: httpx.Client|None
        # Clients passed in belong to the caller and are left open
        self._owns_client = client is None

    @property
    def client(self):
        # type: () -> httpx.Client
        if self._client is None:
            self._client = httpx.Client(base_url=self.api_url, timeout=self.timeout, follow_redirects=True)
        return self._client

    def _get(self, url, what):
        # type: (str, str) -> httpx.Response
        try:
            return self.client.get(url)
        except httpx.HTTPError as e:
            raise ResolutionError(f"Failed to fetch {what}: {e}") from e

    def resolve(self, name):
        # type: (str) -> str
        """
        Fetch the SVG source of an icon.

        :param name: Icon name like ``lucide:home``
        :return: SVG source text
        :raises InvalidIconNameError: If ``name`` is not ``prefix:identifier``
        :raises IconNotFoundError: If the API does not know the icon
        :raises ResolutionError: On any other lookup failure
        """
        prefix, identifier = parse_icon_name(name)
        response = self._get(f"{self.api_url}/{prefix}/{identifier}.svg", name)
        if response.status_code == 404:
            raise IconNotFoundError(name)
        if not response.is_success:
            raise ResolutionError(f"Failed to fetch icon {name}: {response.status_code}")
        svg = response.text
        if "<svg" not in svg:
            raise IconNotFoundError(name, response.status_code)
        logger.debug(f"Resolved {name} ({len(svg)} bytes)")
        return svg

    def fetch_svg(self, url):
        # type: (str) -> str
        """
        Fetch SVG source from an arbitrary URL.

        :raises ResolutionError: If the request fails
        """
        response = self._get(url, url)
        if not response.is_success:
            raise ResolutionError(f"Failed to fetch {url}: {response.status_code}")
        return response.text

    def list_collections(self):
        # type: () -> list[str]
        """Sorted prefixes of every icon set known to the API."""
        response = self._get(f"{self.api_url}/collections", "collections")
        if not response.is_success:
            raise ResolutionError(f"Failed to fetch collections: {response.status_code}")
        return sorted(response.json())

    def close(self):
        # type: () -> None
        """Close the HTTP client if it was created here."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def load_collection(source):
    # type: (dict|str|os.PathLike) -> list[IconSource]
    """
    Convert an Iconify JSON collection into indexable icons.

    Icon names are ``{prefix}:{icon}``. Icon size defaults to the collection size,
    then to 24x24.

    :param source: Parsed collection or path to an ``icons.json`` file
    :return: Icons in collection order
    :raises ValidationError: If the collection has no prefix or icons
    """
    if isinstance(source, dict):
        data = source
    else:
        data = json.loads(Path(source).read_text(encoding="utf-8"))

    prefix = data.get("prefix")
    icons = data.get("icons")
    if not prefix or not isinstance(icons, dict):
        raise ValidationError("Iconify collection requires 'prefix' and 'icons'")

    default_width = data.get("width") or 24
    default_height = data.get("height") or 24

    result = []
    for name, icon in icons.items():
        w = icon.get("width") or default_width
        h = icon.get("height") or default_height
        svg = (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{w}" height="{h}" viewBox="0 0 {w} {h}">'
            f'{icon.get("body", "")}</svg>'
        )
        result.append(IconSource(name=f"{prefix}:{name}", svg=svg))
    logger.debug(f"Loaded {len(result):,} icons from collection {prefix!r}")
    return result


def variant_prefixes(variant, client=None):
    # type: (str, IconifyClient|None) -> list[str]
    """
    Icon set prefixes indexed by a prebuilt variant.

    ``core`` and ``popular`` are fixed lists; ``full`` is every collection the
    Iconify API knows about.

    :param variant: Variant name (core, popular, full)
    :param client: Client used to list collections for ``full``
    :raises ValidationError: If the variant is unknown
    :raises ResolutionError: If the collection list cannot be fetched
    """
    if variant in VARIANT_SETS:
        return list(VARIANT_SETS[variant])
    if variant != "full":
        raise ValidationError(f"Unknown index variant {variant!r}, expected one of core, popular, full")
    if client is not None:
        return client.list_collections()
    with IconifyClient() as client:
        return client.list_collections()


def find_collection(prefix, collections_dir):
    # type: (str, str|os.PathLike) -> Path|None
    """
    Locate the Iconify JSON file of an icon set.

    Checks ``<dir>/<prefix>/icons.json`` (the layout of ``@iconify-json/*``
    packages) and then ``<dir>/<prefix>.json``.

    :return: Path of the collection file, or None if the set is not installed
    """
    base = Path(collections_dir)
    for path in (base / prefix / "icons.json", base / f"{prefix}.json"):
        if path.is_file():
            return path
    return None
