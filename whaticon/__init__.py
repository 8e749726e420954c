"""Find visually similar vector icons by perceptual fingerprint."""

from platformdirs import PlatformDirs
from importlib import metadata

__package_name__ = "whaticon"
__author__ = "whaticon"
__version__ = metadata.version(__package_name__)
dirs = PlatformDirs(appname=__package_name__, appauthor=__author__)

from whaticon.settings import WhaticonSettings, whaticon_settings  # noqa: E402
from whaticon.fingerprint import compute_fingerprint, hamming_distance, similarity  # noqa: E402
from whaticon.models import IconMatch, IconSource, MatchOptions  # noqa: E402
from whaticon.store import IconIndex, IndexWriter, load_index  # noqa: E402
from whaticon.matching import find_matches, match_svg  # noqa: E402
from whaticon.builder import build_index  # noqa: E402

__all__ = [
    "IconIndex",
    "IconMatch",
    "IconSource",
    "IndexWriter",
    "MatchOptions",
    "WhaticonSettings",
    "build_index",
    "compute_fingerprint",
    "find_matches",
    "hamming_distance",
    "load_index",
    "match_svg",
    "similarity",
    "whaticon_settings",
]
