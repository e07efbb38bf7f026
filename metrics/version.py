# metrics/version.py
"""
Server version resolution.

The version drives every query-selection decision, so parsing is strict:
an unparsable string raises ``VersionError`` instead of falling back to a
default.
"""
import functools
import logging
import re
from dataclasses import dataclass

from metrics.errors import QueryError, VersionError

logger = logging.getLogger("pgcollector.metrics.version")

VERSION_QUERY = "SHOW server_version"

# Distribution packages append a parenthetical tag, e.g. "9.6.1 (Ubuntu 9.6.1-1.pgdg16.04+1)"
_VENDOR_SUFFIX = re.compile(r"\s*\((?:Ubuntu|Debian)")

_TOLERANT_VERSION = re.compile(
    r"^v?(?P<core>\d+(?:\.\d+){0,2})"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)


@functools.total_ordering
@dataclass(frozen=True)
class Version:
    major: int
    minor: int = 0
    patch: int = 0
    prerelease: str = ""

    def _key(self):
        # A release sorts after any of its pre-releases
        if not self.prerelease:
            return (self.major, self.minor, self.patch, 1, ())
        identifiers = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in self.prerelease.split(".")
        )
        return (self.major, self.minor, self.patch, 0, identifiers)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())

    def __str__(self):
        core = f"{self.major}.{self.minor}.{self.patch}"
        return f"{core}-{self.prerelease}" if self.prerelease else core


def strip_vendor_suffix(raw: str) -> str:
    """Cut an Ubuntu/Debian packaging parenthetical off a version string."""
    match = _VENDOR_SUFFIX.search(raw)
    if match:
        return raw[:match.start()]
    return raw


def parse_version(raw: str) -> Version:
    """
    Tolerant semantic-version parse: a leading "v" and missing minor/patch
    components are accepted ("12" -> 12.0.0, "12.3" -> 12.3.0), build
    metadata is dropped.
    """
    if raw is None:
        raise VersionError("server version is empty")

    text = strip_vendor_suffix(raw).strip()
    match = _TOLERANT_VERSION.match(text)
    if not match:
        raise VersionError(f"unable to parse server version {raw!r}")

    parts = [int(p) for p in match.group("core").split(".")]
    parts += [0] * (3 - len(parts))
    return Version(parts[0], parts[1], parts[2], match.group("prerelease") or "")


def collect_version(connection) -> Version:
    """Read ``server_version`` over ``connection`` and parse it."""
    try:
        rows = connection.query(VERSION_QUERY)
    except QueryError as e:
        raise VersionError(f"error collecting version number: {e}") from e

    if not rows:
        raise VersionError("no rows returned from version query")

    raw = rows[0].get("server_version")
    version = parse_version(raw)
    logger.debug("Server version %r resolved to %s", raw, version)
    return version


def version_in_range(version: Version, min_version=None, max_version=None) -> bool:
    """True when ``min_version <= version < max_version``; open bounds are None."""
    if min_version is not None and version < min_version:
        return False
    if max_version is not None and version >= max_version:
        return False
    return True
