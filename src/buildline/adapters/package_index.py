"""Package index adapters.

- `SimpleIndexClient`: queries a PEP 691 JSON simple index with httpx and
  keeps answers in the shared `ResolutionCache`. In offline mode only cached
  answers are used.
- `InMemoryPackageIndex`: a fixed ``{repository: {name: versions}}`` map, for
  tests and air-gapped dry runs.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from buildline.domain.model import normalize_name
from buildline.interfaces.package_index import (
    DistributionNotFound,
    IndexUnavailable,
    PackageIndex,
)

from .resolution_cache import ResolutionCache

logger = logging.getLogger(__name__)

SIMPLE_JSON = "application/vnd.pypi.simple.v1+json"
CACHE_NAMESPACE = "index"

_SDIST_SUFFIXES = (".tar.gz", ".tar.bz2", ".tgz", ".zip")
_HTTP_NOT_FOUND = 404


def _versions_from_files(name: str, files: list[dict[str, Any]]) -> list[str]:
    """Derive versions from distribution filenames (pre-PEP 700 indexes)."""
    pattern = "[-_.]+".join(re.escape(p) for p in normalize_name(name).split("-"))
    prefix = re.compile(rf"^{pattern}-", re.I)
    versions: list[str] = []
    for entry in files:
        filename = str(entry.get("filename", ""))
        if filename.endswith(".whl"):
            parts = filename.split("-")
            candidate = parts[1] if len(parts) > 1 else ""
        elif (suffix := next((s for s in _SDIST_SUFFIXES if filename.endswith(s)), None)):
            stem = filename[: -len(suffix)]
            candidate = prefix.sub("", stem, count=1) if prefix.match(stem) else ""
        else:
            continue
        if candidate and candidate not in versions:
            versions.append(candidate)
    return versions


class SimpleIndexClient(PackageIndex):
    """PEP 691 simple index client with a shared on-disk cache.

    Args:
        cache: Cache shared by every module of a build.
        client: httpx client to use; one with a 30 s timeout is created if omitted.
        offline: When True, never touch the network.
    """

    def __init__(
        self,
        cache: ResolutionCache,
        *,
        client: httpx.Client | None = None,
        offline: bool = False,
    ) -> None:
        self._cache = cache
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(30.0), follow_redirects=True
        )
        self._offline = offline

    def close(self) -> None:
        self._client.close()

    def versions(self, repository: str, name: str) -> list[str]:
        """Fetch the version list, refreshing the cache when online."""
        if self._offline:
            if (cached := self._cached(repository, name)) is None:
                raise IndexUnavailable(
                    f"offline mode and no cached metadata for {name!r} from {repository}"
                )
            return cached
        versions = self._fetch(repository, name)
        self._cache.put(CACHE_NAMESPACE, self._key(repository, name), versions)
        return versions

    def has_version(self, repository: str, name: str, version: str) -> bool:
        """Answer from the cache when it already lists ``version``.

        Released versions never disappear from an index, so a positive cached
        answer is final and needs no network round trip.
        """
        cached = self._cached(repository, name)
        if cached is not None and version in cached:
            return True
        return super().has_version(repository, name, version)

    # --- Internal Helpers ---

    @staticmethod
    def _key(repository: str, name: str) -> str:
        return f"{repository.rstrip('/')}/{normalize_name(name)}"

    def _cached(self, repository: str, name: str) -> list[str] | None:
        value = self._cache.get(CACHE_NAMESPACE, self._key(repository, name))
        return list(value) if value is not None else None

    def _fetch(self, repository: str, name: str) -> list[str]:
        url = f"{repository.rstrip('/')}/{normalize_name(name)}/"
        logger.debug("GET %s", url)
        try:
            response = self._client.get(url, headers={"Accept": SIMPLE_JSON})
        except httpx.HTTPError as e:
            raise IndexUnavailable(f"cannot reach {repository}: {e}") from e
        if response.status_code == _HTTP_NOT_FOUND:
            raise DistributionNotFound(repository, name)
        try:
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise IndexUnavailable(f"bad response from {url}: {e}") from e
        if "versions" in payload:
            return [str(v) for v in payload["versions"]]
        return _versions_from_files(name, payload.get("files", []))


class InMemoryPackageIndex(PackageIndex):
    """Package index backed by a literal mapping."""

    def __init__(self, contents: dict[str, dict[str, list[str]]] | None = None) -> None:
        self._contents: dict[str, dict[str, list[str]]] = {}
        for repository, packages in (contents or {}).items():
            for name, versions in packages.items():
                self.add(repository, name, *versions)

    def add(self, repository: str, name: str, *versions: str) -> None:
        packages = self._contents.setdefault(repository.rstrip("/"), {})
        packages.setdefault(normalize_name(name), []).extend(versions)

    def versions(self, repository: str, name: str) -> list[str]:
        packages = self._contents.get(repository.rstrip("/"), {})
        try:
            return list(packages[normalize_name(name)])
        except KeyError:
            raise DistributionNotFound(repository, name) from None
