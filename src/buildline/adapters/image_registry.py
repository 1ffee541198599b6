"""OCI registry client for base images.

Implements the read side of the OCI distribution API with httpx:

- anonymous bearer-token negotiation (``WWW-Authenticate: Bearer realm=...``),
- manifest lookup by tag or digest, with index/manifest-list platform selection,
- config and layer blob download, verified against their sha256 digests.

Manifests and blobs land in the content-addressed file store, and the mapping
``reference@platform -> manifest digest`` goes to the resolution cache, so an
offline build can reuse a base image fetched earlier.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import tempfile
from dataclasses import dataclass
from typing import Any

import httpx

from buildline.interfaces.filestore import DigestMismatch, FileStore
from buildline.interfaces.image_registry import (
    BaseImage,
    BaseImageSource,
    ImageNotFound,
    LayerRef,
    RegistryError,
)

from .resolution_cache import ResolutionCache

logger = logging.getLogger(__name__)

OCI_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
DOCKER_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
MANIFEST_ACCEPT = ", ".join([OCI_INDEX, OCI_MANIFEST, DOCKER_LIST, DOCKER_MANIFEST])
INDEX_TYPES = frozenset({OCI_INDEX, DOCKER_LIST})

DOCKER_HUB = "registry-1.docker.io"
CACHE_NAMESPACE = "images"
CHUNK_SIZE = 1024 * 1024

_HTTP_UNAUTHORIZED = 401
_HTTP_NOT_FOUND = 404
_AUTH_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class ImageReference:
    """A parsed image reference such as ``gcr.io/distroless/python3:nonroot``."""

    registry: str
    repository: str
    tag: str = "latest"
    digest: str | None = None

    @property
    def target(self) -> str:
        return self.digest or self.tag

    def __str__(self) -> str:
        suffix = f"@{self.digest}" if self.digest else f":{self.tag}"
        return f"{self.registry}/{self.repository}{suffix}"


def parse_reference(reference: str) -> ImageReference:
    """Parse an image reference, applying Docker Hub defaults.

    Raises:
        RegistryError: If the reference is empty or malformed.
    """
    remainder = reference.strip()
    if not remainder:
        raise RegistryError("empty image reference")

    digest = None
    if "@" in remainder:
        remainder, digest = remainder.split("@", 1)

    first, _, rest = remainder.partition("/")
    if rest and ("." in first or ":" in first or first == "localhost"):
        registry, path = first, rest
    else:
        registry, path = DOCKER_HUB, remainder
        if "/" not in path:
            path = f"library/{path}"

    tag = "latest"
    name, sep, maybe_tag = path.rpartition(":")
    if sep and "/" not in maybe_tag:
        path, tag = name, maybe_tag
    if not path or path != path.lower():
        raise RegistryError(f"invalid repository in image reference {reference!r}")
    return ImageReference(registry=registry, repository=path, tag=tag, digest=digest)


def _sha256_digest(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def _hex(digest: str) -> str:
    algorithm, _, value = digest.partition(":")
    if algorithm != "sha256" or not value:
        raise RegistryError(f"unsupported digest {digest!r}")
    return value


class RegistryClient(BaseImageSource):
    """Fetch base images from an OCI registry.

    Args:
        filestore: Where manifests and blobs are kept.
        cache: Cache recording which manifest a reference resolved to.
        client: httpx client; a default one is created when omitted.
        offline: When True, only previously cached images can be used.
        scheme: URL scheme for registries (``https`` except in tests).
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        filestore: FileStore,
        cache: ResolutionCache,
        *,
        client: httpx.Client | None = None,
        offline: bool = False,
        scheme: str = "https",
    ) -> None:
        self._filestore = filestore
        self._cache = cache
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(60.0), follow_redirects=True
        )
        self._offline = offline
        self._scheme = scheme
        self._tokens: dict[str, str] = {}

    def close(self) -> None:
        self._client.close()

    # --- BaseImageSource ---

    def fetch(self, reference: str, platform: str) -> BaseImage:
        ref = parse_reference(reference)
        cache_key = f"{ref}@{platform}"
        if self._offline:
            manifest_digest = self._cache.get(CACHE_NAMESPACE, cache_key)
            if manifest_digest is None or not self._filestore.exists(
                _hex(manifest_digest)
            ):
                raise RegistryError(
                    f"offline mode and base image {reference} ({platform}) is not cached"
                )
            manifest = json.loads(self._filestore.read_bytes(_hex(manifest_digest)))
        else:
            manifest_digest, manifest = self._resolve_manifest(ref, platform)
            self._cache.put(CACHE_NAMESPACE, cache_key, manifest_digest)

        config_descriptor = manifest.get("config") or {}
        config = json.loads(self._blob(ref, config_descriptor["digest"]))
        layers = tuple(
            LayerRef(
                digest=layer["digest"],
                size=int(layer.get("size", 0)),
                media_type=layer.get("mediaType", ""),
            )
            for layer in manifest.get("layers", [])
        )
        for layer in layers:
            self._ensure_blob(ref, layer.digest)
        logger.info(
            "Base image %s resolved to %s (%d layers)", reference, manifest_digest, len(layers)
        )
        return BaseImage(
            reference=reference,
            manifest_digest=manifest_digest,
            config=config,
            layers=layers,
        )

    # --- Manifests ---

    def _resolve_manifest(
        self, ref: ImageReference, platform: str
    ) -> tuple[str, dict[str, Any]]:
        digest, media_type, body = self._get_manifest(ref, ref.target)
        if media_type in INDEX_TYPES:
            digest = self._select_platform(ref, json.loads(body), platform)
            digest, media_type, body = self._get_manifest(ref, digest)
        self._filestore.store_bytes(body)
        return digest, json.loads(body)

    def _get_manifest(self, ref: ImageReference, target: str) -> tuple[str, str, bytes]:
        url = f"{self._base(ref)}/manifests/{target}"
        response = self._request(ref, url, headers={"Accept": MANIFEST_ACCEPT})
        if response.status_code == _HTTP_NOT_FOUND:
            raise ImageNotFound(f"{ref.registry}/{ref.repository}:{target} not found")
        self._raise_for_status(response, url)
        body = response.content
        digest = _sha256_digest(body)
        if target.startswith("sha256:") and digest != target:
            raise RegistryError(f"manifest digest mismatch: expected {target}, got {digest}")
        media_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not media_type:
            media_type = json.loads(body).get("mediaType", "")
        return digest, media_type, body

    @staticmethod
    def _select_platform(ref: ImageReference, index: dict[str, Any], platform: str) -> str:
        os_name, _, rest = platform.partition("/")
        architecture, _, variant = rest.partition("/")
        for entry in index.get("manifests", []):
            wanted = entry.get("platform", {})
            if wanted.get("os") != os_name or wanted.get("architecture") != architecture:
                continue
            if variant and wanted.get("variant") != variant:
                continue
            return entry["digest"]
        raise ImageNotFound(f"{ref} has no manifest for platform {platform}")

    # --- Blobs ---

    def _blob(self, ref: ImageReference, digest: str) -> bytes:
        self._ensure_blob(ref, digest)
        return self._filestore.read_bytes(_hex(digest))

    def _ensure_blob(self, ref: ImageReference, digest: str) -> None:
        if self._filestore.exists(_hex(digest)):
            return
        if self._offline:
            raise RegistryError(f"offline mode and blob {digest} is not cached")
        url = f"{self._base(ref)}/blobs/{digest}"
        logger.debug("Downloading blob %s", digest)
        response = self._request(ref, url, stream=True)
        try:
            self._raise_for_status(response, url)
            with tempfile.TemporaryFile() as spool:
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    spool.write(chunk)
                spool.seek(0)
                self._filestore.store(spool, expected_sha256=_hex(digest))
        except DigestMismatch as e:
            raise RegistryError(f"blob {digest} from {ref.registry}: {e}") from e
        except httpx.HTTPError as e:
            raise RegistryError(
                f"download of blob {digest} from {ref.registry} failed: {e}"
            ) from e
        finally:
            response.close()

    # --- HTTP ---

    def _base(self, ref: ImageReference) -> str:
        return f"{self._scheme}://{ref.registry}/v2/{ref.repository}"

    def _request(
        self,
        ref: ImageReference,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        headers = dict(headers or {})
        response = self._send(url, headers, ref, stream)
        if response.status_code == _HTTP_UNAUTHORIZED:
            challenge = response.headers.get("www-authenticate", "")
            response.close()
            self._tokens[ref.repository] = self._token(ref, challenge)
            response = self._send(url, headers, ref, stream)
        return response

    def _send(
        self, url: str, headers: dict[str, str], ref: ImageReference, stream: bool
    ) -> httpx.Response:
        if token := self._tokens.get(ref.repository):
            headers["Authorization"] = f"Bearer {token}"
        request = self._client.build_request("GET", url, headers=headers)
        try:
            return self._client.send(request, stream=stream)
        except httpx.HTTPError as e:
            raise RegistryError(f"cannot reach {ref.registry}: {e}") from e

    def _token(self, ref: ImageReference, challenge: str) -> str:
        scheme, _, params_text = challenge.partition(" ")
        if scheme.lower() != "bearer":
            raise RegistryError(f"unsupported auth challenge from {ref.registry}: {challenge!r}")
        params = dict(_AUTH_PARAM_RE.findall(params_text))
        if "realm" not in params:
            raise RegistryError(f"auth challenge without realm from {ref.registry}")
        query = {"scope": params.get("scope", f"repository:{ref.repository}:pull")}
        if "service" in params:
            query["service"] = params["service"]
        try:
            response = self._client.get(params["realm"], params=query)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RegistryError(f"token request to {params['realm']} failed: {e}") from e
        if not (token := body.get("token") or body.get("access_token")):
            raise RegistryError(f"no token returned by {params['realm']}")
        return token

    @staticmethod
    def _raise_for_status(response: httpx.Response, url: str) -> None:
        if response.is_error:
            raise RegistryError(f"GET {url} returned HTTP {response.status_code}")
