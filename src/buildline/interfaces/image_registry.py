"""Container image registry interface.

The package stage layers application content on top of a base image. This
module defines how the base image is obtained: its config and its layers,
each layer blob available from the content-addressed file store.
"""

import abc
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class RegistryError(Exception):
    """Base class for registry failures."""


class ImageNotFound(RegistryError):
    """The registry has no image for the reference (or platform)."""


@dataclass(frozen=True)
class LayerRef:
    """A compressed layer blob of a base image."""

    digest: str
    size: int
    media_type: str


@dataclass(frozen=True)
class BaseImage:
    """A base image ready to be extended.

    Attributes:
        reference: The reference it was pulled by.
        manifest_digest: Digest of the platform manifest.
        config: Parsed image configuration (``config``, ``rootfs``, ``history``...).
        layers: Compressed layers in application order; their bytes are in the
            file store under the hex part of ``digest``.
    """

    reference: str
    manifest_digest: str
    config: dict[str, Any] = field(default_factory=dict)
    layers: tuple[LayerRef, ...] = ()


class BaseImageSource(abc.ABC):
    """Contract for fetching base images."""

    @abc.abstractmethod
    def fetch(self, reference: str, platform: str) -> BaseImage:
        """Fetch ``reference`` for ``platform`` (e.g. ``linux/amd64``).

        Raises:
            ImageNotFound: If the image or platform does not exist.
            RegistryError: For any other registry failure.
        """


class ImageLoader(abc.ABC):
    """Contract for handing a built image tarball to a container runtime."""

    @abc.abstractmethod
    def load(self, tarball: Path) -> list[str]:
        """Load ``tarball`` and return the tags it was loaded under."""
