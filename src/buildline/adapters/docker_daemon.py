"""Load built image tarballs into a local Docker daemon."""

from __future__ import annotations

import logging
from pathlib import Path

import docker
from docker.errors import DockerException

from buildline.domain.errors import PackagingError
from buildline.interfaces.image_registry import ImageLoader

logger = logging.getLogger(__name__)


def docker_available() -> bool:
    """Return True if a Docker daemon answers a ping."""
    try:
        docker.from_env().ping()
    except Exception:  # pylint: disable=broad-except
        return False
    return True


class DockerDaemonLoader(ImageLoader):
    """Push docker-archive tarballs into the daemon configured by the environment."""

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        self._client = client

    def load(self, tarball: Path) -> list[str]:
        """Load ``tarball`` and return the tags of the loaded images.

        Raises:
            PackagingError: If the daemon is unreachable or rejects the archive.
        """
        try:
            client = self._client or docker.from_env()
            with tarball.open("rb") as f:
                images = client.images.load(f.read())
        except DockerException as e:
            raise PackagingError(f"Could not load {tarball.name} into Docker: {e}") from e
        tags = [tag for image in images for tag in image.tags]
        logger.info("Loaded %s into Docker as %s", tarball.name, ", ".join(tags) or "<untagged>")
        return tags
