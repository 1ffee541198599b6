"""Bootstrap the message bus with handlers and their collaborators."""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from buildline import config
from buildline.adapters.artifact_repository import LocalArtifactRepository
from buildline.adapters.build_ids import UlidBuildIds
from buildline.adapters.descriptor import load_project
from buildline.adapters.docker_daemon import DockerDaemonLoader
from buildline.adapters.filestore.local import LocalFileStore
from buildline.adapters.image_registry import RegistryClient
from buildline.adapters.package_index import SimpleIndexClient
from buildline.adapters.resolution_cache import ResolutionCache
from buildline.adapters.test_runner import PytestSubprocessRunner
from buildline.domain.model import Project
from buildline.interfaces.build_ids import BuildIdGenerator
from buildline.interfaces.filestore import FileStore
from buildline.interfaces.image_registry import BaseImageSource, ImageLoader
from buildline.interfaces.package_index import PackageIndex
from buildline.interfaces.test_runner import TestRunner
from buildline.service_layer.compiler import Compiler
from buildline.service_layer.handlers import COMMAND_HANDLERS
from buildline.service_layer.image import ImageBuilder
from buildline.service_layer.messagebus import MessageBus
from buildline.service_layer.resolution import DependencyResolver
from buildline.service_layer.updates import UpdateChecker

if TYPE_CHECKING:
    from buildline.service_layer.commands import Command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppContainer:
    """A class to hold application wiring constants."""

    project: Project
    message_bus: MessageBus
    cache_dir: Path
    offline: bool


def build_message_bus(
    command_handlers: dict[type[Command], Callable[..., Any]],
    dependencies: Mapping[str, object],
) -> MessageBus:
    """Build a message bus with injected dependencies."""
    injected_command_handlers = {
        command_type: inject_dependencies(handler, dependencies)
        for command_type, handler in command_handlers.items()
    }
    return MessageBus(command_handlers=injected_command_handlers)


def bootstrap(  # pylint: disable=too-many-arguments,too-many-locals
    project_file: Path | None = None,
    *,
    offline: bool | None = None,
    cache_dir: Path | None = None,
    index: PackageIndex | None = None,
    base_images: BaseImageSource | None = None,
    blobs: FileStore | None = None,
    test_runner: TestRunner | None = None,
    image_loader: ImageLoader | None = None,
    build_ids: BuildIdGenerator | None = None,
) -> AppContainer:
    """Load the project and wire the message bus.

    Every collaborator can be overridden (tests pass in-memory indexes, stub
    registries and fake test runners); the defaults talk to the network, the
    user cache directory and a pytest subprocess.

    Args:
        project_file: Descriptor to load; discovered from the working
            directory (or ``BUILDLINE_PROJECT_FILE``) when omitted.
        offline: Only use cached index and registry data. Defaults to
            ``BUILDLINE_OFFLINE``.
        cache_dir: User-level cache; defaults to `config.get_cache_dir`.

    Raises:
        ProjectFileNotFoundError: If no descriptor can be found.
        ConfigError: If the descriptor is invalid.
    """
    project = load_project(project_file or config.find_project_file())
    offline = config.is_offline() if offline is None else offline
    cache_dir = cache_dir or config.get_cache_dir()
    logger.debug("Cache directory %s (offline=%s)", cache_dir, offline)

    cache = ResolutionCache(cache_dir / "resolution")
    index = index or SimpleIndexClient(cache, offline=offline)
    blobs = blobs or LocalFileStore(cache_dir / "blobs")
    base_images = base_images or RegistryClient(blobs, cache, offline=offline)
    artifacts = LocalArtifactRepository(project.root / "build" / "repository")

    dependencies: dict[str, object] = {
        "project": project,
        "resolver": DependencyResolver(project, index, artifacts),
        "compiler": Compiler(),
        "test_runner": test_runner or PytestSubprocessRunner(),
        "artifacts": artifacts,
        "build_ids": build_ids or UlidBuildIds(),
        "image_builder": ImageBuilder(base_images, blobs),
        "image_loader": image_loader or DockerDaemonLoader(),
        "update_checker": UpdateChecker(index),
    }
    message_bus = build_message_bus(COMMAND_HANDLERS, dependencies)

    return AppContainer(
        project=project,
        message_bus=message_bus,
        cache_dir=cache_dir,
        offline=offline,
    )


def inject_dependencies(
    handler: Callable, dependencies: Mapping[str, object]
) -> Callable:
    """Inject dependencies into a handler function based on its parameters."""
    params = inspect.signature(handler).parameters
    deps = {
        name: dependency for name, dependency in dependencies.items() if name in params
    }
    return functools.partial(handler, **deps)
