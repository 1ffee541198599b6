"""Container image assembly.

Builds a docker-archive tarball (the format ``docker load`` reads) without a
Docker daemon: the base image comes from a `BaseImageSource`, and the
application goes on top as up to three reproducible layers, in this order:

1. dependencies: ``/app/requirements.lock`` (compile and runtime scopes) and
   project archives under ``/app/lib``,
2. resources: non-Python files of the classes directory,
3. classes: Python files of the classes directory.

Layer tars have sorted entries, a fixed mtime and root ownership; gzip output
uses mtime 0; the config's ``created`` is the epoch. Building the same inputs
twice gives the same image id.
"""

from __future__ import annotations

import gzip
import hashlib
import io
import json
import logging
import os
import shutil
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from buildline.domain.errors import PackagingError
from buildline.domain.model import ContainerImageDescriptor, Module, Scope
from buildline.interfaces.filestore import FileStore
from buildline.interfaces.image_registry import BaseImage, BaseImageSource, RegistryError

from .resolution import Resolution

logger = logging.getLogger(__name__)

APP_ROOT = "app"
EPOCH = "1970-01-01T00:00:00Z"
LAYER_MTIME = 1  # one second after the epoch; some tools treat 0 as "unset"

DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_CONFIG = "application/vnd.docker.container.image.v1+json"
DOCKER_LAYER = "application/vnd.docker.image.rootfs.diff.tar.gzip"


@dataclass(frozen=True)
class Layer:
    """A gzip-compressed layer and its identities."""

    name: str
    digest: str
    diff_id: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class BuiltImage:
    """Result of the package stage."""

    reference: str
    tarball: Path
    image_id: str
    manifest_digest: str
    base: str
    base_digest: str
    layers: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "image": self.reference,
            "imageId": self.image_id,
            "imageDigest": self.manifest_digest,
            "baseImage": self.base,
            "baseImageDigest": self.base_digest,
            "layers": list(self.layers),
            "tarball": self.tarball.name,
        }


def _digest(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def _tar_info(name: str, *, size: int = 0, directory: bool = False) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.mtime = LAYER_MTIME
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    if directory:
        info.type = tarfile.DIRTYPE
        info.mode = 0o755
    else:
        info.size = size
        info.mode = 0o644
    return info


def make_layer(name: str, files: dict[str, bytes]) -> Layer:
    """Build a reproducible gzip layer holding ``files`` (``{path: bytes}``).

    Parent directories are added explicitly, and everything is sorted.
    """
    directories: set[str] = set()
    for path in files:
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            directories.add("/".join(parts[:i]))

    raw = io.BytesIO()
    with tarfile.open(fileobj=raw, mode="w", format=tarfile.GNU_FORMAT) as tar:
        for path in sorted(directories | set(files)):
            if path in files:
                data = files[path]
                tar.addfile(_tar_info(path, size=len(data)), io.BytesIO(data))
            else:
                tar.addfile(_tar_info(path, directory=True))
    uncompressed = raw.getvalue()
    compressed = gzip.compress(uncompressed, mtime=0)
    return Layer(
        name=name,
        digest=_digest(compressed),
        diff_id=_digest(uncompressed),
        data=compressed,
    )


def requirements_lock(resolution: Resolution) -> bytes:
    """``name==version`` lines for every external compile/runtime dependency."""
    lines = sorted(
        d.requirement
        for d in resolution.in_scopes(Scope.COMPILE, Scope.RUNTIME)
        if not d.project
    )
    return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""


class ImageBuilder:
    """Assemble a module's container image on top of its base image.

    Args:
        base_images: Where base images come from.
        blobs: File store holding the base image layer blobs.
    """

    def __init__(self, base_images: BaseImageSource, blobs: FileStore) -> None:
        self._base_images = base_images
        self._blobs = blobs

    def build(
        self,
        module: Module,
        classes_dir: Path,
        resolution: Resolution,
        output_dir: Path,
    ) -> BuiltImage:
        """Build the image and write it under ``output_dir``.

        ``output_dir`` is emptied first: after a successful build it holds
        exactly one image tarball plus its metadata files.

        Raises:
            PackagingError: If the base image cannot be fetched or the module
                has no container descriptor.
        """
        descriptor = module.container
        if descriptor is None:
            raise PackagingError(f"Module '{module.name}' declares no container image")
        try:
            base = self._base_images.fetch(descriptor.base_image, descriptor.platform)
        except RegistryError as e:
            raise PackagingError(
                f"Cannot fetch base image {descriptor.base_image} for '{module.name}': {e}"
            ) from e

        layers, lib_paths = self._application_layers(classes_dir, resolution)
        config = self._config(module, descriptor, base, layers, lib_paths)
        config_bytes = json.dumps(config, sort_keys=True, separators=(",", ":")).encode()
        image_id = _digest(config_bytes)
        manifest = self._manifest(base, layers, config_bytes)
        manifest_bytes = json.dumps(manifest, sort_keys=True, separators=(",", ":")).encode()

        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)
        tarball = output_dir / f"{module.name}.tar"
        partial = output_dir / f".{tarball.name}.partial"
        try:
            self._write_docker_archive(partial, descriptor, base, layers, config_bytes)
            os.replace(partial, tarball)
        finally:
            partial.unlink(missing_ok=True)

        image = BuiltImage(
            reference=descriptor.reference,
            tarball=tarball,
            image_id=image_id,
            manifest_digest=_digest(manifest_bytes),
            base=descriptor.base_image,
            base_digest=base.manifest_digest,
            layers=tuple(layer.name for layer in layers),
        )
        (output_dir / "image.id").write_text(image.image_id + "\n", encoding="utf-8")
        (output_dir / "image.digest").write_text(image.manifest_digest + "\n", encoding="utf-8")
        (output_dir / "image.json").write_text(
            json.dumps(image.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8"
        )
        logger.info("Built image %s (%s) on %s", image.reference, image.image_id[:19], image.base)
        return image

    # --- Layers ---

    @staticmethod
    def _application_layers(
        classes_dir: Path, resolution: Resolution
    ) -> tuple[list[Layer], list[str]]:
        dependencies: dict[str, bytes] = {}
        if lock := requirements_lock(resolution):
            dependencies[f"{APP_ROOT}/requirements.lock"] = lock
        lib_paths: list[str] = []
        for archive in resolution.project_archives(Scope.COMPILE, Scope.RUNTIME):
            arcname = f"{APP_ROOT}/lib/{archive.name}"
            dependencies[arcname] = archive.read_bytes()
            lib_paths.append(f"/{arcname}")

        resources: dict[str, bytes] = {}
        classes: dict[str, bytes] = {}
        if classes_dir.is_dir():
            for path in sorted(p for p in classes_dir.rglob("*") if p.is_file()):
                arcname = f"{APP_ROOT}/{path.relative_to(classes_dir).as_posix()}"
                target = classes if path.suffix == ".py" else resources
                target[arcname] = path.read_bytes()

        layers = [
            make_layer(name, files)
            for name, files in (
                ("dependencies", dependencies),
                ("resources", resources),
                ("classes", classes),
            )
            if files
        ]
        return layers, sorted(lib_paths)

    # --- Config and manifest ---

    @staticmethod
    def _config(
        module: Module,
        descriptor: ContainerImageDescriptor,
        base: BaseImage,
        layers: list[Layer],
        lib_paths: list[str],
    ) -> dict[str, Any]:
        config = json.loads(json.dumps(base.config))  # deep copy
        runtime = dict(config.get("config") or {})

        env = dict(item.split("=", 1) for item in runtime.get("Env") or [] if "=" in item)
        env["PYTHONPATH"] = ":".join([f"/{APP_ROOT}", *lib_paths])
        env.update(descriptor.environment)
        runtime["Env"] = [f"{k}={v}" for k, v in env.items()]
        runtime["Entrypoint"] = list(descriptor.entrypoint) or ["python3", "-m", str(module.main)]
        runtime.pop("Cmd", None)
        runtime["WorkingDir"] = f"/{APP_ROOT}"
        labels = dict(runtime.get("Labels") or {})
        labels.update(
            {
                "org.opencontainers.image.base.name": descriptor.base_image,
                "org.opencontainers.image.base.digest": base.manifest_digest,
                "org.opencontainers.image.title": module.name,
                "org.opencontainers.image.version": module.version,
            }
        )
        runtime["Labels"] = labels
        config["config"] = runtime

        os_name, _, rest = descriptor.platform.partition("/")
        architecture, _, variant = rest.partition("/")
        config["os"] = os_name
        config["architecture"] = architecture
        if variant:
            config["variant"] = variant
        config["created"] = EPOCH

        rootfs = dict(config.get("rootfs") or {"type": "layers"})
        diff_ids = list(rootfs.get("diff_ids") or [])
        rootfs["diff_ids"] = diff_ids + [layer.diff_id for layer in layers]
        config["rootfs"] = rootfs
        config["history"] = list(config.get("history") or []) + [
            {"created": EPOCH, "created_by": f"buildline:{layer.name}", "author": "buildline"}
            for layer in layers
        ]
        return config

    @staticmethod
    def _manifest(base: BaseImage, layers: list[Layer], config_bytes: bytes) -> dict[str, Any]:
        return {
            "schemaVersion": 2,
            "mediaType": DOCKER_MANIFEST,
            "config": {
                "mediaType": DOCKER_CONFIG,
                "size": len(config_bytes),
                "digest": _digest(config_bytes),
            },
            "layers": [
                {"mediaType": DOCKER_LAYER, "size": ref.size, "digest": ref.digest}
                for ref in base.layers
            ]
            + [
                {"mediaType": DOCKER_LAYER, "size": layer.size, "digest": layer.digest}
                for layer in layers
            ],
        }

    # --- Tarball ---

    def _write_docker_archive(
        self,
        tarball: Path,
        descriptor: ContainerImageDescriptor,
        base: BaseImage,
        layers: list[Layer],
        config_bytes: bytes,
    ) -> None:
        config_name = f"{_digest(config_bytes).split(':', 1)[1]}.json"
        layer_names: list[str] = []
        with tarfile.open(tarball, mode="w", format=tarfile.GNU_FORMAT) as tar:
            tar.addfile(_tar_info(config_name, size=len(config_bytes)), io.BytesIO(config_bytes))
            for ref in base.layers:
                hex_digest = ref.digest.split(":", 1)[1]
                name = f"{hex_digest}.tar.gz"
                try:
                    size = self._blobs.size(hex_digest)
                    with self._blobs.open_read(hex_digest) as blob:
                        tar.addfile(_tar_info(name, size=size), blob)
                except FileNotFoundError as e:
                    raise PackagingError(
                        f"Base layer {ref.digest} is missing from the cache"
                    ) from e
                layer_names.append(name)
            for layer in layers:
                name = f"{layer.digest.split(':', 1)[1]}.tar.gz"
                tar.addfile(_tar_info(name, size=layer.size), io.BytesIO(layer.data))
                layer_names.append(name)
            manifest = [
                {
                    "Config": config_name,
                    "RepoTags": [descriptor.reference],
                    "Layers": layer_names,
                }
            ]
            manifest_bytes = json.dumps(manifest, separators=(",", ":")).encode()
            tar.addfile(
                _tar_info("manifest.json", size=len(manifest_bytes)), io.BytesIO(manifest_bytes)
            )
