from __future__ import annotations

import json
import logging
import os
from typing import Protocol

from .errors import ProvisionError
from .locations import STORAGE_DIR, FileLocationSet
from .runtime import VolumeHandle

logger = logging.getLogger(__name__)

# Keep the mount's cache budget this far below the host cache capacity.
CACHE_SAFETY_MARGIN_MB = 50


class AlreadyExists(Exception):
    """Raised by a backend when the container or volume is already there."""

    def __init__(self, what: str, size_mb: int | None = None):
        super().__init__(what)
        self.size_mb = size_mb


class VolumeBackend(Protocol):
    def ensure_container(self, container_key: str) -> None: ...

    def create_volume(self, container_key: str, volume_name: str, size_mb: int) -> None: ...

    def mount(self, container_key: str, volume_name: str, cache_mb: int, force: bool, owner: str) -> str: ...

    def unmount(self, handle: VolumeHandle, owner: str) -> None: ...


def container_key_from_instance_id(instance_id: str) -> str:
    """Derive a storage-safe container name from the node's instance id.

    The same instance always maps to the same key so a restarted node
    reattaches its own volume.
    """
    return (
        instance_id.replace("(", "-")
        .replace(").", "-")
        .replace(".", "-")
        .replace("_", "-")
        .lower()
    )


def volume_name_for(major_version: str) -> str:
    return f"SolrStorage_{major_version}"


def ensure_skeleton(mount_path: str, locations: FileLocationSet) -> list[str]:
    """Create the storage directories that are missing; returns the ones created."""
    storage = os.path.join(mount_path, STORAGE_DIR)
    created: list[str] = []
    for rel in locations.skeleton:
        path = os.path.join(storage, rel) if rel else storage
        if not os.path.isdir(path):
            os.makedirs(path, exist_ok=True)
            created.append(path)
    return created


class Provisioner:
    """Acquires the node's durable volume and lays out its directory skeleton."""

    def __init__(self, backend: VolumeBackend, instance_id: str, locations: FileLocationSet):
        self.backend = backend
        self.instance_id = instance_id
        self.locations = locations
        self.owner = f"{instance_id}:{os.getpid()}"

    def acquire(self, size_mb: int, cache_capacity_mb: int) -> VolumeHandle:
        cache_mb = cache_capacity_mb - CACHE_SAFETY_MARGIN_MB
        if size_mb <= 0:
            raise ProvisionError(f"Volume size must be positive, got {size_mb} MB.")
        if cache_mb <= 0:
            raise ProvisionError(
                f"Local cache of {cache_capacity_mb} MB leaves no room after the {CACHE_SAFETY_MARGIN_MB} MB reserve."
            )

        key = container_key_from_instance_id(self.instance_id)
        volume_name = volume_name_for(self.locations.major_version)
        logger.info("Volume cache budget %d MB, container '%s', volume '%s'", cache_mb, key, volume_name)

        try:
            try:
                self.backend.ensure_container(key)
            except AlreadyExists:
                pass

            try:
                self.backend.create_volume(key, volume_name, size_mb)
                logger.info("Created volume %s (%d MB)", volume_name, size_mb)
            except AlreadyExists as e:
                if e.size_mb is not None and e.size_mb != size_mb:
                    logger.warning(
                        "Volume %s already exists with %d MB (requested %d MB); reusing it", volume_name, e.size_mb, size_mb
                    )

            mount_path = self.backend.mount(key, volume_name, cache_mb, True, self.owner)
        except ProvisionError:
            raise
        except Exception as e:
            raise ProvisionError(f"Provisioning volume {volume_name} failed: {type(e).__name__}: {e}") from e

        logger.info("Mounted as %s", mount_path)
        try:
            ensure_skeleton(mount_path, self.locations)
        except OSError as e:
            raise ProvisionError(f"Creating storage directories under {mount_path} failed: {e}") from e

        return VolumeHandle(container_key=key, volume_name=volume_name, size_mb=size_mb, mount_path=mount_path)

    def release(self, handle: VolumeHandle) -> None:
        try:
            self.backend.unmount(handle, self.owner)
            logger.info("Unmounted %s", handle.mount_path)
        except Exception as e:
            logger.warning("Unmount of %s failed: %s: %s", handle.mount_path, type(e).__name__, e)


class LocalDirectoryBackend:
    """Volumes as directories under a host path.

    Layout: `{root}/{container}/{volume}/` holds the data, `{volume}.json`
    records its size and `{volume}.lease` the current mount owner.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _container_dir(self, container_key: str) -> str:
        return os.path.join(self.root, container_key)

    def _meta_path(self, container_key: str, volume_name: str, suffix: str) -> str:
        return os.path.join(self._container_dir(container_key), f"{volume_name}.{suffix}")

    def ensure_container(self, container_key: str) -> None:
        path = self._container_dir(container_key)
        if os.path.isdir(path):
            raise AlreadyExists(path)
        os.makedirs(path)

    def create_volume(self, container_key: str, volume_name: str, size_mb: int) -> None:
        meta = self._meta_path(container_key, volume_name, "json")
        if os.path.exists(meta):
            with open(meta, encoding="utf-8") as f:
                raise AlreadyExists(volume_name, size_mb=json.load(f).get("size_mb"))
        os.makedirs(os.path.join(self._container_dir(container_key), volume_name), exist_ok=True)
        with open(meta, "w", encoding="utf-8") as f:
            json.dump({"size_mb": size_mb}, f)

    def mount(self, container_key: str, volume_name: str, cache_mb: int, force: bool, owner: str) -> str:
        data_dir = os.path.join(self._container_dir(container_key), volume_name)
        if not os.path.isdir(data_dir):
            raise ProvisionError(f"Volume {volume_name} does not exist in {container_key}.")

        lease = self._meta_path(container_key, volume_name, "lease")
        if os.path.exists(lease):
            with open(lease, encoding="utf-8") as f:
                holder = json.load(f).get("owner")
            if holder != owner:
                if not force:
                    raise ProvisionError(f"Volume {volume_name} is leased by {holder}.")
                logger.warning("Taking over lease on %s from %s", volume_name, holder)

        with open(lease, "w", encoding="utf-8") as f:
            json.dump({"owner": owner, "cache_mb": cache_mb}, f)
        return data_dir

    def unmount(self, handle: VolumeHandle, owner: str) -> None:
        lease = self._meta_path(handle.container_key, handle.volume_name, "lease")
        if not os.path.exists(lease):
            return
        with open(lease, encoding="utf-8") as f:
            holder = json.load(f).get("owner")
        if holder == owner:
            os.remove(lease)
