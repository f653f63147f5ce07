from __future__ import annotations

import logging
import re

import docker
from docker.errors import DockerException, NotFound

from .errors import ProvisionError
from .provisioner import AlreadyExists
from .runtime import VolumeHandle

logger = logging.getLogger(__name__)

VOLUME_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_.\-]{0,127}$")

LABEL_CONTAINER = "rsn.container"
LABEL_SIZE = "rsn.size_mb"


def _client() -> docker.DockerClient:
    return docker.from_env()


def docker_available(client: docker.DockerClient | None = None) -> bool:
    try:
        c = client or _client()
        c.ping()
        return True
    except DockerException:
        return False


def docker_volume_name(container_key: str, volume_name: str) -> str:
    name = f"{container_key}-{volume_name}".lower()
    if not VOLUME_NAME_RE.match(name):
        raise ProvisionError(f"Invalid docker volume name '{name}'.")
    return name


class DockerVolumeBackend:
    """Named docker volumes on the local daemon.

    Volumes are labeled with the container key and requested size so they can
    be recognised again after the node restarts.
    """

    def __init__(self, client: docker.DockerClient | None = None):
        self._c = client

    @property
    def client(self) -> docker.DockerClient:
        if self._c is None:
            self._c = _client()
        return self._c

    def ensure_container(self, container_key: str) -> None:
        # Docker has no container level above volumes; the key only lives in labels.
        if not docker_available(self.client):
            raise ProvisionError("Docker is not available. Start the docker daemon and try again.")

    def create_volume(self, container_key: str, volume_name: str, size_mb: int) -> None:
        name = docker_volume_name(container_key, volume_name)
        try:
            existing = self.client.volumes.get(name)
        except NotFound:
            pass
        else:
            labels = existing.attrs.get("Labels") or {}
            size = labels.get(LABEL_SIZE)
            raise AlreadyExists(name, size_mb=int(size) if size and size.isdigit() else None)

        self.client.volumes.create(
            name=name,
            driver="local",
            labels={LABEL_CONTAINER: container_key, LABEL_SIZE: str(size_mb)},
        )

    def mount(self, container_key: str, volume_name: str, cache_mb: int, force: bool, owner: str) -> str:
        name = docker_volume_name(container_key, volume_name)
        try:
            vol = self.client.volumes.get(name)
        except NotFound as e:
            raise ProvisionError(f"Docker volume '{name}' does not exist.") from e
        mountpoint = vol.attrs.get("Mountpoint")
        if not mountpoint:
            raise ProvisionError(f"Docker volume '{name}' has no mountpoint.")
        # The daemon owns the mount; cache budget and lease takeover do not apply.
        logger.debug("Docker volume %s for %s at %s (cache budget %d MB ignored)", name, owner, mountpoint, cache_mb)
        return mountpoint

    def unmount(self, handle: VolumeHandle, owner: str) -> None:
        return None


def restart_container(container_id: str, client: docker.DockerClient | None = None) -> None:
    c = client or _client()
    try:
        c.containers.get(container_id).restart()
    except NotFound:
        logger.error("Container %s not found; cannot restart it", container_id)
