from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Protocol

from .docker_ops import restart_container

logger = logging.getLogger(__name__)

# Exit status the runner uses to ask its host to start it again.
EX_TEMPFAIL = 75


class Recycler(Protocol):
    def request_recycle(self) -> None: ...


class ExitRecycler:
    """Signals the runner to exit so the host (systemd, docker restart policy) relaunches it."""

    def __init__(self) -> None:
        self.requested = Event()

    def request_recycle(self) -> None:
        self.requested.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self.requested.wait(timeout)


class DockerRecycler:
    """Asks the docker daemon to restart the container this node runs in."""

    def __init__(self, container_id: str):
        self.container_id = container_id

    def request_recycle(self) -> None:
        Thread(target=self._restart, daemon=True).start()

    def _restart(self) -> None:
        try:
            restart_container(self.container_id)
        except Exception as e:
            logger.error("Restarting container %s failed: %s: %s", self.container_id, type(e).__name__, e)
