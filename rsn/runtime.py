from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .process import ChildProcess


def utc_now() -> str:
    return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ")


class Phase(str, Enum):
    IDLE = "idle"
    PROVISIONING = "provisioning"
    SYNCING = "syncing"
    LAUNCHING = "launching"
    MONITORING = "monitoring"
    RECYCLING = "recycling"


@dataclass(frozen=True)
class VolumeHandle:
    container_key: str
    volume_name: str
    size_mb: int
    mount_path: str


@dataclass(frozen=True)
class TopologySnapshot:
    master_endpoint: str


@dataclass
class ControllerState:
    """Everything the controller knows about the current startup attempt.

    Only `request_recycle` may be called from the child's callback threads;
    every other write happens on the controller's own thread.
    """

    phase: Phase = Phase.IDLE
    volume: VolumeHandle | None = None
    snapshot: TopologySnapshot | None = None
    child: ChildProcess | None = None
    log_file: str | None = None
    recycle_reason: str | None = None
    started_at: str = field(default_factory=utc_now)
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def set_phase(self, phase: Phase) -> bool:
        """Move to `phase` unless the attempt is already recycling."""
        with self.lock:
            if self.phase is Phase.RECYCLING:
                return False
            self.phase = phase
            return True

    def mark_recycling(self, reason: str) -> bool:
        """Returns True only for the first caller."""
        with self.lock:
            if self.phase is Phase.RECYCLING:
                return False
            self.phase = Phase.RECYCLING
            self.recycle_reason = reason
            return True

    @property
    def recycling(self) -> bool:
        with self.lock:
            return self.phase is Phase.RECYCLING

    def as_dict(self) -> dict[str, object]:
        with self.lock:
            child = self.child
            return {
                "phase": self.phase.value,
                "started_at": self.started_at,
                "master_endpoint": self.snapshot.master_endpoint if self.snapshot else None,
                "mount_path": self.volume.mount_path if self.volume else None,
                "container_key": self.volume.container_key if self.volume else None,
                "pid": child.pid if child else None,
                "child_exited": child.exited if child else None,
                "log_file": self.log_file,
                "recycle_reason": self.recycle_reason,
            }
