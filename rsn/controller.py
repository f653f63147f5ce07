from __future__ import annotations

import logging
import sqlite3
from threading import Event
from typing import Any, Callable, Protocol

from . import db
from .alerts import notify_recycle
from .errors import NodeError, TopologyError
from .locations import FileLocationSet
from .logs import open_attempt_log
from .process import ChildProcess, ProcessSupervisor, build_command
from .provisioner import Provisioner
from .recycle import Recycler
from .runtime import ControllerState, Phase
from .settings import Settings
from .sync import ConfigSynchronizer
from .topology import Topology, node_url, snapshot

logger = logging.getLogger(__name__)


class Ticker(Protocol):
    def wait(self, interval: float) -> bool: ...

    def cancel(self) -> None: ...


class EventTicker:
    """Fixed-interval sleep that returns False once cancelled."""

    def __init__(self) -> None:
        self._cancelled = Event()

    def wait(self, interval: float) -> bool:
        return not self._cancelled.wait(max(0.0, interval))

    def cancel(self) -> None:
        self._cancelled.set()


class _Recycling(Exception):
    pass


class LifecycleController:
    """Provision -> sync -> launch, then watch until the node has to be recycled.

    Every failure ends in a single recycle request; nothing is retried here.
    """

    def __init__(
        self,
        settings: Settings,
        locations: FileLocationSet,
        provisioner: Provisioner,
        synchronizer: ConfigSynchronizer,
        supervisor: ProcessSupervisor,
        topology: Topology,
        recycler: Recycler,
        ticker: Ticker | None = None,
    ):
        self.settings = settings
        self.locations = locations
        self.provisioner = provisioner
        self.synchronizer = synchronizer
        self.supervisor = supervisor
        self.topology = topology
        self.recycler = recycler
        self.ticker = ticker or EventTicker()
        self.state = ControllerState()
        self.attempt_id: int | None = None
        self._log_handler: logging.Handler | None = None

    # -- startup -----------------------------------------------------------

    def start(self) -> bool:
        """Run the startup sequence. Returns True once monitoring can begin."""
        self.attempt_id = self._journal(db.insert_attempt, self.settings.instance_id, self.state.started_at)
        try:
            self._enter(Phase.PROVISIONING)
            volume = self.provisioner.acquire(self.settings.drive_size_mb, self.settings.cache_capacity_mb)
            self.state.volume = volume
            self._open_log(volume.mount_path)

            self._enter(Phase.SYNCING)
            report = self.synchronizer.sync(volume.mount_path)
            self._event("INFO", f"Storage synchronized: {len(report.copied)} copied, {len(report.protected)} kept")

            self._enter(Phase.LAUNCHING)
            self._launch(volume.mount_path)

            self._enter(Phase.MONITORING)
            return True
        except _Recycling:
            return False
        except NodeError as e:
            self.request_recycle(f"{type(e).__name__}: {e}")
            return False
        except Exception as e:
            logger.exception("Unexpected failure during startup")
            self.request_recycle(f"Unexpected {type(e).__name__}: {e}")
            return False

    def _launch(self, volume_root: str) -> None:
        s = self.settings
        self.topology.publish_self_endpoint(s.instance_id, s.address, s.port, False)
        self._event("INFO", f"My server URL: {node_url(s.address, s.port)}")

        snap = snapshot(self.topology)
        self._event("INFO", f"Master URL: {snap.master_endpoint}")

        args, cwd = build_command(
            s.java_path, s.server_root, volume_root, s.port, snap.master_endpoint, self.locations, s.core_name
        )
        child = self.supervisor.launch(args, cwd=cwd, on_exit=self._on_child_exit)
        with self.state.lock:
            self.state.snapshot = snap
            self.state.child = child
        if self.attempt_id is not None:
            self._journal(db.update_attempt_launch, self.attempt_id, volume_root, snap.master_endpoint, child.pid)

    def _enter(self, phase: Phase) -> None:
        if not self.state.set_phase(phase):
            raise _Recycling()
        self._event("INFO", f"Entering {phase.value}")

    def _open_log(self, volume_root: str) -> None:
        if not self.settings.enable_file_log:
            return
        try:
            path, self._log_handler = open_attempt_log(volume_root, "rsn", self.settings.instance_id)
        except OSError as e:
            logger.warning("Cannot open attempt log under %s: %s", volume_root, e)
            return
        self.state.log_file = path

    # -- monitoring --------------------------------------------------------

    def monitor(self) -> str | None:
        """Poll until a recycle is needed or the ticker is cancelled.

        Returns the recycle reason, or None when stopped without one.
        """
        self._event("INFO", "Monitoring started")
        while not self.state.recycling and self.ticker.wait(self.settings.poll_interval_s):
            if self.state.recycling:
                break
            fault = self.check()
            if fault:
                self.request_recycle(fault)
                break
        return self.state.recycle_reason

    def check(self) -> str | None:
        """One poll: returns why the node must be recycled, or None."""
        try:
            current = snapshot(self.topology)
        except TopologyError as e:
            return f"RuntimeFault: {e}"

        launched = self.state.snapshot
        if launched is None or current != launched:
            old = launched.master_endpoint if launched else None
            return f"RuntimeFault: master changed from {old} to {current.master_endpoint}"

        child = self.state.child
        if child is None or child.exited:
            code = child.returncode if child else None
            return f"RuntimeFault: server process exited (code {code})"

        logger.debug("Working")
        return None

    # -- recycle and shutdown ----------------------------------------------

    def _on_child_exit(self, child: ChildProcess) -> None:
        self.request_recycle(f"RuntimeFault: server process {child.pid} exited (code {child.returncode})")

    def on_environment_changing(self) -> None:
        self.request_recycle("Host environment configuration changing")

    def request_recycle(self, reason: str) -> bool:
        """Ask the host to recycle the node. Only the first call has any effect."""
        if not self.state.mark_recycling(reason):
            return False
        self.ticker.cancel()
        self.recycler.request_recycle()
        self._event("ERROR", f"Recycling node: {reason}")
        self._finish_attempt("recycled", reason)
        notify_recycle(self.settings.instance_id, reason, self.settings)
        return True

    def stop(self) -> None:
        """Controlled shutdown: stop the server and release the volume."""
        self._event("INFO", "Stopping node")
        self.ticker.cancel()
        child = self.state.child
        if child is not None:
            self.supervisor.kill(child, timeout=self.settings.kill_timeout_s)
        if self.state.volume is not None:
            self.provisioner.release(self.state.volume)
        self._finish_attempt("stopped")
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
            self._log_handler.close()
            self._log_handler = None

    # -- diagnostics -------------------------------------------------------

    def _event(self, level: str, message: str) -> None:
        db.log_event(level, message, phase=self.state.phase.value)

    def _finish_attempt(self, outcome: str, reason: str | None = None) -> None:
        if self.attempt_id is not None:
            self._journal(db.finish_attempt, self.attempt_id, outcome, reason)

    def _journal(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except sqlite3.Error as e:
            logger.warning("Journal write %s failed: %s", fn.__name__, e)
            return None
