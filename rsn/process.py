from __future__ import annotations

import logging
import os
import subprocess
from threading import Event, Thread
from typing import IO, Callable

from .errors import LaunchError
from .locations import STORAGE_DIR, FileLocationSet

logger = logging.getLogger(__name__)
child_logger = logging.getLogger("rsn.child")


def replication_url(master_url: str) -> str:
    if not master_url.endswith("/"):
        master_url += "/"
    return master_url + "replication"


def build_command(
    java_path: str,
    server_root: str,
    volume_root: str,
    port: int,
    master_url: str,
    locations: FileLocationSet,
    core_name: str = "slaveCore",
) -> tuple[list[str], str]:
    """Return (argv, working_dir) for a replica server bound to `master_url`."""
    example_dir = os.path.join(server_root, locations.example_dir)
    args = [
        java_path,
        f"-Dsolr.solr.home={os.path.join(volume_root, STORAGE_DIR)}",
        f"-Djetty.port={int(port)}",
        "-Denable.slave=true",
        f"-DmasterUrl={replication_url(master_url)}",
        f"-DdefaultCoreName={core_name}",
        "-jar",
        os.path.join(example_dir, locations.start_jar),
    ]
    return args, example_dir


class ChildProcess:
    """A launched server process. One per launch; never reused after exit."""

    def __init__(self, popen: subprocess.Popen, args: list[str]):
        self.popen = popen
        self.args = args
        self._exited = Event()

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def exited(self) -> bool:
        return self._exited.is_set()

    @property
    def returncode(self) -> int | None:
        return self.popen.returncode

    def wait_exited(self, timeout: float | None = None) -> bool:
        return self._exited.wait(timeout)

    def _mark_exited(self) -> None:
        self._exited.set()


class ProcessSupervisor:
    """Starts the server, keeps its output pipes drained and reports its exit."""

    def __init__(self, output_logger: logging.Logger | None = None):
        self.output_logger = output_logger or child_logger

    def launch(
        self,
        args: list[str],
        cwd: str | None = None,
        on_exit: Callable[[ChildProcess], None] | None = None,
        env: dict[str, str] | None = None,
    ) -> ChildProcess:
        logger.info("Starting server: %s", " ".join(args))
        try:
            popen = subprocess.Popen(
                args,
                cwd=cwd,
                env=env,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except (OSError, ValueError) as e:
            raise LaunchError(f"Cannot start {args[0] if args else '<empty command>'}: {e}") from e

        child = ChildProcess(popen, args)
        # Both pipes must be read continuously or the server blocks on a full buffer.
        Thread(target=self._drain, args=(popen.stdout, "stdout"), daemon=True).start()
        Thread(target=self._drain, args=(popen.stderr, "stderr"), daemon=True).start()
        Thread(target=self._watch, args=(child, on_exit), daemon=True).start()
        logger.info("Server started with pid %d", child.pid)
        return child

    def _drain(self, stream: IO[str], name: str) -> None:
        with stream:
            for line in iter(stream.readline, ""):
                line = line.rstrip("\r\n")
                if line:
                    self.output_logger.info("[%s] %s", name, line)

    def _watch(self, child: ChildProcess, on_exit: Callable[[ChildProcess], None] | None) -> None:
        code = child.popen.wait()
        child._mark_exited()
        logger.info("Server pid %d exited with code %s", child.pid, code)
        if on_exit is None:
            return
        try:
            on_exit(child)
        except Exception:
            logger.exception("Exit callback for pid %d failed", child.pid)

    def kill(self, child: ChildProcess, timeout: float = 2.0) -> None:
        """Best-effort stop; a process that outlives `timeout` is killed and left behind."""
        if child.popen.poll() is not None:
            return
        try:
            child.popen.terminate()
            child.popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Server pid %d still running after %.1fs; killing it", child.pid, timeout)
            try:
                child.popen.kill()
            except OSError as e:
                logger.warning("Kill of pid %d failed: %s", child.pid, e)
        except OSError as e:
            logger.warning("Terminate of pid %d failed: %s", child.pid, e)
