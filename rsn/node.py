from __future__ import annotations

import argparse
import logging
import signal
import sys
from dataclasses import replace
from threading import Thread

from . import db
from .api import create_app, serve_in_thread
from .controller import LifecycleController
from .docker_ops import DockerVolumeBackend
from .locations import resolve_locations
from .logs import setup_logging
from .process import ProcessSupervisor
from .provisioner import LocalDirectoryBackend, Provisioner, VolumeBackend
from .recycle import EX_TEMPFAIL, DockerRecycler, ExitRecycler, Recycler
from .settings import Settings, settings as default_settings
from .sync import ConfigSynchronizer
from .topology import HttpTopology, StaticTopology, Topology

logger = logging.getLogger("rsn")


def make_backend(s: Settings) -> VolumeBackend:
    if s.storage_backend == "docker":
        return DockerVolumeBackend()
    if s.storage_backend == "local":
        return LocalDirectoryBackend(s.storage_root)
    raise ValueError(f"Unknown storage backend '{s.storage_backend}' (expected local|docker).")


def make_topology(s: Settings) -> Topology:
    if s.topology_url:
        return HttpTopology(s.topology_url, timeout_s=s.topology_timeout_s)
    if s.master_file:
        return StaticTopology(path=s.master_file)
    if s.master_url:
        return StaticTopology(master_url=s.master_url)
    raise ValueError("Set RSN_TOPOLOGY_URL, RSN_MASTER_FILE or RSN_MASTER_URL.")


def make_recycler(s: Settings) -> Recycler:
    if s.recycle_mode == "docker":
        if not s.self_container_id:
            raise ValueError("RSN_RECYCLE_MODE=docker needs RSN_SELF_CONTAINER_ID.")
        return DockerRecycler(s.self_container_id)
    return ExitRecycler()


def deferred(action):
    """Wrap `action` as a signal handler that runs it on its own thread.

    Handlers interrupt the main thread wherever it is, possibly while it holds
    the controller state lock; the work itself must happen elsewhere.
    """

    def handler(signum, frame):
        Thread(target=action, name=f"signal-{signum}", daemon=True).start()

    return handler


def install_signal_handlers(controller: LifecycleController) -> None:
    def shutdown():
        logger.info("Shutdown signal received")
        controller.ticker.cancel()

    signal.signal(signal.SIGTERM, deferred(shutdown))
    signal.signal(signal.SIGINT, deferred(shutdown))
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, deferred(controller.on_environment_changing))


def build_controller(s: Settings, recycler: Recycler | None = None) -> LifecycleController:
    locations = resolve_locations(s.solr_major_version)
    return LifecycleController(
        settings=s,
        locations=locations,
        provisioner=Provisioner(make_backend(s), s.instance_id, locations),
        synchronizer=ConfigSynchronizer(s.server_root, s.template_root, locations),
        supervisor=ProcessSupervisor(),
        topology=make_topology(s),
        recycler=recycler or make_recycler(s),
    )


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Replica Search Node supervisor")
    p.add_argument("--api-port", type=int, default=None, help="Serve the status API on this port (0 disables)")
    p.add_argument("--master-url", default=None, help="Fixed master URL instead of the instance directory")
    args = p.parse_args(argv)

    s = default_settings
    if args.api_port is not None:
        s = replace(s, api_port=args.api_port)
    if args.master_url:
        s = replace(s, master_url=args.master_url, master_file=None, topology_url=None)

    setup_logging("rsn", s.instance_id, s.log_level)
    db.init_db()

    try:
        controller = build_controller(s)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    install_signal_handlers(controller)

    server = None
    if s.api_port:
        server = serve_in_thread(create_app(controller), s.api_host, s.api_port)

    reason = None
    if controller.start():
        reason = controller.monitor()
    else:
        reason = controller.state.recycle_reason

    controller.stop()
    if server is not None:
        server.should_exit = True

    if reason:
        logger.info("Exiting for recycle: %s", reason)
        return EX_TEMPFAIL
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
