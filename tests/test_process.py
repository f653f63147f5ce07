import logging
import os
import sys
import threading
import time

import pytest

from rsn.errors import LaunchError
from rsn.process import ProcessSupervisor, build_command, replication_url


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.lines = []

    def emit(self, record):
        self.lines.append(record.getMessage())


@pytest.fixture
def output():
    log = logging.getLogger("rsn.test.child")
    log.setLevel(logging.INFO)
    handler = _ListHandler()
    log.addHandler(handler)
    yield log, handler
    log.removeHandler(handler)


def _wait_for(predicate, timeout=10.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_build_command_embeds_paths_port_and_master(locations):
    args, cwd = build_command(
        "java", "/srv/approot", "/mnt/vol", 8983, "http://master:8080/solr/", locations, core_name="slaveCore"
    )

    assert args[0] == "java"
    assert f"-Dsolr.solr.home={os.path.join('/mnt/vol', 'SolrStorage')}" in args
    assert "-Djetty.port=8983" in args
    assert "-Denable.slave=true" in args
    assert "-DmasterUrl=http://master:8080/solr/replication" in args
    assert "-DdefaultCoreName=slaveCore" in args
    assert args[-2:] == ["-jar", os.path.join("/srv/approot", "Solr/example", "start.jar")]
    assert cwd == os.path.join("/srv/approot", "Solr/example")


def test_replication_url_adds_missing_slash():
    assert replication_url("http://m/solr") == "http://m/solr/replication"
    assert replication_url("http://m/solr/") == "http://m/solr/replication"


def test_launch_drains_output_and_reports_exit(output):
    log, handler = output
    exits = []
    done = threading.Event()

    def on_exit(child):
        exits.append(child.returncode)
        done.set()

    code = "import sys\nprint('server up')\nprint('warming caches', file=sys.stderr)\nsys.exit(3)"
    child = ProcessSupervisor(output_logger=log).launch([sys.executable, "-c", code], on_exit=on_exit)

    assert done.wait(10)
    assert child.exited is True
    assert exits == [3]
    assert _wait_for(lambda: len(handler.lines) >= 2)
    assert "[stdout] server up" in handler.lines
    assert "[stderr] warming caches" in handler.lines


def test_chatty_child_does_not_block(output):
    log, handler = output
    code = "import sys\nfor i in range(20000):\n    print('line', i)\n    print('err', i, file=sys.stderr)"
    child = ProcessSupervisor(output_logger=log).launch([sys.executable, "-c", code])

    assert child.wait_exited(30)
    assert child.returncode == 0


def test_launch_of_missing_executable_is_a_launch_error(tmp_path):
    with pytest.raises(LaunchError):
        ProcessSupervisor().launch([str(tmp_path / "no-such-java")])


def test_kill_stops_a_running_server(output):
    log, _ = output
    supervisor = ProcessSupervisor(output_logger=log)
    child = supervisor.launch([sys.executable, "-c", "import time; time.sleep(60)"])

    supervisor.kill(child, timeout=5)

    assert child.wait_exited(10)
    assert child.returncode is not None


@pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM cannot be ignored on Windows")
def test_kill_after_timeout_does_not_raise(output):
    log, handler = output
    code = (
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(60)"
    )
    supervisor = ProcessSupervisor(output_logger=log)
    child = supervisor.launch([sys.executable, "-c", code])
    assert _wait_for(lambda: "[stdout] ready" in handler.lines)

    supervisor.kill(child, timeout=0.2)

    assert child.wait_exited(10)


def test_kill_of_exited_child_is_a_no_op(output):
    log, _ = output
    supervisor = ProcessSupervisor(output_logger=log)
    child = supervisor.launch([sys.executable, "-c", "pass"])
    assert child.wait_exited(10)

    supervisor.kill(child, timeout=0.1)
