import os
import socket
import sys
from dataclasses import replace

import pytest

# Ensure project root is importable (so `import rsn` works without installing the package)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from rsn import db  # noqa: E402
from rsn.errors import LaunchError, ProvisionError, SyncError  # noqa: E402
from rsn.locations import resolve_locations  # noqa: E402
from rsn.runtime import VolumeHandle  # noqa: E402
from rsn.settings import Settings  # noqa: E402
from rsn.sync import SyncReport  # noqa: E402


@pytest.fixture(autouse=True)
def journal(tmp_path, monkeypatch):
    """Point the event journal at a throwaway sqlite file."""
    monkeypatch.setattr(db, "settings", replace(db.settings, db_path=str(tmp_path / "journal" / "rsn.db")))
    db.init_db()
    return db


def solrconfig_xml(conf_files=None, marker="template"):
    handler = ""
    if conf_files is not None:
        handler = f"""
  <requestHandler name="/replication" class="solr.ReplicationHandler">
    <lst name="master">
      <str name="replicateAfter">commit</str>
      <str name="confFiles">{conf_files}</str>
    </lst>
  </requestHandler>"""
    return f"""<?xml version="1.0" encoding="UTF-8" ?>
<config>
  <!-- {marker} -->
  <luceneMatchVersion>LUCENE_36</luceneMatchVersion>{handler}
</config>
"""


def _write(path, text):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


@pytest.fixture
def write_file():
    return _write


@pytest.fixture
def solr_tree(tmp_path):
    """A 3.x server distribution plus master templates.

    Returns a callable taking the replication declaration to put in the
    template solrconfig.xml (None for no declaration).
    """

    def build(conf_files="schema.xml,solrconfig.xml"):
        server = tmp_path / "approot"
        templates = tmp_path / "approot" / "SolrFiles"
        conf = server / "Solr" / "example" / "solr" / "conf"

        _write(str(conf / "schema.xml"), "<schema name='example'/>")
        _write(str(conf / "solrconfig.xml"), solrconfig_xml(None, marker="distribution"))
        _write(str(conf / "stopwords.txt"), "a\nan\nthe\n")
        _write(str(conf / "synonyms.txt"), "tv,television\n")
        _write(str(conf / "elevate.xml"), "<elevate/>")
        _write(str(conf / "lang" / "stopwords_en.txt"), "and\nor\n")
        _write(str(conf / "lang" / "stopwords_de.txt"), "und\noder\n")
        _write(str(server / "Solr" / "dist" / "apache-solr-core-3.6.2.jar"), "core-jar")
        _write(str(server / "Solr" / "dist" / "apache-solr-cell-3.6.2.jar"), "cell-jar")
        _write(str(server / "Solr" / "contrib" / "extraction" / "lib" / "tika-core-1.0.jar"), "tika")
        _write(str(server / "Solr" / "contrib" / "extraction" / "lib" / "extra" / "poi-3.8.jar"), "poi")

        _write(str(templates / "schema.xml"), "<schema name='wikipedia'/>")
        _write(str(templates / "solrconfig.xml"), solrconfig_xml(conf_files))
        _write(str(templates / "data-config.xml"), "<dataConfig/>")

        return str(server), str(templates), str(tmp_path / "volume")

    return build


@pytest.fixture
def locations():
    return resolve_locations("3")


@pytest.fixture
def node_settings():
    return Settings(
        instance_id="SolrSlave_IN_0",
        address="10.0.0.5",
        port=8983,
        solr_major_version="3",
        drive_size_mb=1024,
        cache_capacity_mb=1074,
        server_root="/srv/approot",
        template_root="/srv/approot/SolrFiles",
        java_path="java",
        core_name="slaveCore",
        poll_interval_s=0,
        kill_timeout_s=1,
        enable_file_log=False,
        enable_email=False,
    )


@pytest.fixture
def mail_settings(node_settings):
    """Settings with every SMTP field filled in, pointed at 127.0.0.1:<port>."""

    def build(port):
        return replace(
            node_settings,
            enable_email=True,
            smtp_host="127.0.0.1",
            smtp_port=port,
            smtp_user="rsn",
            smtp_password="secret",
            email_from="rsn@example.com",
            email_to="ops@example.com",
            smtp_timeout_s=1,
        )

    return build


@pytest.fixture
def silent_smtp_port():
    """A listening socket that accepts connections but never sends a greeting."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


class FakeProvisioner:
    def __init__(self, mount_path, error=None):
        self.mount_path = mount_path
        self.error = error
        self.acquired = []
        self.released = []

    def acquire(self, size_mb, cache_capacity_mb):
        self.acquired.append((size_mb, cache_capacity_mb))
        if self.error:
            raise self.error
        return VolumeHandle("solrslave-in-0", "SolrStorage_3", size_mb, self.mount_path)

    def release(self, handle):
        self.released.append(handle)


class FakeSynchronizer:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def sync(self, volume_root):
        self.calls.append(volume_root)
        if self.error:
            raise self.error
        return SyncReport(copied=["schema.xml"], protected=[])


class FakeChild:
    def __init__(self, pid=4242):
        self.pid = pid
        self.exited = False
        self.returncode = None


class FakeSupervisor:
    def __init__(self, error=None):
        self.error = error
        self.launches = []
        self.killed = []
        self.child = FakeChild()
        self.on_exit = None

    def launch(self, args, cwd=None, on_exit=None, env=None):
        self.launches.append((args, cwd))
        if self.error:
            raise self.error
        self.on_exit = on_exit
        return self.child

    def kill(self, child, timeout=2.0):
        self.killed.append((child, timeout))

    def crash(self, code=1):
        self.child.exited = True
        self.child.returncode = code


class FakeTopology:
    """Returns each queued master endpoint in turn, then repeats the last one."""

    def __init__(self, *endpoints):
        self.endpoints = list(endpoints)
        self.published = []
        self.lookups = 0

    def resolve_master_endpoint(self):
        self.lookups += 1
        value = self.endpoints[0] if len(self.endpoints) == 1 else self.endpoints.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def publish_self_endpoint(self, instance_id, address, port, is_master):
        self.published.append((instance_id, address, port, is_master))


class FakeRecycler:
    def __init__(self):
        self.requests = 0

    def request_recycle(self):
        self.requests += 1


class CountingTicker:
    """Lets the monitor loop run `limit` polls without sleeping."""

    def __init__(self, limit=10):
        self.limit = limit
        self.ticks = 0
        self.cancelled = False

    def wait(self, interval):
        if self.cancelled or self.ticks >= self.limit:
            return False
        self.ticks += 1
        return True

    def cancel(self):
        self.cancelled = True


@pytest.fixture
def fakes(tmp_path):
    class _Fakes:
        Provisioner = FakeProvisioner
        Synchronizer = FakeSynchronizer
        Supervisor = FakeSupervisor
        Topology = FakeTopology
        Recycler = FakeRecycler
        Ticker = CountingTicker
        mount_path = str(tmp_path / "mnt")
        errors = {"provision": ProvisionError, "sync": SyncError, "launch": LaunchError}

    return _Fakes
