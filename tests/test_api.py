import pytest
from fastapi.testclient import TestClient

from rsn.api import create_app
from rsn.controller import LifecycleController


@pytest.fixture
def controller(node_settings, locations, fakes):
    return LifecycleController(
        settings=node_settings,
        locations=locations,
        provisioner=fakes.Provisioner(fakes.mount_path),
        synchronizer=fakes.Synchronizer(),
        supervisor=fakes.Supervisor(),
        topology=fakes.Topology("http://master:8983/solr/"),
        recycler=fakes.Recycler(),
        ticker=fakes.Ticker(),
    )


def test_health_is_503_until_monitoring(controller):
    client = TestClient(create_app(controller))

    r = client.get("/health")
    assert r.status_code == 503
    assert r.json() == {"status": "unhealthy", "phase": "idle"}

    controller.start()
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy", "phase": "monitoring"}

    controller.request_recycle("test")
    assert client.get("/health").status_code == 503


def test_status_reports_launch_details(controller, fakes):
    controller.start()
    body = TestClient(create_app(controller)).get("/status").json()

    assert body["instance_id"] == "SolrSlave_IN_0"
    assert body["phase"] == "monitoring"
    assert body["master_endpoint"] == "http://master:8983/solr/"
    assert body["mount_path"] == fakes.mount_path
    assert body["container_key"] == "solrslave-in-0"
    assert body["pid"] == 4242
    assert body["child_exited"] is False
    assert body["recycle_reason"] is None


def test_events_lists_latest_first(controller):
    controller.start()
    client = TestClient(create_app(controller))

    r = client.get("/events", params={"limit": 2})
    assert r.status_code == 200
    events = r.json()
    assert len(events) == 2
    assert events[0]["id"] > events[1]["id"]
    assert events[0]["message"] == "Entering monitoring"

    assert client.get("/events", params={"limit": 0}).status_code == 422
