from __future__ import annotations

import logging
from typing import Protocol

import httpx

from .errors import TopologyError
from .runtime import TopologySnapshot

logger = logging.getLogger(__name__)


class Topology(Protocol):
    def resolve_master_endpoint(self) -> str: ...

    def publish_self_endpoint(self, instance_id: str, address: str, port: int, is_master: bool) -> None: ...


def node_url(address: str, port: int) -> str:
    return f"http://{address}:{int(port)}/solr/"


def snapshot(topology: Topology) -> TopologySnapshot:
    return TopologySnapshot(master_endpoint=topology.resolve_master_endpoint())


class HttpTopology:
    """Instance directory reached over HTTP.

    Expected API:
      GET  /roles/master -> {"url": "http://host:port/solr/"}
      POST /roles        <- {"id", "address", "port", "is_master"}
    """

    def __init__(self, base_url: str, timeout_s: float = 5.0, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout_s, transport=self.transport)

    def resolve_master_endpoint(self) -> str:
        try:
            with self._client() as client:
                resp = client.get("/roles/master")
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise TopologyError(f"Master lookup failed: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise TopologyError("Master lookup returned invalid JSON") from e

        url = data.get("url") if isinstance(data, dict) else None
        if not isinstance(url, str) or not url:
            raise TopologyError(f"Master lookup returned no url: {data!r}")
        return url

    def publish_self_endpoint(self, instance_id: str, address: str, port: int, is_master: bool) -> None:
        payload = {"id": instance_id, "address": address, "port": int(port), "is_master": is_master}
        try:
            with self._client() as client:
                resp = client.post("/roles", json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TopologyError(f"Publishing {instance_id} failed: {type(e).__name__}: {e}") from e


class StaticTopology:
    """Master endpoint from a fixed value or from a file re-read on every lookup."""

    def __init__(self, master_url: str | None = None, path: str | None = None):
        if not master_url and not path:
            raise ValueError("StaticTopology needs a master_url or a path")
        self.master_url = master_url
        self.path = path

    def resolve_master_endpoint(self) -> str:
        if self.path:
            try:
                with open(self.path, encoding="utf-8") as f:
                    url = f.read().strip()
            except OSError as e:
                raise TopologyError(f"Cannot read master endpoint from {self.path}: {e}") from e
            if not url:
                raise TopologyError(f"{self.path} is empty")
            return url
        return self.master_url  # type: ignore[return-value]

    def publish_self_endpoint(self, instance_id: str, address: str, port: int, is_master: bool) -> None:
        logger.info("Not publishing %s (%s): static topology", instance_id, node_url(address, port))
