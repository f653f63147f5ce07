from __future__ import annotations


class NodeError(Exception):
    """Base class for everything that ends a startup attempt."""


class ProvisionError(NodeError):
    """Container, volume or mount failure."""


class SyncError(NodeError):
    """A template could not be parsed or a file could not be copied."""


class LaunchError(NodeError):
    """The search server process could not be started."""


class RuntimeFault(NodeError):
    """Detected after launch: the server exited or the topology changed."""


class TopologyError(RuntimeFault):
    """The instance directory could not be queried or updated."""
