"""Cluster access used for discovery and forwarding."""

from svcfwd.kube.client import (
    PORTS_TEMPLATE,
    KubectlClient,
    RemoteClusterClient,
    parse_ports,
)

__all__ = [
    "KubectlClient",
    "PORTS_TEMPLATE",
    "RemoteClusterClient",
    "parse_ports",
]
