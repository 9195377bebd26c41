"""Local network state: address allocation, loopback aliases, hosts file."""

from svcfwd.network.alias import (
    AliasBackend,
    IfconfigAliasBackend,
    NetworkAliasManager,
    PyRouteAliasBackend,
    select_alias_backend,
)
from svcfwd.network.allocator import AddressAllocator
from svcfwd.network.hosts import HostsFile, HostsStore, HostsSynchronizer

__all__ = [
    "AddressAllocator",
    "AliasBackend",
    "HostsFile",
    "HostsStore",
    "HostsSynchronizer",
    "IfconfigAliasBackend",
    "NetworkAliasManager",
    "PyRouteAliasBackend",
    "select_alias_backend",
]
