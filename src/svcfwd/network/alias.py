"""
Loopback alias management.

Every forwarded service listens on its own address, which has to exist on
the loopback interface before kubectl can bind to it. The OS specific
part is an ``AliasBackend``; ``NetworkAliasManager`` adds the all-or-nothing
setup and the collect-and-continue cleanup on top of it.

Backends:
- Linux: pyroute2 netlink calls on ``lo``
- macOS: ``ifconfig lo0 alias`` / ``ifconfig lo0 -alias``
"""

from __future__ import annotations

import asyncio
import ipaddress
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from svcfwd.exceptions import NetworkAliasError
from svcfwd.utils.logger import get_logger

if TYPE_CHECKING:
    from loguru import Logger

logger = get_logger(__name__)


# =============================================================================
# Backends
# =============================================================================


class AliasBackend(ABC):
    """Adds and removes a single loopback alias (blocking)."""

    @abstractmethod
    def add(self, address: str) -> None:
        """Add ``address`` to the loopback interface. Must be idempotent."""

    @abstractmethod
    def remove(self, address: str) -> None:
        """Remove ``address`` from the loopback interface."""

    def close(self) -> None:
        """Release backend resources."""


class PyRouteAliasBackend(AliasBackend):
    """Linux backend using netlink through pyroute2."""

    def __init__(self, interface: str = "lo"):
        self.interface = interface
        self._ipr = None
        self._index: int | None = None

    def _get_ipr(self):
        """Get or create IPRoute instance."""
        if self._ipr is None:
            from pyroute2 import IPRoute

            self._ipr = IPRoute()
        return self._ipr

    def _link_index(self) -> int:
        if self._index is None:
            ipr = self._get_ipr()
            for link in ipr.get_links():
                if link.get_attr("IFLA_IFNAME") == self.interface:
                    self._index = link["index"]
                    break
            else:
                raise NetworkAliasError(f"interface {self.interface} not found")
        return self._index

    @staticmethod
    def _prefixlen(address: str) -> int:
        return ipaddress.ip_address(address).max_prefixlen

    def _has_address(self, index: int, address: str) -> bool:
        for addr in self._get_ipr().get_addr(index=index):
            if addr.get_attr("IFA_ADDRESS") == address:
                return True
        return False

    def add(self, address: str) -> None:
        index = self._link_index()
        if self._has_address(index, address):
            logger.debug(f"{address} already present on {self.interface}")
            return
        self._get_ipr().addr(
            "add", index=index, address=address, prefixlen=self._prefixlen(address)
        )

    def remove(self, address: str) -> None:
        index = self._link_index()
        self._get_ipr().addr(
            "del", index=index, address=address, prefixlen=self._prefixlen(address)
        )

    def close(self) -> None:
        """Close the IPRoute connection."""
        if self._ipr is not None:
            self._ipr.close()
            self._ipr = None
            self._index = None


class IfconfigAliasBackend(AliasBackend):
    """macOS backend shelling out to ifconfig."""

    def __init__(self, interface: str = "lo0", ifconfig: str = "ifconfig"):
        self.interface = interface
        self.ifconfig = ifconfig

    def _run(self, *args: str) -> None:
        cmd = [self.ifconfig, self.interface, *args]
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise NetworkAliasError(
                f"{' '.join(cmd)} failed ({result.returncode}): "
                f"{result.stderr.strip()}"
            )

    def add(self, address: str) -> None:
        # ifconfig alias on an existing address is a no-op
        self._run("alias", address)

    def remove(self, address: str) -> None:
        self._run("-alias", address)


def select_alias_backend(interface: str = "") -> AliasBackend:
    """Pick the backend for the running platform."""
    if sys.platform.startswith("linux"):
        return PyRouteAliasBackend(interface or "lo")
    if sys.platform == "darwin":
        return IfconfigAliasBackend(interface or "lo0")
    raise NetworkAliasError(f"loopback aliases are not supported on {sys.platform}")


# =============================================================================
# Manager
# =============================================================================


class NetworkAliasManager:
    """
    Sets up and tears down the loopback aliases of one run.

    ``setup`` is all-or-nothing: a failure rolls back what was added.
    ``cleanup`` always tries every address and reports failures together.
    """

    def __init__(self, backend: AliasBackend, log: Logger | None = None):
        self.backend = backend
        self.log = log or logger

    async def setup(self, addresses: list[str]) -> None:
        """
        Add a loopback alias for each address.

        Raises:
            NetworkAliasError: If any alias could not be added. Aliases
                added before the failure have been removed again.
        """
        aliased: list[str] = []
        for address in addresses:
            try:
                await asyncio.to_thread(self.backend.add, address)
            except Exception as e:
                self.log.error(f"Failed to alias {address}: {e}")
                await self._rollback(aliased)
                raise NetworkAliasError(
                    f"failed to alias {address}: {e}", [address]
                ) from e
            aliased.append(address)
            self.log.debug(f"Aliased {address}")

        self.log.info(f"Loopback aliases ready ({len(aliased)} addresses)")

    async def _rollback(self, aliased: list[str]) -> None:
        if not aliased:
            return
        self.log.info(f"Reverting {len(aliased)} loopback aliases")
        try:
            await self.cleanup(aliased)
        except NetworkAliasError as e:
            self.log.warning(f"Rollback incomplete: {e}")

    async def cleanup(self, addresses: list[str]) -> None:
        """
        Remove the loopback alias of each address.

        Raises:
            NetworkAliasError: After every address was tried, if at least
                one removal failed.
        """
        failed: list[str] = []
        messages: list[str] = []
        for address in addresses:
            try:
                await asyncio.to_thread(self.backend.remove, address)
                self.log.debug(f"Removed alias {address}")
            except Exception as e:
                failed.append(address)
                messages.append(f"{address}: {e}")

        if failed:
            raise NetworkAliasError("; ".join(messages), failed)

    def close(self) -> None:
        self.backend.close()
