"""
Sequential address allocation over a configured range.

The range is an address with a prefix, e.g. ``127.1.27.0/24``. The given
address is the starting point and is never handed out itself; every
allocation increments it by one and checks that the result is still
inside the network.
"""

from __future__ import annotations

import ipaddress

from svcfwd.exceptions import ConfigError, RangeExhaustedError


class AddressAllocator:
    """
    Hands out distinct, increasing addresses from one network.

    For IPv4 networks larger than two addresses the broadcast address is
    treated as outside the range, so ``10.0.0.0/30`` yields ``10.0.0.1``
    and ``10.0.0.2`` only.
    """

    def __init__(self, address_range: str):
        try:
            interface = ipaddress.ip_interface(address_range.strip())
        except ValueError as e:
            raise ConfigError(f"Invalid address range '{address_range}': {e}") from e

        self.address_range = address_range
        self.network = interface.network
        self._current = interface.ip
        self._last = self._last_usable(self.network)
        self.allocated = 0

    @staticmethod
    def _last_usable(network: ipaddress.IPv4Network | ipaddress.IPv6Network):
        if network.version == 4 and network.num_addresses > 2:
            return network.broadcast_address - 1
        return network.broadcast_address

    def next_address(self) -> str:
        """
        Advance to the next address.

        Raises:
            RangeExhaustedError: If the next address leaves the range.
        """
        if self._current >= self._last or self._current not in self.network:
            raise RangeExhaustedError(self.address_range, self.allocated)

        self._current += 1
        self.allocated += 1
        return str(self._current)

    def allocate(self, count: int) -> list[str]:
        """Allocate ``count`` addresses in order."""
        if count < 0:
            raise ValueError(f"count must not be negative: {count}")
        return [self.next_address() for _ in range(count)]
