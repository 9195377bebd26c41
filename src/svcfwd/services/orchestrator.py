"""
Run orchestration.

``Fwd.run`` drives one run from configured targets to torn-down state:

    1. fill_contexts
    2. check_conflicts
    3. fill_ports         (1-3 validate only, nothing touched yet)
    4. allocate addresses
    5. loopback aliases   (cleanup registered)
    6. hosts entries      (cleanup registered)
    7. one ForwardSupervisor per target until stopped

Teardown runs in reverse (hosts, then aliases) only after every
supervisor has finished, whatever ended the run. A stop requested
before step 5 ends the run without touching the system.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from svcfwd.exceptions import FwdError, HostsError, NetworkAliasError, NoServicesError
from svcfwd.kube.client import RemoteClusterClient
from svcfwd.models.target import Target
from svcfwd.network.alias import NetworkAliasManager
from svcfwd.network.allocator import AddressAllocator
from svcfwd.network.hosts import HostsSynchronizer
from svcfwd.services.conflicts import check_conflicts
from svcfwd.services.contexts import fill_contexts
from svcfwd.services.ports import fill_ports
from svcfwd.services.supervisor import ForwardSupervisor
from svcfwd.utils.logger import format_traceback, get_logger

if TYPE_CHECKING:
    from loguru import Logger

logger = get_logger(__name__)


async def prepare_targets(
    client: RemoteClusterClient,
    address_range: str,
    targets: list[Target],
    log: Logger | None = None,
) -> tuple[list[Target], list[str]]:
    """
    Resolve contexts, conflicts, ports and addresses.

    Touches neither the network nor the hosts file.

    Returns:
        (active, missing) as returned by ``fill_ports``, with an address
        assigned to every active target.

    Raises:
        FwdError: Any validation or discovery failure.
    """
    log = log or logger
    if not targets:
        raise NoServicesError("no services configured")

    # Parse the range up front so a bad value fails before discovery
    allocator = AddressAllocator(address_range)

    log.info("filling contexts...")
    await fill_contexts(targets, client, log=log)

    log.info("checking for conflicts...")
    check_conflicts(targets, log=log)

    log.info("filling service ports...")
    active, missing = await fill_ports(targets, client, log=log)

    addresses = allocator.allocate(len(active))
    for target, address in zip(active, addresses):
        target.address = address

    return active, missing


class Fwd:
    """
    Forwarding run for a fixed set of targets.

    Attributes:
        targets: Active targets. Narrowed by ``prepare`` to those with ports.
        missing: Global ids dropped because no port was found.
        supervisors: Populated once forwarding starts.
    """

    def __init__(
        self,
        client: RemoteClusterClient,
        alias_manager: NetworkAliasManager,
        hosts: HostsSynchronizer,
        address_range: str,
        targets: list[Target],
        reconnect_delay: float = 0.0,
        log: Logger | None = None,
    ):
        self.client = client
        self.alias_manager = alias_manager
        self.hosts = hosts
        self.address_range = address_range
        self.targets = list(targets)
        self.reconnect_delay = reconnect_delay
        self.log = log or logger

        self.missing: list[str] = []
        self.supervisors: list[ForwardSupervisor] = []

    # =========================================================================
    # Preparation
    # =========================================================================

    async def prepare(self) -> list[Target]:
        """Resolve the targets of this run, see ``prepare_targets``."""
        self.targets, self.missing = await prepare_targets(
            self.client, self.address_range, self.targets, log=self.log
        )
        return self.targets

    async def _prepare_until_stopped(self, stop_event: asyncio.Event) -> bool:
        """
        Run ``prepare`` unless a stop arrives first.

        Returns:
            False if stopped, in which case discovery has been cancelled.
        """
        prepare_task = asyncio.create_task(self.prepare())
        stop_task = asyncio.create_task(stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {prepare_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (prepare_task, stop_task):
                task.cancel()
            await asyncio.gather(prepare_task, stop_task, return_exceptions=True)

        if stop_task in done:
            return False
        # Re-raise preparation errors
        prepare_task.result()
        return True

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Prepare, set up local state, forward until ``stop_event`` is set.

        Raises:
            FwdError: Preparation or setup failed. Local state is clean.
            Exception: A supervisor failed. Teardown has already run.
        """
        if not await self._prepare_until_stopped(stop_event):
            self.log.info("stop requested during preparation, nothing was set up")
            return
        addresses = [t.address for t in self.targets]

        self.log.info("running global setup...")
        await self.alias_manager.setup(addresses)

        try:
            if stop_event.is_set():
                self.log.info("stop requested during setup, skipping hosts")
                return

            self.log.info("writing hosts...")
            try:
                await self.hosts.write(self.targets)
            except (OSError, HostsError) as e:
                raise HostsError(f"failed to update hosts file: {e}") from e

            try:
                await self._supervise(stop_event)
            finally:
                await self._remove_hosts()
        finally:
            await self._cleanup_aliases(addresses)

    async def _supervise(self, stop_event: asyncio.Event) -> None:
        self.supervisors = [
            ForwardSupervisor(
                target,
                self.client,
                stop_event,
                reconnect_delay=self.reconnect_delay,
                log=self.log,
            )
            for target in self.targets
        ]
        tasks = [
            asyncio.create_task(sup.run(), name=f"fwd:{sup.target.global_id}")
            for sup in self.supervisors
        ]

        error: BaseException | None = None
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    error = task.exception()
                    break
        finally:
            # Stop everything, then wait: no child may outlive this block
            stop_event.set()
            await asyncio.gather(*tasks, return_exceptions=True)

        if error is not None:
            self.log.warning(f"error caught: {error}")
            self.log.debug(format_traceback(error))
            raise error

    # =========================================================================
    # Teardown
    # =========================================================================

    async def _remove_hosts(self) -> None:
        self.log.info("cleaning up hosts...")
        try:
            await self.hosts.remove(self.targets)
        except (OSError, FwdError) as e:
            self.log.warning(f"failed to clean up hosts file: {e}")

    async def _cleanup_aliases(self, addresses: list[str]) -> None:
        self.log.info("running global cleanup...")
        try:
            await self.alias_manager.cleanup(addresses)
        except (OSError, NetworkAliasError) as e:
            self.log.warning(f"failed to clean up local network: {e}")
