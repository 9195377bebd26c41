"""
Per-target forward supervision.

A ForwardSupervisor keeps one kubectl port-forward alive for one target:

    STARTING -> CONNECTED -> TRANSIENT_ERROR -> STARTING ... (forever)
                          -> CANCELLED -> STOPPED

Reconnects are unconditional and unbounded. Only the shared stop event
ends a supervisor cleanly; any other error stops it and propagates.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from svcfwd.exceptions import ForwardCancelled, TransientForwardError
from svcfwd.kube.client import RemoteClusterClient
from svcfwd.models.enums import ForwardState
from svcfwd.models.target import Target
from svcfwd.utils.logger import get_logger

if TYPE_CHECKING:
    from loguru import Logger

logger = get_logger(__name__)


class ForwardSupervisor:
    """Runs and restarts the forward of a single target."""

    def __init__(
        self,
        target: Target,
        client: RemoteClusterClient,
        stop_event: asyncio.Event,
        reconnect_delay: float = 0.0,
        log: Logger | None = None,
    ):
        self.target = target
        self.client = client
        self.stop_event = stop_event
        self.reconnect_delay = reconnect_delay
        self.log = log or logger

        self.state = ForwardState.STARTING
        self.restarts = 0

    def _log_endpoints(self) -> None:
        t = self.target
        for number, description in t.ports.items():
            name = description.split(",", 1)[0]
            self.log.info(f"forwarding {t.global_id}:{number} ({name})")
            if not t.conflict:
                self.log.info(f"forwarding {t.local_id}:{number} ({name})")
            for alias in t.aliases:
                self.log.info(f"forwarding {alias}:{number} ({name})")

    def _on_ready(self) -> None:
        self.state = ForwardState.CONNECTED
        self.log.debug(f"[{self.target.global_id}] Connected")

    async def run(self) -> None:
        """
        Supervise until stopped.

        Returns normally after a stop request. Re-raises anything that is
        neither a transient failure nor a cancellation.
        """
        t = self.target
        try:
            while True:
                if self.stop_event.is_set():
                    self.state = ForwardState.CANCELLED
                    break

                self.state = ForwardState.STARTING
                self._log_endpoints()
                try:
                    await self.client.forward(
                        t.context,
                        t.namespace,
                        t.service,
                        t.port_numbers(),
                        t.address,
                        self.stop_event,
                        on_ready=self._on_ready,
                    )
                except TransientForwardError as e:
                    self.state = ForwardState.TRANSIENT_ERROR
                    self.restarts += 1
                    self.log.warning(
                        f"error detected in {t.global_id}, reconnecting... ({e.detail})"
                    )
                    if self.reconnect_delay > 0:
                        await self._pause()
                    continue
                except ForwardCancelled:
                    self.state = ForwardState.CANCELLED
                    break
        finally:
            self.state = ForwardState.STOPPED

        self.log.debug(f"[{t.global_id}] Stopped after {self.restarts} reconnects")

    async def _pause(self) -> None:
        """Sleep for the reconnect delay, waking early on stop."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), self.reconnect_delay)
        except asyncio.TimeoutError:
            pass
