"""
Remote cluster access.

``RemoteClusterClient`` is everything the forwarding engine needs from a
cluster: the known contexts, the Service ports of a context and a running
forward. ``KubectlClient`` implements it on top of the kubectl binary.

Forward semantics:
    kubectl port-forward writes nothing to stderr while healthy. The first
    byte on stderr, with or without a newline, or stderr closing because
    the process died, is taken as a transient failure: the child is killed
    and the caller reconnects. The message content is logged but not
    interpreted, so benign diagnostics also cause a reconnect. Exit codes
    are not consulted.
"""

from __future__ import annotations

import asyncio
import csv
import io
from abc import ABC, abstractmethod
from typing import Callable

from svcfwd.exceptions import DiscoveryError, ForwardCancelled, TransientForwardError
from svcfwd.models.target import UNNAMED_PORT, PortRecord
from svcfwd.utils.logger import get_logger

logger = get_logger(__name__)

# kubectl prints this for a missing template field
NO_VALUE = "<no value>"

# stderr kept for the reconnect message, and how long to wait for it
STDERR_DETAIL_BYTES = 1024
STDERR_DRAIN_SECONDS = 1.0

# Output: <namespace>,<service>,<protocol>,<portName>,<portNumber>
PORTS_TEMPLATE = (
    "{{range $i, $svc := .items}}{{range .spec.ports}}"
    "{{$svc.metadata.namespace}},{{$svc.metadata.name}},"
    "{{.protocol}},{{.name}},{{.port}}"
    "{{println}}{{end}}{{end}}"
)


class RemoteClusterClient(ABC):
    """Discovery and forwarding against remote clusters."""

    @abstractmethod
    async def contexts(self) -> tuple[set[str], str]:
        """
        Get the available contexts and the current one.

        Returns:
            (available, current). ``current`` is empty when unset.

        Raises:
            DiscoveryError: If the contexts cannot be listed.
        """

    @abstractmethod
    async def ports(self, context: str) -> list[PortRecord]:
        """
        Get every Service port visible in ``context``.

        Raises:
            DiscoveryError: If the query cannot be run or parsed.
        """

    @abstractmethod
    async def forward(
        self,
        context: str,
        namespace: str,
        service: str,
        ports: list[str],
        address: str,
        stop_event: asyncio.Event,
        on_ready: Callable[[], None] | None = None,
    ) -> None:
        """
        Run one forward until it fails or is stopped.

        Never returns normally.

        Raises:
            TransientForwardError: The forward failed and should be retried.
            ForwardCancelled: ``stop_event`` was set.
        """


# =============================================================================
# kubectl
# =============================================================================


class KubectlClient(RemoteClusterClient):
    """RemoteClusterClient backed by the kubectl binary."""

    def __init__(self, kubectl: str = "kubectl"):
        self.kubectl = kubectl

    async def _run(self, *args: str) -> tuple[int, str, str]:
        """Run kubectl to completion, return (exit_code, stdout, stderr)."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.kubectl,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DiscoveryError(f"failed to run {self.kubectl}: {e}") from e

        stdout, stderr = await process.communicate()
        return (
            process.returncode,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )

    async def contexts(self) -> tuple[set[str], str]:
        code, out, err = await self._run("config", "get-contexts", "-o", "name")
        if code != 0:
            raise DiscoveryError(f"get-contexts: {err.strip() or out.strip()}")
        available = {line.strip() for line in out.splitlines() if line.strip()}

        code, out, err = await self._run("config", "current-context")
        if code != 0:
            # No current context set, only fatal if a target needs it
            logger.debug(f"current-context: {err.strip()}")
            return available, ""
        return available, out.strip()

    async def ports(self, context: str) -> list[PortRecord]:
        code, out, err = await self._run(
            "get",
            "services",
            "--context",
            context,
            "--all-namespaces",
            f"-o=go-template={PORTS_TEMPLATE}",
        )
        if code != 0:
            raise DiscoveryError(f"get services ({context}): {err.strip()}")
        return parse_ports(out, context)

    @staticmethod
    def forward_command(
        kubectl: str,
        context: str,
        namespace: str,
        service: str,
        ports: list[str],
        address: str,
    ) -> list[str]:
        return [
            kubectl,
            "port-forward",
            f"svc/{service}",
            "--context",
            context,
            "--address",
            address,
            "--namespace",
            namespace,
            *ports,
        ]

    async def forward(
        self,
        context: str,
        namespace: str,
        service: str,
        ports: list[str],
        address: str,
        stop_event: asyncio.Event,
        on_ready: Callable[[], None] | None = None,
    ) -> None:
        global_id = f"{service}.{namespace}.{context}"
        cmd = self.forward_command(
            self.kubectl, context, namespace, service, ports, address
        )
        logger.debug(f"[{global_id}] Starting: {' '.join(cmd)}")

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        logger.debug(f"[{global_id}] kubectl PID: {process.pid}")

        stdout_task = asyncio.create_task(
            _drain_stdout(process.stdout, global_id, on_ready)
        )
        stderr_task = asyncio.create_task(process.stderr.read(1))
        stop_task = asyncio.create_task(stop_event.wait())

        try:
            done, _ = await asyncio.wait(
                {stderr_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (stderr_task, stop_task):
                task.cancel()
            await _kill(process)
            stdout_task.cancel()
            await asyncio.gather(
                stdout_task, stderr_task, stop_task, return_exceptions=True
            )

        # A stop wins over stderr output that arrived at the same time
        if stop_task in done:
            raise ForwardCancelled(global_id)

        first = stderr_task.result()
        if not first:
            raise TransientForwardError(global_id, "kubectl exited")

        rest = await _read_pending(process.stderr)
        text = (first + rest).decode(errors="replace").strip()
        detail = text.splitlines()[0] if text else "blank output on stderr"
        raise TransientForwardError(global_id, detail)


async def _drain_stdout(
    stream: asyncio.StreamReader,
    global_id: str,
    on_ready: Callable[[], None] | None,
) -> None:
    """Log kubectl stdout, report readiness on the first line."""
    ready = False
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # Overlong line, the reader has already dropped it
            continue
        if not line:
            return
        logger.debug(f"[{global_id}] {line.decode(errors='replace').rstrip()}")
        if not ready:
            ready = True
            if on_ready is not None:
                on_ready()


async def _read_pending(stream: asyncio.StreamReader) -> bytes:
    """Up to ``STDERR_DETAIL_BYTES`` of what the reaped child left on ``stream``."""
    try:
        return await asyncio.wait_for(
            stream.read(STDERR_DETAIL_BYTES), STDERR_DRAIN_SECONDS
        )
    except asyncio.TimeoutError:
        return b""


async def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill and reap the child."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


def parse_ports(output: str, context: str = "") -> list[PortRecord]:
    """
    Parse the CSV produced by ``PORTS_TEMPLATE``.

    Raises:
        DiscoveryError: On a malformed record.
    """
    records: list[PortRecord] = []
    try:
        rows = list(csv.reader(io.StringIO(output)))
    except csv.Error as e:
        raise DiscoveryError(f"failed to parse ports ({context}): {e}") from e

    for row in rows:
        if not row:
            continue
        if len(row) != 5:
            raise DiscoveryError(
                f"failed to parse ports ({context}): unexpected record {row!r}"
            )
        namespace, service, protocol, name, number = (field.strip() for field in row)
        if not name or name == NO_VALUE:
            name = UNNAMED_PORT
        records.append(
            PortRecord(
                namespace=namespace,
                service=service,
                protocol=protocol.lower(),
                name=name,
                number=number,
            )
        )
    return records
