"""
Forwarding target data model.

A Target is one configured service. It is created once from the flattened
configuration and filled in place as the run progresses: context
resolution sets ``context``, conflict checking sets ``conflict``, port
discovery fills ``ports`` and the orchestrator assigns ``address``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Port name used when the Service port has no name
UNNAMED_PORT = "unnamed"

PROTOCOL_TCP = "tcp"


@dataclass
class PortRecord:
    """One Service port as reported by the cluster."""

    namespace: str
    service: str
    protocol: str  # lower case, e.g. "tcp"
    name: str
    number: str  # kept as text, only ever passed back to kubectl

    @property
    def local_id(self) -> str:
        return f"{self.service}.{self.namespace}"

    @property
    def is_tcp(self) -> bool:
        return self.protocol.lower() == PROTOCOL_TCP


@dataclass
class Target:
    """
    A service to forward.

    Attributes:
        context: kubeconfig context name, empty until resolved.
        namespace: Kubernetes namespace of the service.
        service: Service name.
        address: Loopback address assigned for this run.
        ports: Port number -> "name,protocol".
        conflict: True when another target shares ``local_id``.
        aliases: Extra hostnames, registered as-is.
    """

    context: str
    namespace: str
    service: str
    address: str = ""
    ports: dict[str, str] = field(default_factory=dict)
    conflict: bool = False
    aliases: list[str] = field(default_factory=list)

    @property
    def local_id(self) -> str:
        """Short hostname, unique only within a context."""
        return f"{self.service}.{self.namespace}"

    @property
    def global_id(self) -> str:
        """Fully qualified hostname, unique across the run."""
        return f"{self.service}.{self.namespace}.{self.context}"

    def add_port(self, record: PortRecord) -> None:
        self.ports[record.number] = f"{record.name},{record.protocol}"

    def port_numbers(self) -> list[str]:
        return list(self.ports)

    def hostnames(self) -> list[str]:
        """Hostnames registered for this target, in registration order."""
        names = [self.global_id]
        if not self.conflict:
            names.append(self.local_id)
        names.extend(self.aliases)
        return names
