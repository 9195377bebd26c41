"""Target resolution and forward supervision."""

from svcfwd.services.conflicts import check_conflicts
from svcfwd.services.contexts import fill_contexts
from svcfwd.services.orchestrator import Fwd, prepare_targets
from svcfwd.services.ports import fill_ports
from svcfwd.services.supervisor import ForwardSupervisor

__all__ = [
    "ForwardSupervisor",
    "Fwd",
    "check_conflicts",
    "fill_contexts",
    "fill_ports",
    "prepare_targets",
]
