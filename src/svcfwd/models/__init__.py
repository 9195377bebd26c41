from svcfwd.models.enums import ForwardState, LogLevel
from svcfwd.models.target import UNNAMED_PORT, PortRecord, Target

__all__ = [
    "ForwardState",
    "LogLevel",
    "PortRecord",
    "Target",
    "UNNAMED_PORT",
]
