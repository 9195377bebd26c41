"""
Enumeration types for svcfwd.

Defines the forwarder lifecycle states and logging levels shared across
the CLI and the forwarding engine.
"""

from enum import Enum


# =============================================================================
# Forwarding Enums
# =============================================================================


class ForwardState(str, Enum):
    """
    Lifecycle state of a single forward supervisor.

    State transitions:
        STARTING -> CONNECTED (kubectl reported it is listening)
        STARTING/CONNECTED -> TRANSIENT_ERROR -> STARTING (reconnect)
        STARTING/CONNECTED -> CANCELLED -> STOPPED (operator shutdown)
        Any -> STOPPED (unrecoverable error, propagated)
    """

    STARTING = "starting"
    CONNECTED = "connected"
    TRANSIENT_ERROR = "transient_error"
    CANCELLED = "cancelled"
    STOPPED = "stopped"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Everything, including loguru trace records and variable
          values in tracebacks
        - DEBUG: Debug messages and above, including kubectl output
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
