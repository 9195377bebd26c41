"""Exception classes for svcfwd."""


class FwdError(Exception):
    """Base exception for svcfwd operations."""

    pass


# =============================================================================
# Configuration / Validation
# =============================================================================


class ConfigError(FwdError):
    """Configuration file could not be parsed or failed validation."""

    pass


class ConfigNotFoundError(ConfigError):
    """No configuration file in any of the searched locations."""

    def __init__(self, searched: list[str]):
        self.searched = searched
        super().__init__(f"config file not found (searched: {', '.join(searched)})")


class NoDefaultContextError(FwdError):
    """A target has no context and kubectl has no current context."""

    def __init__(self, global_id: str):
        self.global_id = global_id
        super().__init__(f"no context set for {global_id} and no current context")


class UnknownContextError(FwdError):
    """A target references a context kubectl does not know."""

    def __init__(self, context: str):
        self.context = context
        super().__init__(f"unknown context: {context}")


class DuplicateTargetError(FwdError):
    """Duplicate global ids or aliases in the configuration."""

    def __init__(self, duplicates: list[str]):
        self.duplicates = duplicates
        super().__init__(f"duplicate service entries: {', '.join(duplicates)}")


class RangeExhaustedError(FwdError):
    """The address range has no room for another address."""

    def __init__(self, address_range: str, allocated: int):
        self.address_range = address_range
        self.allocated = allocated
        super().__init__(
            f"address range {address_range} overflow ({allocated} allocated)"
        )


class NoServicesError(FwdError):
    """Port discovery left nothing to forward."""

    pass


# =============================================================================
# Discovery / Local Network
# =============================================================================


class DiscoveryError(FwdError):
    """A kubectl discovery query could not be run or parsed."""

    pass


class NetworkAliasError(FwdError):
    """Loopback alias setup or cleanup failed."""

    def __init__(self, message: str, addresses: list[str] | None = None):
        self.addresses = addresses or []
        super().__init__(message)


class HostsError(FwdError):
    """The hosts file could not be read or written."""

    pass


# =============================================================================
# Forwarding
# =============================================================================


class TransientForwardError(FwdError):
    """The forwarding child signalled a failure; the caller should reconnect."""

    def __init__(self, global_id: str, detail: str):
        self.global_id = global_id
        self.detail = detail
        super().__init__(f"forward for {global_id} interrupted: {detail}")


class ForwardCancelled(FwdError):
    """The forward was stopped on request. Not a failure."""

    def __init__(self, global_id: str):
        self.global_id = global_id
        super().__init__(f"forward for {global_id} cancelled")
