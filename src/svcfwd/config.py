"""
svcfwd configuration.

Runtime settings live in the ``FwdConfig`` dataclass; the module-level
``config`` instance is what the CLI mutates from flags and environment
variables before starting a run.

The forwarding targets themselves come from a YAML file (``.fwd.yaml``),
read by ``load_config``.

Usage:
    from svcfwd.config import config, load_config

    config.ADDRESS_RANGE = "127.2.0.0/24"
    address_range, targets = load_config()
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from svcfwd.exceptions import ConfigError, ConfigNotFoundError
from svcfwd.models.config_file import FwdFile
from svcfwd.models.enums import LogLevel
from svcfwd.models.target import Target
from svcfwd.utils.logger import get_logger

logger = get_logger(__name__)


def _default_loopback() -> str:
    return "lo0" if sys.platform == "darwin" else "lo"


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class FwdConfig:
    """
    Runtime configuration.

    Attributes:
        ADDRESS_RANGE: Range loopback aliases are allocated from, used
            when the config file has no ``cidr``.
        CONFIG_FILE_NAME: File name searched in the working and home dirs.
        HOSTS_FILE: Hosts file kept in sync with the forwards.
        KUBECTL_BINARY: kubectl executable.
        LOOPBACK_INTERFACE: Interface the aliases are added to.
        RECONNECT_DELAY_SECONDS: Pause before restarting a failed forward.
        LOG_LEVEL: Logging verbosity.
        LOG_FILE: Optional log file.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    ADDRESS_RANGE: str = "127.1.27.0/24"
    LOOPBACK_INTERFACE: str = ""
    HOSTS_FILE: str = "/etc/hosts"

    # -------------------------------------------------------------------------
    # kubectl Configuration
    # -------------------------------------------------------------------------

    KUBECTL_BINARY: str = "kubectl"

    # Reconnects are immediate by default, a long-lived tool should not back off
    RECONNECT_DELAY_SECONDS: float = 0.0

    # -------------------------------------------------------------------------
    # Path Configuration
    # -------------------------------------------------------------------------

    CONFIG_FILE_NAME: str = ".fwd.yaml"

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""

    def __post_init__(self):
        if not self.LOOPBACK_INTERFACE:
            self.LOOPBACK_INTERFACE = _default_loopback()

    def config_search_paths(self) -> list[Path]:
        """Working directory first, then the home directory."""
        return [
            Path.cwd() / self.CONFIG_FILE_NAME,
            Path.home() / self.CONFIG_FILE_NAME,
        ]

    def apply_env(self, environ: dict[str, str] | None = None) -> None:
        """Override fields from ``SVCFWD_*`` environment variables."""
        environ = os.environ if environ is None else environ
        if value := environ.get("SVCFWD_CIDR"):
            self.ADDRESS_RANGE = value
        if value := environ.get("SVCFWD_HOSTS_FILE"):
            self.HOSTS_FILE = value
        if value := environ.get("SVCFWD_KUBECTL"):
            self.KUBECTL_BINARY = value
        if value := environ.get("SVCFWD_LOOPBACK"):
            self.LOOPBACK_INTERFACE = value
        if value := environ.get("SVCFWD_LOG_LEVEL"):
            self.LOG_LEVEL = LogLevel(value.lower())
        if value := environ.get("SVCFWD_LOG_FILE"):
            self.LOG_FILE = value


# Global configuration instance
config = FwdConfig()


# =============================================================================
# Config File
# =============================================================================


def find_config_file(path: str | None = None) -> Path:
    """
    Locate the configuration file.

    Args:
        path: Explicit path. When given, no other location is tried.

    Raises:
        ConfigNotFoundError: If no candidate exists.
    """
    candidates = [Path(path).expanduser()] if path else config.config_search_paths()
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    raise ConfigNotFoundError([str(c) for c in candidates])


def parse_config(raw: str, source: str = "<string>") -> FwdFile:
    """Parse and validate config file content."""
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"{source}: invalid YAML: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping")

    try:
        return FwdFile.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{source}: {e}") from e


def flatten_targets(cfg: FwdFile) -> list[Target]:
    """One Target per configured service, in file order."""
    targets: list[Target] = []
    for ctx in cfg.contexts:
        for ns in ctx.namespaces:
            for svc in ns.services:
                targets.append(
                    Target(
                        context=(ctx.name or "").strip(),
                        namespace=ns.name,
                        service=svc.name,
                        aliases=list(svc.aliases),
                    )
                )
    return targets


def load_config(path: str | None = None) -> tuple[str, list[Target]]:
    """
    Read the configuration file.

    Returns:
        (address_range, targets). The address range falls back to
        ``config.ADDRESS_RANGE`` when the file has no ``cidr``.
    """
    config_path = find_config_file(path)
    logger.debug(f"Reading config from {config_path}")
    try:
        raw = config_path.read_text()
    except OSError as e:
        raise ConfigError(f"failed to read {config_path}: {e}") from e

    cfg = parse_config(raw, source=str(config_path))
    targets = flatten_targets(cfg)
    address_range = cfg.cidr or config.ADDRESS_RANGE
    logger.debug(f"Loaded {len(targets)} targets, address range {address_range}")
    return address_range, targets
