"""
svcfwd CLI entry point.

Usage:
    svcfwd [COMMAND] [OPTIONS]

Commands:
    run      Forward every configured service until interrupted (root)
    plan     Show the addresses and hostnames a run would use
    version  Show version information
"""

import asyncio
import os
import signal
from typing import Annotated

import typer

from svcfwd.cli.output import (
    console,
    err_console,
    print_error,
    print_warning,
    targets_table,
)
from svcfwd.config import config, load_config
from svcfwd.exceptions import FwdError
from svcfwd.kube.client import KubectlClient
from svcfwd.models.enums import LogLevel
from svcfwd.models.target import Target
from svcfwd.network.alias import NetworkAliasManager, select_alias_backend
from svcfwd.network.hosts import HostsFile, HostsSynchronizer
from svcfwd.services.orchestrator import Fwd, prepare_targets
from svcfwd.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="svcfwd",
    help="Always-on kubectl port-forwards with per-service loopback addresses",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

ConfigOption = Annotated[
    str | None,
    typer.Option(
        "--config",
        "-c",
        help="Config file (default: ./.fwd.yaml, then ~/.fwd.yaml)",
        envvar="SVCFWD_CONFIG",
    ),
]
CidrOption = Annotated[
    str | None,
    typer.Option(
        "--cidr",
        help="Address range, overrides the config file",
        envvar="SVCFWD_CIDR",
    ),
]
KubectlOption = Annotated[
    str | None,
    typer.Option("--kubectl", help="kubectl binary"),
]
LogLevelOption = Annotated[
    LogLevel | None,
    typer.Option("--log-level", "-l", help="Logging verbosity"),
]


def _apply_options(
    kubectl: str | None,
    log_level: LogLevel | None,
    hosts_file: str | None = None,
    reconnect_delay: float | None = None,
) -> None:
    config.apply_env()
    if kubectl:
        config.KUBECTL_BINARY = kubectl
    if log_level:
        config.LOG_LEVEL = log_level
    if hosts_file:
        config.HOSTS_FILE = hosts_file
    if reconnect_delay is not None:
        config.RECONNECT_DELAY_SECONDS = reconnect_delay
    configure_logging(config.LOG_LEVEL, config.LOG_FILE, console=err_console)


def _load(config_path: str | None, cidr: str | None) -> tuple[str, list[Target]]:
    try:
        address_range, targets = load_config(config_path)
    except FwdError as e:
        print_error(f"failed to read config file: {e}")
        raise typer.Exit(1)
    return cidr or address_range, targets


# =============================================================================
# run
# =============================================================================


async def _run_forwarding(address_range: str, targets: list[Target]) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_signal(sig: signal.Signals) -> None:
        logger.info(f"caught [{sig.name}], exiting...")
        stop_event.set()

    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        loop.add_signal_handler(sig, on_signal, sig)

    alias_manager = NetworkAliasManager(select_alias_backend(config.LOOPBACK_INTERFACE))
    try:
        fwd = Fwd(
            client=KubectlClient(config.KUBECTL_BINARY),
            alias_manager=alias_manager,
            hosts=HostsSynchronizer(HostsFile(config.HOSTS_FILE)),
            address_range=address_range,
            targets=targets,
            reconnect_delay=config.RECONNECT_DELAY_SECONDS,
        )
        await fwd.run(stop_event)
    finally:
        alias_manager.close()
        for sig in signals:
            loop.remove_signal_handler(sig)


@app.command("run")
def run_command(
    config_path: ConfigOption = None,
    cidr: CidrOption = None,
    hosts_file: Annotated[
        str | None,
        typer.Option("--hosts-file", help="Hosts file to keep in sync"),
    ] = None,
    kubectl: KubectlOption = None,
    reconnect_delay: Annotated[
        float | None,
        typer.Option(
            "--reconnect-delay",
            min=0.0,
            help="Seconds to wait before reconnecting a failed forward",
        ),
    ] = None,
    log_level: LogLevelOption = None,
):
    """
    Forward every configured service until interrupted.

    Sets up loopback aliases and hosts entries, runs one supervised
    kubectl port-forward per service and removes everything on exit.
    """
    _apply_options(kubectl, log_level, hosts_file, reconnect_delay)

    if hasattr(os, "geteuid") and os.geteuid() != 0:
        print_error("svcfwd must run as root")
        raise typer.Exit(1)

    address_range, targets = _load(config_path, cidr)

    try:
        asyncio.run(_run_forwarding(address_range, targets))
    except FwdError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except OSError as e:
        print_error(f"forwarding failed: {e}")
        raise typer.Exit(1)


# =============================================================================
# plan
# =============================================================================


@app.command("plan")
def plan_command(
    config_path: ConfigOption = None,
    cidr: CidrOption = None,
    kubectl: KubectlOption = None,
    log_level: LogLevelOption = None,
):
    """
    Show the addresses, hostnames and ports a run would use.

    Queries the clusters but changes nothing locally.
    """
    _apply_options(kubectl, log_level or LogLevel.WARNING)
    address_range, targets = _load(config_path, cidr)

    try:
        active, missing = asyncio.run(
            prepare_targets(KubectlClient(config.KUBECTL_BINARY), address_range, targets)
        )
    except FwdError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(targets_table(active))
    for global_id in missing:
        print_warning(f"no ports found for {global_id}, it will be skipped")


@app.command("version")
def version():
    """Show version information."""
    from svcfwd import __version__

    console.print(f"svcfwd v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
