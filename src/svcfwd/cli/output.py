"""Console output helpers for the CLI."""

from rich.console import Console
from rich.table import Table

from svcfwd.models.target import Target

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def print_warning(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def format_ports(target: Target) -> str:
    """``80 (http), 443 (https)``"""
    parts = []
    for number, description in target.ports.items():
        name = description.split(",", 1)[0]
        parts.append(f"{number} ({name})")
    return ", ".join(parts)


def targets_table(targets: list[Target]) -> Table:
    """Address, hostnames and ports of each target."""
    table = Table(title="Forwarding Plan", show_header=True)
    table.add_column("Address", style="cyan", no_wrap=True)
    table.add_column("Hostnames", style="green")
    table.add_column("Ports")

    for target in targets:
        table.add_row(
            target.address,
            "\n".join(target.hostnames()),
            format_ports(target),
        )
    return table
