"""Shared utilities for CLI commands.

Console output helpers and the health probe used by the commands.
"""

from typing import NoReturn

import httpx
from rich.console import Console

# Shared console instance for consistent output
console = Console()


def check_service_health(host: str, port: int, timeout: float = 2.0) -> bool:
    """Check if the service is responding to health checks.

    Args:
        host: Host the service is bound to.
        port: Port number to check.
        timeout: Request timeout in seconds.

    Returns:
        True if the service responds with status 200.
    """
    probe_host = "localhost" if host in ("0.0.0.0", "") else host
    try:
        response = httpx.get(f"http://{probe_host}:{port}/health", timeout=timeout)
        return response.status_code == 200
    except httpx.HTTPError:
        return False


def print_success(message: str) -> None:
    """Print a success message in green."""
    console.print(f"[green]{message}[/green]")


def print_error(message: str) -> None:
    """Print an error message in red."""
    console.print(f"[red]{message}[/red]")


def print_warning(message: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[yellow]{message}[/yellow]")


def print_info(message: str) -> None:
    """Print an info message in blue."""
    console.print(f"[blue]{message}[/blue]")


def exit_with_error(message: str, code: int = 1) -> NoReturn:
    """Print an error message and exit with the given code.

    Args:
        message: Error message to display.
        code: Exit code (default 1).
    """
    print_error(message)
    raise SystemExit(code)
