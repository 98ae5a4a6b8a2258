"""Shared console output."""

from rich.console import Console

from repo_roster.config import is_verbose_enabled

console = Console()


def log_verbose(message: str) -> None:
    """Print a dimmed diagnostic line when verbose mode is on."""
    if is_verbose_enabled():
        console.print(f"[dim]{message}[/dim]")
