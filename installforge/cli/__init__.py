"""installforge CLI: typer app factory for installer executables."""

from installforge.cli.app import build_cli, configure_logging

__all__ = ["build_cli", "configure_logging"]
