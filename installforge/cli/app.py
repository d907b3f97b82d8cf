"""Typer application factory for installer executables.

An installer author registers targets on an ``Installer`` and hands it to
``build_cli``::

    installer = Installer()
    installer.register_target(...)
    app = build_cli(installer, name="myproject-install")

    if __name__ == "__main__":
        app()

Commands: build, plan, list, forget.  ``build`` exits with the report's
exit code (0 all succeeded, 1 partial failure, 2 aborted); construction
and cache errors exit with code 3.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from installforge.core.dependency_graph import GraphError
from installforge.core.fingerprint_store import FingerprintStoreError
from installforge.core.installer import Installer
from installforge.core.planner import ALL
from installforge.models.config import ExecutionOptions
from installforge.monitor.renderer import ReportRenderer

CONFIG_ERROR_EXIT = 3


def configure_logging(level: str = "INFO", console: Console | None = None) -> None:
    """Route stdlib logging through a Rich handler on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console or Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
            )
        ],
        force=True,
    )


def build_cli(
    installer: Installer,
    name: str = "installer",
    help: str | None = None,
    *,
    console: Console | None = None,
) -> typer.Typer:
    """Create the command-line interface for *installer*."""
    console = console or Console()
    renderer = ReportRenderer(console=console)

    app = typer.Typer(
        name=name,
        help=help or f"{name}: build and install project components.",
        no_args_is_help=True,
        rich_markup_mode="rich",
        add_completion=False,
    )

    def fail(exc: Exception) -> typer.Exit:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        return typer.Exit(code=CONFIG_ERROR_EXIT)

    @app.callback()
    def main(
        verbose: bool = typer.Option(
            False, "--verbose", "-v", help="Show debug logging."
        ),
    ) -> None:
        configure_logging("DEBUG" if verbose else installer.settings.log_level)

    @app.command(name="build", help="Build and install targets (all by default).")
    def build_cmd(
        targets: Optional[List[str]] = typer.Argument(
            None, help="Targets to build. Their dependencies are included."
        ),
        jobs: Optional[int] = typer.Option(
            None, "--jobs", "-j", min=1, help="Maximum number of targets run at once."
        ),
        fail_fast: bool = typer.Option(
            False, "--fail-fast", help="Stop scheduling new work after the first failure."
        ),
        force: bool = typer.Option(
            False, "--force", "-f", help="Rebuild targets even when up to date."
        ),
        dry_run: bool = typer.Option(
            False, "--dry-run", "-n", help="Show what would run without running it."
        ),
    ) -> None:
        try:
            plan = installer.plan(targets or ALL, force=force)
        except (GraphError, FingerprintStoreError) as exc:
            raise fail(exc) from exc

        options = ExecutionOptions.from_settings(
            installer.settings,
            concurrency_limit=jobs,
            fail_fast=fail_fast or None,
            dry_run=dry_run or None,
        )
        report = installer.execute(plan, options, on_transition=renderer.print_transition)
        renderer.print_report(report)
        raise typer.Exit(code=report.exit_status.exit_code)

    @app.command(name="plan", help="Show which targets are stale and why.")
    def plan_cmd(
        targets: Optional[List[str]] = typer.Argument(
            None, help="Targets to plan. Their dependencies are included."
        ),
        force: bool = typer.Option(
            False, "--force", "-f", help="Plan as if every target were stale."
        ),
    ) -> None:
        try:
            plan = installer.plan(targets or ALL, force=force)
        except (GraphError, FingerprintStoreError) as exc:
            raise fail(exc) from exc
        renderer.print_plan(plan, installer.graph)

    @app.command(name="list", help="List registered targets.")
    def list_cmd() -> None:
        if not len(installer.graph):
            console.print("[dim]No targets registered.[/dim]")
            return
        renderer.print_targets(installer.graph)

    @app.command(name="forget", help="Drop recorded fingerprints so a target rebuilds.")
    def forget_cmd(
        target: str = typer.Argument(..., help="The target to forget."),
    ) -> None:
        try:
            removed = installer.forget(target)
        except (GraphError, FingerprintStoreError) as exc:
            raise fail(exc) from exc
        console.print(f"Forgot {removed} fingerprint(s) for [cyan]{target}[/cyan].")

    return app
