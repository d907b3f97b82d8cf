"""Rich terminal renderer for plans, execution reports and target listings.

Color scheme
------------
- green     : SUCCEEDED
- cyan      : FRESH
- red       : FAILED
- yellow    : STALE / RUNNING
- magenta   : SKIPPED
- dim       : PENDING
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from installforge.models.reports import ExitStatus
from installforge.models.targets import TargetState

if TYPE_CHECKING:
    from installforge.core.dependency_graph import DependencyGraph
    from installforge.models.plan import Plan
    from installforge.models.reports import ExecutionReport
    from installforge.models.targets import TargetTransition


# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[TargetState, str] = {
    TargetState.SUCCEEDED: "bold green",
    TargetState.FRESH: "cyan",
    TargetState.FAILED: "bold red",
    TargetState.RUNNING: "bold yellow",
    TargetState.STALE: "yellow",
    TargetState.SKIPPED: "magenta",
    TargetState.PENDING: "dim",
}

_STATE_LABELS: dict[TargetState, str] = {
    TargetState.SUCCEEDED: "[green]SUCCEEDED[/green]",
    TargetState.FRESH: "[cyan]FRESH[/cyan]",
    TargetState.FAILED: "[bold red]FAILED[/bold red]",
    TargetState.RUNNING: "[yellow]RUNNING[/yellow]",
    TargetState.STALE: "[yellow]STALE[/yellow]",
    TargetState.SKIPPED: "[magenta]SKIPPED[/magenta]",
    TargetState.PENDING: "[dim]PENDING[/dim]",
}

# States shown as progress lines during a run.
_PROGRESS_STATES = frozenset(
    {TargetState.RUNNING, TargetState.SUCCEEDED, TargetState.FAILED, TargetState.SKIPPED}
)

_EXIT_STYLES: dict[ExitStatus, str] = {
    ExitStatus.ALL_SUCCEEDED: "green",
    ExitStatus.PARTIAL_FAILURE: "red",
    ExitStatus.ABORTED: "bold red",
}


def state_label(state: TargetState) -> str:
    return _STATE_LABELS.get(state, state.value)


class ReportRenderer:
    """Renders plans and reports as Rich renderables.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def render_plan(self, plan: Plan, graph: DependencyGraph) -> Panel:
        """Render a plan: every target of the closure with its verdict."""
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=4, justify="right")
        table.add_column("Target", min_width=20)
        table.add_column("Kind", min_width=14)
        table.add_column("Verdict", min_width=10, justify="center")
        table.add_column("Reason", min_width=20)

        for i, target_id in enumerate(plan.order):
            state = TargetState.STALE if plan.is_stale(target_id) else TargetState.FRESH
            style = _STATE_STYLES[state]
            table.add_row(
                str(i),
                f"[{style}]{target_id}[/{style}]",
                graph.get_target(target_id).kind.value,
                state_label(state),
                plan.reasons.get(target_id, "[dim]up to date[/dim]"),
            )

        summary = (
            f"[bold]Stale:[/bold] {len(plan.stale)}  |  "
            f"[bold]Fresh:[/bold] {len(plan.fresh)}"
        )
        if plan.forced:
            summary += "  |  [yellow]forced[/yellow]"
        return Panel(
            Group(table, Text(""), Text.from_markup(summary)),
            title="[bold]Build plan[/bold]",
            border_style="blue",
            padding=(1, 2),
        )

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def render_report(self, report: ExecutionReport) -> Panel:
        """Render an execution report with one row per planned target."""
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Target", min_width=20)
        table.add_column("Kind", min_width=14)
        table.add_column("State", min_width=12, justify="center")
        table.add_column("Time", justify="right", width=9)
        table.add_column("Details", min_width=20)

        for outcome in report.outcomes.values():
            style = _STATE_STYLES.get(outcome.state, "")
            duration = (
                f"{outcome.duration_ms / 1000:.1f}s" if outcome.duration_ms else "[dim]-[/dim]"
            )
            details = outcome.reason or "[dim]-[/dim]"
            if outcome.state == TargetState.FAILED:
                details = f"[red]{outcome.reason}[/red]"
            table.add_row(
                f"[{style}]{outcome.target_id}[/{style}]",
                outcome.kind.value,
                state_label(outcome.state),
                duration,
                details,
            )

        exit_style = _EXIT_STYLES[report.exit_status]
        summary_parts = [
            f"[bold]Run:[/bold] {report.run_id}",
            f"[bold]Succeeded:[/bold] {len(report.succeeded())}",
            f"[bold]Fresh:[/bold] {len(report.fresh())}",
            f"[bold]Failed:[/bold] {len(report.failed())}",
            f"[bold]Skipped:[/bold] {len(report.skipped())}",
            f"[bold]Status:[/bold] [{exit_style}]{report.exit_status.value}[/{exit_style}]",
        ]
        if report.dry_run:
            summary_parts.append("[yellow]dry run[/yellow]")

        return Panel(
            Group(table, Text(""), Text.from_markup("  |  ".join(summary_parts))),
            title="[bold]Installation report[/bold]",
            subtitle=f"{report.duration_seconds:.1f}s",
            border_style=exit_style,
            padding=(1, 2),
        )

    # ------------------------------------------------------------------
    # Target listing
    # ------------------------------------------------------------------

    def render_targets(self, graph: DependencyGraph) -> Table:
        """Render every registered target with its kind and dependencies."""
        table = Table(
            title="Registered targets", show_header=True, header_style="bold cyan"
        )
        table.add_column("Target", style="bold")
        table.add_column("Kind")
        table.add_column("Depends on")
        table.add_column("Description", style="dim")

        for target in graph:
            deps = graph.get_dependencies(target.target_id)
            table.add_row(
                target.target_id,
                target.kind.value,
                ", ".join(deps) if deps else "[dim]-[/dim]",
                target.description,
            )
        return table

    # ------------------------------------------------------------------
    # Standalone print
    # ------------------------------------------------------------------

    def print_plan(self, plan: Plan, graph: DependencyGraph) -> None:
        self.console.print(self.render_plan(plan, graph))

    def print_report(self, report: ExecutionReport) -> None:
        self.console.print(self.render_report(report))

    def print_targets(self, graph: DependencyGraph) -> None:
        self.console.print(self.render_targets(graph))

    def print_transition(self, transition: TargetTransition) -> None:
        """One-line progress output for a state change worth showing."""
        if transition.to_state not in _PROGRESS_STATES:
            return
        line = f"{state_label(transition.to_state)} {transition.target_id}"
        if transition.reason and transition.to_state != TargetState.RUNNING:
            line += f" [dim]({transition.reason})[/dim]"
        self.console.print(line)

