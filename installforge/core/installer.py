"""Installer facade: the entry point installer authors program against.

The Installer wires the DependencyGraph, fingerprint store, Planner and
Executor together:

    installer = Installer()
    installer.register_target(component_build("server", "./server", [...]))
    installer.register_target(file_install("install", ...), depends_on=["server"])
    report = installer.make()

Construction errors (duplicate ids, unknown ids, cycles) raise
immediately. Execution errors are captured per target in the report.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from installforge.config import InstallerSettings
from installforge.core.dependency_graph import (
    CycleDetectedError,
    DependencyGraph,
    UnknownIdentifierError,
)
from installforge.core.executor import Executor, new_run_id
from installforge.core.fingerprint_store import FingerprintStore, SqliteFingerprintStore
from installforge.core.planner import ALL, Planner
from installforge.models.config import ExecutionOptions
from installforge.models.plan import Plan
from installforge.models.reports import ExecutionReport
from installforge.models.targets import TargetDefinition, TargetTransition

logger = logging.getLogger(__name__)


class TargetHandle:
    """Returned by ``Installer.register_target`` for chaining dependencies."""

    def __init__(self, installer: Installer, target_id: str) -> None:
        self._installer = installer
        self.target_id = target_id

    def depends_on(self, *target_ids: str) -> TargetHandle:
        """Declare that this target depends on each of *target_ids*."""
        for dependency in target_ids:
            self._installer.declare_dependency(self.target_id, dependency)
        return self

    def __repr__(self) -> str:
        return f"TargetHandle({self.target_id!r})"


class Installer:
    """Collects targets and runs them.

    Parameters
    ----------
    settings:
        Installer settings. Loaded from the environment if not provided.
    store:
        Fingerprint store. Defaults to the SQLite store under
        ``settings.cache_dir``, opened on first use.
    graph:
        An existing dependency graph to build on.
    """

    def __init__(
        self,
        settings: InstallerSettings | None = None,
        store: FingerprintStore | None = None,
        graph: DependencyGraph | None = None,
    ) -> None:
        self.settings = settings or InstallerSettings()
        self.graph = graph or DependencyGraph()
        self._store = store
        self.last_report: ExecutionReport | None = None

    @property
    def store(self) -> FingerprintStore:
        if self._store is None:
            self._store = SqliteFingerprintStore(
                self.settings.fingerprint_db_path,
                create_dir=self.settings.create_cache_dir,
            )
        return self._store

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------

    def register_target(
        self, definition: TargetDefinition, depends_on: Iterable[str] = ()
    ) -> TargetHandle:
        """Add a target to the graph.

        Every ``target:<id>`` input implies a dependency on that target,
        which must already be registered.
        """
        dependencies = [*definition.referenced_targets, *depends_on]
        for dependency in dependencies:
            if dependency == definition.target_id:
                raise CycleDetectedError([dependency, dependency])
            if dependency not in self.graph:
                raise UnknownIdentifierError(dependency)
        self.graph.add_target(definition)
        handle = TargetHandle(self, definition.target_id)
        handle.depends_on(*dependencies)
        logger.debug("Registered %s (%s)", definition.target_id, definition.kind.value)
        return handle

    def declare_dependency(self, dependent: str, dependency: str) -> None:
        """Declare that *dependent* must run after *dependency*."""
        self.graph.add_dependency(dependent, dependency)

    @property
    def targets(self) -> list[TargetDefinition]:
        """All registered targets in insertion order."""
        return list(self.graph)

    # ------------------------------------------------------------------
    # Planning and execution
    # ------------------------------------------------------------------

    def plan(self, selection: str | Iterable[str] = ALL, *, force: bool = False) -> Plan:
        """Decide which targets of *selection* must run."""
        planner = Planner(self.graph, self.store, self.settings.signature_mode)
        return planner.plan(selection, force=force)

    def execute(
        self,
        plan: Plan,
        options: ExecutionOptions | None = None,
        *,
        cancel_event: threading.Event | None = None,
        on_transition: Callable[[TargetTransition], None] | None = None,
    ) -> ExecutionReport:
        """Run the stale targets of *plan*."""
        options = options or ExecutionOptions.from_settings(self.settings)
        executor = Executor(
            self.graph,
            self.store,
            signature_mode=self.settings.signature_mode,
            work_root=self.settings.work_root,
        )
        self.last_report = executor.execute(
            plan,
            options,
            cancel_event=cancel_event,
            run_id=new_run_id(),
            on_transition=on_transition,
        )
        return self.last_report

    def make(
        self,
        selection: str | Iterable[str] = ALL,
        options: ExecutionOptions | None = None,
        *,
        force: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionReport:
        """Plan *selection* and execute the result."""
        return self.execute(
            self.plan(selection, force=force), options, cancel_event=cancel_event
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def forget(self, target_id: str) -> int:
        """Drop the recorded run of *target_id* so the next plan rebuilds it."""
        self.graph.get_target(target_id)
        removed = self.store.forget_scope(target_id)
        logger.info("Forgot %d fingerprint(s) for %s", removed, target_id)
        return removed
