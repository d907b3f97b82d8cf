"""Planner: decides which targets must run and in what order.

For each target of the selection closure, in topological order:

1. ``force`` or ``always_run`` makes it stale.
2. A stale dependency makes it stale (dirty propagation), whatever its
   own inputs say.
3. A composite group is otherwise fresh: it never does direct work.
4. Otherwise the target's own verdict (custom, or the default
   fingerprint comparison) decides.

Planning only reads the fingerprint store. The graph is frozen when
planning begins.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from installforge.core.dependency_graph import DependencyGraph, UnknownIdentifierError
from installforge.core.fingerprint_store import FingerprintStore
from installforge.core.staleness import build_staleness_context, staleness_reason
from installforge.models.fingerprints import SignatureMode
from installforge.models.plan import Plan
from installforge.models.targets import TargetDefinition, TargetKind

logger = logging.getLogger(__name__)

ALL = "all"


class Planner:
    """Computes execution plans over a dependency graph.

    Parameters
    ----------
    graph:
        The dependency graph. Frozen on the first ``plan`` call.
    store:
        Fingerprint store consulted for recorded signatures.
    signature_mode:
        How file signatures are computed.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        store: FingerprintStore,
        signature_mode: SignatureMode = SignatureMode.CONTENT,
    ) -> None:
        self._graph = graph
        self._store = store
        self._mode = signature_mode

    def plan(self, selection: str | Iterable[str] = ALL, *, force: bool = False) -> Plan:
        """Plan a run for *selection*.

        *selection* is ``"all"``, a single target id, or an iterable of
        ids. A target that is itself named ``"all"`` is selected alone by
        passing ``["all"]``.
        """
        self._graph.freeze()

        if isinstance(selection, str):
            if selection == ALL:
                selected = self._graph.target_ids
            else:
                selected = [selection]
        else:
            selected = list(dict.fromkeys(selection))

        for target in self._graph:
            for ref_id in target.referenced_targets:
                if ref_id not in self._graph:
                    raise UnknownIdentifierError(ref_id)

        closure = self._graph.closure(selected)
        order = self._graph.topological_order(closure)

        stale: list[str] = []
        fresh: list[str] = []
        reasons: dict[str, str] = {}
        for target_id in order:
            reason = self._evaluate(self._graph.get_target(target_id), reasons, force)
            if reason is None:
                fresh.append(target_id)
                logger.debug("%s is fresh", target_id)
            else:
                stale.append(target_id)
                reasons[target_id] = reason
                logger.debug("%s is stale: %s", target_id, reason)

        logger.info(
            "Planned %d target(s): %d stale, %d fresh", len(order), len(stale), len(fresh)
        )
        return Plan(
            selection=selected,
            order=order,
            stale=stale,
            fresh=fresh,
            reasons=reasons,
            forced=force,
        )

    def _evaluate(
        self, target: TargetDefinition, stale_so_far: dict[str, str], force: bool
    ) -> str | None:
        """Return why *target* is stale, or None when it is fresh."""
        if force:
            return "forced rebuild"

        for dep in self._graph.get_dependencies(target.target_id):
            if dep in stale_so_far:
                return f"dependency '{dep}' is stale"

        if target.always_run:
            return "always runs"

        if target.kind == TargetKind.COMPOSITE_GROUP:
            return None

        ctx = build_staleness_context(target, self._graph, self._store, self._mode)
        if target.staleness is not None:
            return "custom staleness check" if target.staleness(ctx) else None
        return staleness_reason(ctx)
