"""Dependency DAG of targets, keyed by id.

The graph enforces:
- Target ids are unique.
- Edges only connect registered targets.
- No edge may close a cycle. The check is incremental: before inserting
  ``dependent -> dependency`` we test whether ``dependency`` already
  reaches ``dependent``. A rejected edge leaves the graph untouched.
- Topological order is deterministic, ties broken by insertion order.

Targets are owned by the graph and referenced everywhere else by id.
"""

from __future__ import annotations

import heapq
import logging
from collections import deque
from collections.abc import Iterable, Iterator

from installforge.models.targets import TargetDefinition

logger = logging.getLogger(__name__)


class GraphError(ValueError):
    """Base class for graph construction errors."""


class DuplicateIdentifierError(GraphError):
    """Raised when a target id is registered twice."""

    def __init__(self, target_id: str) -> None:
        super().__init__(f"Target {target_id!r} is already registered")
        self.target_id = target_id


class UnknownIdentifierError(GraphError):
    """Raised when an edge or selection references an unregistered target."""

    def __init__(self, target_id: str) -> None:
        super().__init__(f"Unknown target {target_id!r}")
        self.target_id = target_id


class CycleDetectedError(GraphError):
    """Raised when an edge would introduce a dependency cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


class GraphFrozenError(RuntimeError):
    """Raised when the graph is mutated after planning began."""


class DependencyGraph:
    """Directed acyclic graph of targets.

    An edge ``dependent -> dependency`` means "dependency must complete
    before dependent".
    """

    def __init__(self) -> None:
        # Insertion order doubles as the tie-breaker for topological order.
        self._targets: dict[str, TargetDefinition] = {}
        self._ordinal: dict[str, int] = {}
        # Forward edges: target_id -> ids it depends on
        self._dependencies: dict[str, list[str]] = {}
        # Reverse edges: target_id -> ids that depend on it
        self._dependents: dict[str, list[str]] = {}
        self._frozen = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_target(self, target: TargetDefinition) -> None:
        """Register a target. Raises DuplicateIdentifierError."""
        self._check_mutable()
        if target.target_id in self._targets:
            raise DuplicateIdentifierError(target.target_id)
        self._targets[target.target_id] = target
        self._ordinal[target.target_id] = len(self._ordinal)
        self._dependencies[target.target_id] = []
        self._dependents[target.target_id] = []
        logger.debug("Registered target %s (%s)", target.target_id, target.kind.value)

    def add_dependency(self, dependent: str, dependency: str) -> None:
        """Declare that *dependent* must run after *dependency*.

        Raises UnknownIdentifierError or CycleDetectedError; in both cases
        the graph is left unchanged.
        """
        self._check_mutable()
        for target_id in (dependent, dependency):
            if target_id not in self._targets:
                raise UnknownIdentifierError(target_id)
        if dependency in self._dependencies[dependent]:
            return

        path = self._find_path(dependency, dependent)
        if path is not None:
            # path runs dependency -> ... -> dependent; the new edge closes it
            raise CycleDetectedError([dependent, *path])

        self._dependencies[dependent].append(dependency)
        self._dependents[dependency].append(dependent)
        logger.debug("Declared dependency %s -> %s", dependent, dependency)

    def _find_path(self, start: str, goal: str) -> list[str] | None:
        """Return a dependency path from *start* to *goal*, if one exists (BFS)."""
        parents: dict[str, str | None] = {start: None}
        queue = deque([start])
        while queue:
            node = queue.popleft()
            if node == goal:
                path = [node]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])  # type: ignore[arg-type]
                return list(reversed(path))
            for dep in self._dependencies[node]:
                if dep not in parents:
                    parents[dep] = node
                    queue.append(dep)
        return None

    def freeze(self) -> None:
        """Make the graph read-only. Idempotent."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise GraphFrozenError("Dependency graph is read-only once planning began")

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self) -> Iterator[TargetDefinition]:
        return iter(self._targets.values())

    @property
    def target_ids(self) -> list[str]:
        """All target ids in insertion order."""
        return list(self._targets)

    def get_target(self, target_id: str) -> TargetDefinition:
        """Return the definition for a target id."""
        try:
            return self._targets[target_id]
        except KeyError:
            raise UnknownIdentifierError(target_id) from None

    def get_dependencies(self, target_id: str) -> list[str]:
        """Return direct dependency ids of a target, in declaration order."""
        self.get_target(target_id)
        return list(self._dependencies[target_id])

    def get_direct_dependents(self, target_id: str) -> list[str]:
        """Return ids that directly depend on a target."""
        self.get_target(target_id)
        return list(self._dependents[target_id])

    def get_dependents(self, target_id: str) -> list[str]:
        """Return all transitive dependent ids (BFS)."""
        self.get_target(target_id)
        result: list[str] = []
        queue = deque(self._dependents[target_id])
        visited: set[str] = set()
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            result.append(node)
            queue.extend(self._dependents[node])
        return result

    def closure(self, target_ids: Iterable[str]) -> set[str]:
        """Return *target_ids* plus all their transitive dependencies."""
        result: set[str] = set()
        queue = deque(target_ids)
        while queue:
            node = queue.popleft()
            if node not in self._targets:
                raise UnknownIdentifierError(node)
            if node in result:
                continue
            result.add(node)
            queue.extend(self._dependencies[node])
        return result

    def topological_order(self, subset: Iterable[str] | None = None) -> list[str]:
        """Return target ids so that every dependency precedes its dependents.

        Kahn's algorithm; among ready targets the earliest-registered goes
        first, so equal declarations always produce the same order. With
        *subset*, only those ids are ordered (edges leaving the subset are
        ignored).
        """
        nodes = set(self._targets) if subset is None else set(subset)
        for node in nodes:
            if node not in self._targets:
                raise UnknownIdentifierError(node)

        in_degree = {
            node: sum(1 for dep in self._dependencies[node] if dep in nodes)
            for node in nodes
        }
        ready = [(self._ordinal[node], node) for node, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        result: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            result.append(node)
            for dependent in self._dependents[node]:
                if dependent not in nodes:
                    continue
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (self._ordinal[dependent], dependent))
        return result
