"""Shared test fixtures for installforge."""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from installforge.config import InstallerSettings
from installforge.core.actions import ActionContext, ActionFailed
from installforge.core.dependency_graph import DependencyGraph
from installforge.core.fingerprint_store import (
    InMemoryFingerprintStore,
    SqliteFingerprintStore,
)
from installforge.core.installer import Installer
from installforge.models.targets import TargetDefinition, TargetKind, has_scheme


class Recorder:
    """Fake action factory that records every invocation.

    Actions write each declared path output with content derived from the
    observed input signatures, so outputs only change when inputs do.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.failing: set[str] = set()
        self.delay = 0.0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def action(
        self,
        before: Callable[[ActionContext], None] | None = None,
        returns: dict[str, str] | None = None,
    ) -> Callable[[TargetDefinition, ActionContext], dict[str, str] | None]:
        def _action(definition: TargetDefinition, context: ActionContext) -> dict[str, str] | None:
            with self._lock:
                self.calls.append(definition.target_id)
                self.active += 1
                self.max_active = max(self.max_active, self.active)
            try:
                if before is not None:
                    before(context)
                if self.delay:
                    time.sleep(self.delay)
                if definition.target_id in self.failing:
                    raise ActionFailed(f"{definition.target_id} exploded")
                payload = json.dumps(context.input_signatures, sort_keys=True)
                for output in definition.outputs:
                    if has_scheme(output):
                        continue
                    path = Path(output)
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_text(f"{definition.target_id}:{payload}")
                return returns
            finally:
                with self._lock:
                    self.active -= 1

        return _action


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_target(recorder: Recorder) -> Callable[..., TargetDefinition]:
    """Factory fixture: a component-build target backed by the recorder."""

    def _factory(
        target_id: str,
        inputs: Iterable[str | Path] = (),
        outputs: Iterable[str | Path] = (),
        **overrides: Any,
    ) -> TargetDefinition:
        fields: dict[str, Any] = {
            "target_id": target_id,
            "kind": TargetKind.COMPONENT_BUILD,
            "inputs": tuple(str(i) for i in inputs),
            "outputs": tuple(str(o) for o in outputs),
            "action": recorder.action(),
        }
        fields.update(overrides)
        return TargetDefinition(**fields)

    return _factory


@pytest.fixture
def memory_store() -> InMemoryFingerprintStore:
    return InMemoryFingerprintStore()


@pytest.fixture
def sqlite_store(tmp_path: Path) -> SqliteFingerprintStore:
    """A SqliteFingerprintStore backed by a temp database."""
    return SqliteFingerprintStore(tmp_path / "cache" / "fingerprints.db")


@pytest.fixture
def settings(tmp_path: Path) -> InstallerSettings:
    """Settings with the cache directory inside the test's temp dir."""
    return InstallerSettings(cache_dir=tmp_path / ".installforge", concurrency_limit=2)


@pytest.fixture
def installer(settings: InstallerSettings, memory_store: InMemoryFingerprintStore) -> Installer:
    return Installer(settings, store=memory_store)


@pytest.fixture
def graph() -> DependencyGraph:
    return DependencyGraph()


@pytest.fixture
def src(tmp_path: Path) -> Path:
    """A source tree with three input files: a.txt, b.txt, c.txt."""
    root = tmp_path / "src"
    root.mkdir()
    for name in ("a", "b", "c"):
        (root / f"{name}.txt").write_text(f"source {name}\n")
    return root


@pytest.fixture
def chain(
    installer: Installer,
    make_target: Callable[..., TargetDefinition],
    src: Path,
    tmp_path: Path,
) -> Installer:
    """Installer with the chain A -> B -> C (C depends on B depends on A).

    Each target reads a source file plus its dependency's output and
    writes ``out/<name>.bin``.
    """
    out = tmp_path / "out"
    installer.register_target(
        make_target("A", inputs=[src / "a.txt"], outputs=[out / "a.bin"])
    )
    installer.register_target(
        make_target("B", inputs=[src / "b.txt", out / "a.bin"], outputs=[out / "b.bin"]),
        depends_on=["A"],
    )
    installer.register_target(
        make_target("C", inputs=[src / "c.txt", out / "b.bin"], outputs=[out / "c.bin"]),
        depends_on=["B"],
    )
    return installer
