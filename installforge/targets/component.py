"""Component build targets: compile a native component from source."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from installforge.backends.cargo import (
    CargoToolchain,
    binary_path,
    lock_file,
    manifest_packages,
    manifest_sources,
)
from installforge.core.actions import ActionContext, Toolchain
from installforge.models.targets import StalenessCheck, TargetDefinition, TargetKind


def component_build(
    target_id: str,
    source_dir: str | Path,
    *,
    packages: Iterable[str] | None = None,
    release: bool = True,
    toolchain: Toolchain | None = None,
    inputs: Iterable[str] | None = None,
    optional_inputs: Iterable[str] | None = None,
    outputs: Iterable[str] | None = None,
    extra_args: Iterable[str] = (),
    description: str = "",
    staleness: StalenessCheck | None = None,
    always_run: bool = False,
) -> TargetDefinition:
    """Define a target compiling the component at *source_dir*.

    With the default cargo toolchain, omitted ``packages``, ``inputs`` and
    ``outputs`` are read from the crate's Cargo.toml: the manifest, lock
    file and ``src`` trees are inputs, and each package binary is an
    output. The lock file is an optional input: cargo writes it on the
    first build. Other toolchains must declare inputs and outputs explicitly.
    """
    source = Path(source_dir)
    toolchain = toolchain or CargoToolchain()
    uses_cargo = isinstance(toolchain, CargoToolchain)
    package_list = list(packages) if packages is not None else None
    if uses_cargo and package_list is None and outputs is None:
        package_list = manifest_packages(source)

    if inputs is None:
        inputs = manifest_sources(source) if uses_cargo else [str(source)]
    input_list = [str(i) for i in inputs]
    if optional_inputs is None:
        lock = str(lock_file(source))
        optional_inputs = [lock] if uses_cargo and lock in input_list else []
    if outputs is None:
        outputs = [str(binary_path(source, p, release)) for p in package_list or []]
    declared_outputs = tuple(str(o) for o in outputs)
    extra = [str(a) for a in extra_args]

    def build(definition: TargetDefinition, context: ActionContext) -> None:
        toolchain.compile(
            source,
            context,
            packages=package_list,
            release=release,
            extra_args=extra,
        )

    return TargetDefinition(
        target_id=target_id,
        kind=TargetKind.COMPONENT_BUILD,
        inputs=tuple(input_list),
        optional_inputs=tuple(str(i) for i in optional_inputs),
        outputs=declared_outputs,
        action=build,
        staleness=staleness,
        description=description or f"Compile {source}",
        always_run=always_run,
        options={
            "source_dir": str(source),
            "packages": package_list or [],
            "release": release,
        },
    )
