"""Staleness evaluation: signature resolution and the default verdict.

Everything here is read-only: it inspects the filesystem and the
fingerprint store but never writes, so evaluating a target twice yields
the same verdict.
"""

from __future__ import annotations

from pathlib import Path

from installforge.core.dependency_graph import DependencyGraph, UnknownIdentifierError
from installforge.core.fingerprint_store import FingerprintStore
from installforge.core.hasher import combine_signatures, path_signature
from installforge.models.fingerprints import (
    ABSENT_SIGNATURE,
    ARTIFACT_SCOPE,
    RUN_MARKER,
    SignatureMode,
)
from installforge.models.targets import (
    TARGET_REF_PREFIX,
    StalenessContext,
    TargetDefinition,
    has_scheme,
    is_target_ref,
)


def resolve_signature(
    location: str,
    graph: DependencyGraph,
    store: FingerprintStore,
    mode: SignatureMode = SignatureMode.CONTENT,
) -> str | None:
    """Current signature of an input location, or None when absent.

    - ``target:<id>``: the combined recorded signatures of that target's
      outputs (None if any output was never recorded).
    - scheme locations (``image:...``): the recorded artifact signature.
    - anything else: a filesystem path, signed from disk.
    """
    if is_target_ref(location):
        ref_id = location[len(TARGET_REF_PREFIX):]
        if ref_id not in graph:
            raise UnknownIdentifierError(ref_id)
        signatures: dict[str, str | None] = {}
        for output in graph.get_target(ref_id).outputs:
            record = store.get(output, ARTIFACT_SCOPE)
            if record is None:
                return None
            signatures[output] = record.signature
        return combine_signatures(signatures)
    if has_scheme(location):
        record = store.get(location, ARTIFACT_SCOPE)
        return record.signature if record else None
    return path_signature(location, mode)


def current_input_signatures(
    target: TargetDefinition,
    graph: DependencyGraph,
    store: FingerprintStore,
    mode: SignatureMode = SignatureMode.CONTENT,
) -> dict[str, str | None]:
    """Signatures of every input of *target*, keyed by location.

    A missing input is None, unless it is optional, in which case its
    absence is itself the signature.
    """
    signatures: dict[str, str | None] = {}
    for location in target.inputs:
        signature = resolve_signature(location, graph, store, mode)
        if signature is None and location in target.optional_inputs:
            signature = ABSENT_SIGNATURE
        signatures[location] = signature
    return signatures


def missing_path_outputs(target: TargetDefinition) -> list[str]:
    """Path outputs of *target* that do not exist on disk."""
    return [
        out for out in target.outputs
        if not has_scheme(out) and not Path(out).exists()
    ]


def build_staleness_context(
    target: TargetDefinition,
    graph: DependencyGraph,
    store: FingerprintStore,
    mode: SignatureMode = SignatureMode.CONTENT,
) -> StalenessContext:
    """Snapshot the inputs a staleness verdict needs."""
    recorded = store.get_scope(target.target_id)
    has_record = RUN_MARKER in recorded
    return StalenessContext(
        target_id=target.target_id,
        current_inputs=current_input_signatures(target, graph, store, mode),
        recorded_inputs={
            loc: rec.signature for loc, rec in recorded.items() if loc != RUN_MARKER
        },
        has_record=has_record,
        missing_outputs=missing_path_outputs(target),
    )


def staleness_reason(ctx: StalenessContext) -> str | None:
    """Default verdict: why the target is stale, or None when fresh."""
    if not ctx.has_record:
        return "no recorded build"
    if ctx.missing_outputs:
        return f"output '{ctx.missing_outputs[0]}' is missing"
    for location, signature in ctx.current_inputs.items():
        if signature is None:
            return f"input '{location}' is missing"
        if ctx.recorded_inputs.get(location) != signature:
            return f"input '{location}' changed"
    removed = set(ctx.recorded_inputs) - set(ctx.current_inputs)
    if removed:
        return f"input '{sorted(removed)[0]}' was removed"
    return None


def default_staleness(ctx: StalenessContext) -> bool:
    """Stale if never recorded, or any input differs from the last run."""
    return staleness_reason(ctx) is not None


def always_stale(ctx: StalenessContext) -> bool:
    """Verdict for targets that must run every time."""
    return True


def never_stale(ctx: StalenessContext) -> bool:
    """Verdict for targets that are always considered up to date."""
    return False
