"""Composite groups: named aggregates with no work of their own."""

from __future__ import annotations

from installforge.models.targets import TargetDefinition, TargetKind


def composite_group(target_id: str, description: str = "") -> TargetDefinition:
    """Define a group target. Members are attached as its dependencies."""
    return TargetDefinition(
        target_id=target_id,
        kind=TargetKind.COMPOSITE_GROUP,
        description=description,
    )
