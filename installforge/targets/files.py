"""File install targets: place a produced artifact at its destination."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from installforge.backends.files import LocalFilePlacer
from installforge.core.actions import ActionContext, FilePlacer
from installforge.models.targets import TargetDefinition, TargetKind


def file_install(
    target_id: str,
    source: str | Path,
    destination: str | Path,
    *,
    mode: int | None = None,
    link: bool = False,
    placer: FilePlacer | None = None,
    inputs: Iterable[str] | None = None,
    description: str = "",
) -> TargetDefinition:
    """Define a target copying (or symlinking) *source* to *destination*."""
    placer = placer or LocalFilePlacer()
    source_path = Path(source)
    destination_path = Path(destination)

    def install(definition: TargetDefinition, context: ActionContext) -> None:
        placer.place(source_path, destination_path, context, mode=mode, link=link)

    return TargetDefinition(
        target_id=target_id,
        kind=TargetKind.FILE_INSTALL,
        inputs=tuple(str(i) for i in inputs) if inputs is not None else (str(source_path),),
        outputs=(str(destination_path),),
        action=install,
        description=description or f"Install {source_path.name} to {destination_path}",
        options={"mode": mode, "link": link},
    )
