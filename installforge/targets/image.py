"""Container image targets: build an image, load an archive into an engine."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path

from installforge.backends.docker import DockerEngine, DockerImageBuilder
from installforge.core.actions import (
    ActionContext,
    ActionFailed,
    ContainerEngine,
    ImageBuilder,
)
from installforge.core.staleness import staleness_reason
from installforge.models.targets import StalenessContext, TargetDefinition, TargetKind

IMAGE_SCHEME = "image:"
ENGINE_SCHEME = "engine:"


def image_location(tag: str) -> str:
    """Output location of a built image."""
    return f"{IMAGE_SCHEME}{tag}"


def engine_location(tag: str) -> str:
    """Output location of an image loaded into the container engine."""
    return f"{ENGINE_SCHEME}{tag}"


def image_build(
    target_id: str,
    context_dir: str | Path,
    tag: str,
    *,
    archive: str | Path | None = None,
    dockerfile: str | Path | None = None,
    build_args: Mapping[str, str] | None = None,
    builder: ImageBuilder | None = None,
    inputs: Iterable[str] | None = None,
    description: str = "",
    always_run: bool = False,
) -> TargetDefinition:
    """Define a target building image *tag* from *context_dir*.

    When *archive* is given the image is also exported to that tar file,
    which an ``image_load`` target can then consume.
    """
    context_path = Path(context_dir)
    dockerfile_path = Path(dockerfile) if dockerfile is not None else None
    builder = builder or DockerImageBuilder()
    args = dict(build_args or {})

    if inputs is None:
        inputs = [str(context_path)]
        if dockerfile_path is not None and context_path not in dockerfile_path.parents:
            inputs.append(str(dockerfile_path))
    outputs = [image_location(tag)]
    if archive is not None:
        outputs.append(str(archive))

    def build(definition: TargetDefinition, context: ActionContext) -> dict[str, str]:
        image_id = builder.build(
            context_path, tag, context, dockerfile=dockerfile_path, build_args=args
        )
        if not image_id:
            raise ActionFailed(f"Building image '{tag}' reported no image id")
        if archive is not None:
            context.raise_if_cancelled()
            builder.save(tag, Path(archive), context)
        return {image_location(tag): image_id}

    return TargetDefinition(
        target_id=target_id,
        kind=TargetKind.IMAGE_BUILD,
        inputs=tuple(str(i) for i in inputs),
        outputs=tuple(outputs),
        action=build,
        description=description or f"Build image {tag}",
        always_run=always_run,
        options={"tag": tag, "archive": str(archive) if archive is not None else None},
    )


def image_load(
    target_id: str,
    archive: str | Path,
    tag: str,
    *,
    engine: ContainerEngine | None = None,
    inputs: Iterable[str] | None = None,
    verify_loaded: bool = True,
    description: str = "",
) -> TargetDefinition:
    """Define a target loading the image archive at *archive* as *tag*.

    With *verify_loaded*, the target is also stale when the engine no
    longer knows the image, e.g. after ``docker image rm``.
    """
    engine = engine or DockerEngine()
    archive_path = Path(archive)

    def load(definition: TargetDefinition, context: ActionContext) -> dict[str, str]:
        reference = engine.load(archive_path, context)
        image_id = engine.image_id(reference or tag) or engine.image_id(tag)
        if image_id is None:
            raise ActionFailed(f"Image '{tag}' is not present after loading '{archive_path}'")
        return {engine_location(tag): image_id}

    def loaded_staleness(ctx: StalenessContext) -> bool:
        if staleness_reason(ctx) is not None:
            return True
        return engine.image_id(tag) is None

    return TargetDefinition(
        target_id=target_id,
        kind=TargetKind.IMAGE_LOAD,
        inputs=tuple(str(i) for i in inputs) if inputs is not None else (str(archive_path),),
        outputs=(engine_location(tag),),
        action=load,
        staleness=loaded_staleness if verify_loaded else None,
        description=description or f"Load image {tag}",
        options={"tag": tag, "archive": str(archive_path)},
    )
