"""Docker backends: image builder and container engine."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from installforge.core.actions import ActionContext, ActionError
from installforge.core.shell import ShellCommand

logger = logging.getLogger(__name__)

_LOADED_PREFIXES = ("Loaded image:", "Loaded image ID:")


class DockerImageBuilder:
    """Builds and exports images with the docker CLI.

    Parameters
    ----------
    executable:
        The docker-compatible binary to call (``docker``, ``podman``).
    """

    def __init__(self, executable: str = "docker") -> None:
        self.executable = executable

    def build_command(
        self,
        context_dir: Path,
        tag: str,
        *,
        dockerfile: Path | None = None,
        build_args: Mapping[str, str] | None = None,
    ) -> ShellCommand:
        cmd = ShellCommand(self.executable, ["build", "--tag", tag])
        if dockerfile is not None:
            cmd.add_args(["--file", dockerfile])
        for name, value in (build_args or {}).items():
            cmd.add_args(["--build-arg", f"{name}={value}"])
        return cmd.add_arg(context_dir)

    def build(
        self,
        context_dir: Path,
        tag: str,
        context: ActionContext,
        *,
        dockerfile: Path | None = None,
        build_args: Mapping[str, str] | None = None,
    ) -> str:
        cmd = self.build_command(
            context_dir, tag, dockerfile=dockerfile, build_args=build_args
        ).add_envs(context.env)
        cmd.run_checked(log_path=context.work_dir / "docker-build.log")
        return inspect_image_id(self.executable, tag, env=context.env)

    def save(self, tag: str, archive: Path, context: ActionContext) -> None:
        Path(archive).parent.mkdir(parents=True, exist_ok=True)
        cmd = ShellCommand(self.executable, ["save", "--output", str(archive), tag])
        cmd.add_envs(context.env).run_checked(log_path=context.work_dir / "docker-save.log")


class DockerEngine:
    """Loads image archives into the local docker daemon."""

    def __init__(self, executable: str = "docker") -> None:
        self.executable = executable

    def load(self, archive: Path, context: ActionContext) -> str:
        cmd = ShellCommand(self.executable, ["load", "--input", str(archive)])
        output = cmd.add_envs(context.env).capture()
        reference = parse_loaded_reference(output)
        logger.debug("Loaded %s from %s", reference, archive)
        return reference

    def image_id(self, reference: str) -> str | None:
        try:
            return inspect_image_id(self.executable, reference)
        except ActionError:
            return None


def inspect_image_id(
    executable: str, reference: str, env: Mapping[str, str] | None = None
) -> str:
    """Return the id docker reports for *reference*."""
    cmd = ShellCommand(
        executable, ["image", "inspect", "--format", "{{.Id}}", reference], env
    )
    return cmd.capture()


def parse_loaded_reference(output: str) -> str:
    """Extract the image reference from ``docker load`` output."""
    for line in reversed(output.splitlines()):
        for prefix in _LOADED_PREFIXES:
            if line.startswith(prefix):
                return line[len(prefix):].strip()
    return output.strip()
