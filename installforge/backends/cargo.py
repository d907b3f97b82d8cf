"""Cargo toolchain backend for component builds."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from installforge.core.actions import ActionContext
from installforge.core.shell import ShellCommand

logger = logging.getLogger(__name__)


class CargoManifestError(ValueError):
    """Raised when a Cargo.toml is missing or unusable."""


def read_manifest(source: Path) -> dict:
    """Parse ``<source>/Cargo.toml``."""
    manifest = Path(source) / "Cargo.toml"
    if not manifest.is_file():
        raise CargoManifestError(f"Missing Cargo.toml file '{manifest}'")
    try:
        with manifest.open("rb") as fh:
            return tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise CargoManifestError(f"Failed to parse Cargo.toml file '{manifest}': {exc}") from exc


def manifest_packages(source: Path) -> list[str]:
    """Package names declared by the manifest at *source*.

    A package manifest yields its own name; a workspace manifest yields
    the names of its members.
    """
    data = read_manifest(source)
    package = data.get("package")
    if isinstance(package, dict) and "name" in package:
        return [str(package["name"])]
    members = data.get("workspace", {}).get("members", [])
    names: list[str] = []
    for member in members:
        names.extend(manifest_packages(Path(source) / member))
    if not names:
        raise CargoManifestError(
            f"'{Path(source) / 'Cargo.toml'}' declares neither a package nor workspace members"
        )
    return names


def lock_file(source: Path) -> Path:
    """The workspace or package lock file at *source*."""
    return Path(source) / "Cargo.lock"


def manifest_sources(source: Path) -> list[str]:
    """Input locations of a crate: its manifest, lock file and ``src`` tree.

    The lock file is always listed, since ``cargo build`` creates it when
    missing. Targets should mark it optional (see ``lock_file``).
    """
    root = Path(source)
    inputs = [root / "Cargo.toml", lock_file(root)]
    if (root / "src").exists():
        inputs.append(root / "src")
    for member in read_manifest(root).get("workspace", {}).get("members", []):
        inputs.append(root / member / "Cargo.toml")
        if (root / member / "src").exists():
            inputs.append(root / member / "src")
    return [str(p) for p in inputs]


def binary_path(source: Path, package: str, release: bool = True) -> Path:
    """Where cargo places the binary of *package*."""
    return Path(source) / "target" / ("release" if release else "debug") / package


class CargoToolchain:
    """Compiles Rust crates with ``cargo build``.

    Parameters
    ----------
    executable:
        The cargo binary to call.
    """

    def __init__(self, executable: str = "cargo") -> None:
        self.executable = executable

    def command(
        self,
        packages: list[str] | None = None,
        release: bool = True,
        extra_args: list[str] | None = None,
    ) -> ShellCommand:
        cmd = ShellCommand(self.executable, ["build"])
        if release:
            cmd.add_arg("--release")
        for package in packages or []:
            cmd.add_args(["--package", package])
        cmd.add_args(extra_args or [])
        return cmd

    def compile(
        self,
        source: Path,
        context: ActionContext,
        *,
        packages: list[str] | None = None,
        release: bool = True,
        extra_args: list[str] | None = None,
    ) -> list[Path]:
        packages = packages or manifest_packages(source)
        cmd = self.command(packages, release, extra_args).add_envs(context.env)
        context.raise_if_cancelled()
        cmd.run_checked(Path(source), log_path=context.work_dir / "cargo.log")
        built = [binary_path(source, package, release) for package in packages]
        logger.debug("Built %s", ", ".join(str(p) for p in built))
        return built
