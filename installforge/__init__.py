"""installforge: incremental build-and-install orchestration for custom installers.

Declare targets (component builds, container images, image loads, file
installs, composite groups), wire their dependencies, and let the engine
rebuild only what changed:
  - SHA-256 fingerprints (or mtime signatures) persisted in SQLite
  - dirty propagation through the dependency DAG
  - bounded-concurrency execution with failure cascades, fail-fast and
    cancellation
  - a typer/rich CLI factory for the installer executable
"""

__version__ = "0.1.0"
__description__ = "Incremental build-and-install orchestration for custom installers"

from installforge.cli.app import build_cli
from installforge.config import InstallerSettings
from installforge.core.installer import Installer, TargetHandle
from installforge.models import ExecutionOptions, ExecutionReport, Plan, TargetKind, TargetState
from installforge.models.targets import target_ref
from installforge.targets import (
    component_build,
    composite_group,
    file_install,
    image_build,
    image_load,
)

__all__ = [
    "Installer",
    "InstallerSettings",
    "TargetHandle",
    "ExecutionOptions",
    "ExecutionReport",
    "Plan",
    "TargetKind",
    "TargetState",
    "target_ref",
    "component_build",
    "composite_group",
    "file_install",
    "image_build",
    "image_load",
    "build_cli",
    "__version__",
]
