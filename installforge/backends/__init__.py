"""Default implementations of the capability protocols.

Installer authors may pass their own objects satisfying
``Toolchain``, ``ImageBuilder``, ``ContainerEngine`` or ``FilePlacer``
to the target factories instead.
"""

from installforge.backends.cargo import CargoManifestError, CargoToolchain
from installforge.backends.docker import DockerEngine, DockerImageBuilder
from installforge.backends.files import LocalFilePlacer

__all__ = [
    "CargoManifestError",
    "CargoToolchain",
    "DockerEngine",
    "DockerImageBuilder",
    "LocalFilePlacer",
]
