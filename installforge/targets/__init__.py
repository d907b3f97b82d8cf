"""Factories for the standard target variants.

Each factory returns a frozen ``TargetDefinition`` with the variant's
action bound to a capability backend (defaults from
``installforge.backends``).
"""

from installforge.targets.component import component_build
from installforge.targets.files import file_install
from installforge.targets.group import composite_group
from installforge.targets.image import (
    engine_location,
    image_build,
    image_load,
    image_location,
)

__all__ = [
    "component_build",
    "composite_group",
    "engine_location",
    "file_install",
    "image_build",
    "image_load",
    "image_location",
]
