"""Installer for the ``hello-world`` app.

Builds the ``hello-world`` crate with cargo and copies the binary into
``$PREFIX/bin`` (``~/.local`` by default).

Usage:
    python examples/hello_world.py build
    python examples/hello_world.py plan
"""

from __future__ import annotations

import os
from pathlib import Path

from installforge import Installer, build_cli, component_build, composite_group, file_install

HERE = Path(__file__).resolve().parent
PREFIX = Path(os.environ.get("PREFIX", Path.home() / ".local"))

installer = Installer()
installer.register_target(component_build("hello-world", HERE / "hello-world"))
installer.register_target(
    file_install(
        "install-hello-world",
        HERE / "hello-world" / "target" / "release" / "hello-world",
        PREFIX / "bin" / "hello-world",
        mode=0o755,
    ),
    depends_on=["hello-world"],
)
installer.register_target(composite_group("install", "Build and install everything")).depends_on(
    "install-hello-world"
)

app = build_cli(installer, name="hello-world-install", help="Installer for the 'hello-world' app.")

if __name__ == "__main__":
    app()
