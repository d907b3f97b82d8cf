"""Local filesystem placement backend for file installs."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from installforge.core.actions import ActionContext, ActionFailed, MissingInput

logger = logging.getLogger(__name__)


class LocalFilePlacer:
    """Copies or symlinks artifacts on the local filesystem."""

    def place(
        self,
        source: Path,
        destination: Path,
        context: ActionContext,
        *,
        mode: int | None = None,
        link: bool = False,
    ) -> Path:
        source = Path(source)
        destination = Path(destination)
        if not source.exists():
            raise MissingInput(str(source))
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            if link:
                if destination.is_symlink() or destination.is_file():
                    destination.unlink()
                os.symlink(source.resolve(), destination)
            elif source.is_dir():
                shutil.copytree(source, destination, dirs_exist_ok=True)
            else:
                shutil.copy2(source, destination)
            if mode is not None and not link:
                os.chmod(destination, mode)
        except OSError as exc:
            raise ActionFailed(
                f"Failed to place '{source}' at '{destination}': {exc}"
            ) from exc
        logger.info("%s %s -> %s", "Linked" if link else "Installed", source, destination)
        return destination
