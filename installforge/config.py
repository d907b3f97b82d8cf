"""Installer configuration: env-driven, via pydantic-settings.

Reads from a ``.env`` file and ``INSTALLFORGE_*`` environment variables.
Settings are passed explicitly to the ``Installer``; nothing in the core
reads a module-level instance.

Examples
--------
Override via environment::

    export INSTALLFORGE_CACHE_DIR=/var/cache/myproject
    export INSTALLFORGE_CONCURRENCY_LIMIT=4
    export INSTALLFORGE_FAIL_FAST=true
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from installforge.models.fingerprints import SignatureMode


class InstallerSettings(BaseSettings):
    """Settings for an installer run, overridable from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="INSTALLFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Build cache: fingerprint database and per-target work directories
    cache_dir: Path = Path(".installforge")
    create_cache_dir: bool = True

    # Scheduling
    concurrency_limit: int | None = Field(default=None, ge=1)
    fail_fast: bool = False
    grace_period_seconds: float = Field(default=10.0, ge=0)
    dry_run: bool = False

    # Staleness
    signature_mode: SignatureMode = SignatureMode.CONTENT

    # Observability
    log_level: str = "INFO"

    @property
    def fingerprint_db_path(self) -> Path:
        """SQLite file holding the fingerprint records."""
        return self.cache_dir / "fingerprints.db"

    @property
    def work_root(self) -> Path:
        """Parent of the per-target scoped working directories."""
        return self.cache_dir / "work"
