"""Signature helpers for staleness detection.

File signatures are ``sha256:<hex>`` (content mode) or
``mtime:<ns>:<size>`` (mtime mode). Directories are signed by their
sorted relative paths plus each file's signature, so adding, removing,
renaming or editing any file changes the directory signature.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from installforge.models.fingerprints import SignatureMode

_CHUNK_SIZE = 1 << 20

# Directory names never descended into when signing a source tree.
IGNORED_DIR_NAMES: frozenset[str] = frozenset({".git", "__pycache__", ".installforge"})


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce sorted, compact JSON bytes for hashing."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_address(obj: Any) -> str:
    """Signature of a JSON-serializable object, ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


def file_digest(path: Path) -> str:
    """Stream a file through SHA-256 and return the hex digest."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def file_signature(path: Path, mode: SignatureMode = SignatureMode.CONTENT) -> str:
    """Signature of a single regular file."""
    if mode == SignatureMode.MTIME:
        stat = path.stat()
        return f"mtime:{stat.st_mtime_ns}:{stat.st_size}"
    return f"sha256:{file_digest(path)}"


def directory_signature(
    path: Path, mode: SignatureMode = SignatureMode.CONTENT
) -> str:
    """Signature of a directory tree, skipping ``IGNORED_DIR_NAMES``."""
    entries: list[list[str]] = []
    for root, dirs, files in os.walk(path):
        dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIR_NAMES)
        for name in sorted(files):
            full = Path(root) / name
            if not full.is_file():
                continue
            rel = full.relative_to(path).as_posix()
            entries.append([rel, file_signature(full, mode)])
    return content_address({"tree": entries})


def path_signature(
    path: str | Path, mode: SignatureMode = SignatureMode.CONTENT
) -> str | None:
    """Signature of a file or directory, or None when it does not exist."""
    p = Path(path)
    if p.is_dir():
        return directory_signature(p, mode)
    if p.is_file():
        return file_signature(p, mode)
    return None


def combine_signatures(signatures: Mapping[str, str | None]) -> str:
    """Fold a location -> signature mapping into a single signature."""
    return content_address({k: signatures[k] for k in sorted(signatures)})
