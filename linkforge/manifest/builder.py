"""
Manifest building.

Walks a tree and hashes each file with a fixed-size read buffer so large
payloads are never held in memory.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from linkforge.core.config import EngineConfig
from linkforge.core.errors import SyncIOError
from linkforge.fs.walk import list_files, relative_posix
from linkforge.manifest.tree_manifest import Manifest, ManifestEntry

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 65536


def compute_file_hash(path: Path, buffer_size: int = DEFAULT_BUFFER_SIZE) -> str:
    """
    Compute SHA-256 of a file's contents.

    Args:
        path: Path to file.
        buffer_size: Bytes read per chunk.

    Returns:
        Lowercase hex digest.

    Raises:
        SyncIOError: If the file cannot be read.
    """
    hasher = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(buffer_size), b""):
                hasher.update(chunk)
    except OSError as e:
        raise SyncIOError(f"Failed to hash {path}: {e}", path, e) from e
    return hasher.hexdigest()


def build_entry(path: Path, root: Path, buffer_size: int = DEFAULT_BUFFER_SIZE) -> ManifestEntry:
    """Build a manifest entry for one file under ``root``."""
    try:
        size = path.stat().st_size
    except OSError as e:
        raise SyncIOError(f"Failed to stat {path}: {e}", path, e) from e

    return ManifestEntry(
        path=relative_posix(path, root),
        size=size,
        hash=compute_file_hash(path, buffer_size),
    )


def build_manifest(root: Path, config: EngineConfig | None = None) -> Manifest:
    """
    Build a manifest of every file under ``root``.

    Any unreadable file aborts the whole build.

    Args:
        root: Tree to snapshot.
        config: Engine config, for the hash buffer size.

    Returns:
        Manifest with entries sorted by path.

    Raises:
        NotFoundError: If ``root`` is not a directory.
        SyncIOError: If any file cannot be read.
    """
    root = Path(root)
    buffer_size = config.hash_buffer_size if config else DEFAULT_BUFFER_SIZE

    entries = [build_entry(path, root, buffer_size) for path in list_files(root)]
    manifest = Manifest(entries=entries)

    logger.debug(
        "Built manifest of %s: %d files, %d bytes, fingerprint %s",
        root,
        len(manifest),
        manifest.total_size,
        manifest.fingerprint,
    )
    return manifest
