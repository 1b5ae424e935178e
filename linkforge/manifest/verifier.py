"""
Manifest verification.

Compares a manifest against a source tree (cheaply, sizes only) or a
destination tree (exactly, sizes and hashes), and combines the two into a
tiered "already applied" check that avoids re-hashing large trees.
"""

from __future__ import annotations

import logging
from pathlib import Path

from linkforge.core.config import EngineConfig
from linkforge.fs.walk import list_files
from linkforge.manifest.builder import DEFAULT_BUFFER_SIZE, build_manifest, compute_file_hash
from linkforge.manifest.tree_manifest import Manifest

logger = logging.getLogger(__name__)


def matches_destination(
    manifest: Manifest,
    dest_root: Path,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> bool:
    """
    Check that every manifest entry exists at the destination unchanged.

    Size is compared before hashing; returns on the first mismatch.

    Args:
        manifest: Manifest to check.
        dest_root: Destination tree.
        buffer_size: Hash read buffer.

    Returns:
        True if every entry matches in size and hash.
    """
    dest_root = Path(dest_root)
    for entry in manifest.entries:
        dest_file = dest_root / entry.path
        try:
            if not dest_file.is_file() or dest_file.stat().st_size != entry.size:
                logger.debug("Destination mismatch (missing or size): %s", entry.path)
                return False
        except OSError:
            return False
        if compute_file_hash(dest_file, buffer_size) != entry.hash:
            logger.debug("Destination mismatch (hash): %s", entry.path)
            return False
    return True


def matches_source(manifest: Manifest, src_root: Path) -> bool:
    """
    Cheap staleness check: same file count and sizes, no hashing.

    Args:
        manifest: Manifest to check.
        src_root: Source tree the manifest was built from.

    Returns:
        True if the manifest still describes the source by count and size.
    """
    src_root = Path(src_root)
    if not src_root.is_dir():
        return False

    if len(list_files(src_root)) != len(manifest):
        return False

    for entry in manifest.entries:
        src_file = src_root / entry.path
        try:
            if not src_file.is_file() or src_file.stat().st_size != entry.size:
                return False
        except OSError:
            return False
    return True


def is_already_applied(
    src_root: Path,
    dest_root: Path,
    manifest_path: Path,
    config: EngineConfig | None = None,
) -> bool:
    """
    Check whether ``src_root`` has already been synced onto ``dest_root``.

    Policy:
    1. A persisted manifest that still matches the source is trusted and
       checked against the destination.
    2. Otherwise a fresh manifest is built from the source and checked; it
       is persisted only when the destination matches.
    3. No match means False with nothing persisted.

    An absent destination or an empty source is never considered applied.

    Args:
        src_root: Payload tree.
        dest_root: Installation tree.
        manifest_path: Manifest sidecar location.
        config: Engine config.

    Returns:
        True if the destination already holds the payload.

    Raises:
        SerializationError: If the persisted manifest is corrupt.
        SyncIOError: If the source cannot be read while rebuilding.
    """
    src_root, dest_root, manifest_path = Path(src_root), Path(dest_root), Path(manifest_path)
    buffer_size = config.hash_buffer_size if config else DEFAULT_BUFFER_SIZE

    if not dest_root.is_dir():
        return False

    if manifest_path.is_file():
        cached = Manifest.load(manifest_path)
        if len(cached) and matches_source(cached, src_root):
            return matches_destination(cached, dest_root, buffer_size)
        logger.info("Manifest %s is stale, rebuilding from %s", manifest_path, src_root)

    fresh = build_manifest(src_root, config)
    if not len(fresh):
        return False

    if matches_destination(fresh, dest_root, buffer_size):
        fresh.save(manifest_path)
        logger.info("Recorded manifest %s (%s)", manifest_path, fresh.fingerprint)
        return True
    return False
