"""Manifest system: tree snapshots, building and verification."""

from linkforge.manifest.tree_manifest import Manifest, ManifestEntry
from linkforge.manifest.builder import build_manifest, compute_file_hash
from linkforge.manifest.verifier import (
    is_already_applied,
    matches_destination,
    matches_source,
)

__all__ = [
    "Manifest",
    "ManifestEntry",
    "build_manifest",
    "compute_file_hash",
    "is_already_applied",
    "matches_destination",
    "matches_source",
]
