"""Payload sync: idempotent tree installs with backups."""

from linkforge.sync.applier import (
    ApplyReport,
    InstallResult,
    SyncApplier,
    apply_tree,
    install_payload,
)

__all__ = [
    "ApplyReport",
    "InstallResult",
    "SyncApplier",
    "apply_tree",
    "install_payload",
]
