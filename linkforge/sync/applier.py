"""
Payload tree sync.

Copies a source tree onto a destination tree, backing up anything it
overwrites, and records a manifest so later calls can skip the work.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from linkforge.core.config import EngineConfig, load_config
from linkforge.core.errors import NotFoundError, SyncIOError
from linkforge.core.journal import BackupFile, CopyFile, Journal
from linkforge.fs.walk import list_files, relative_posix
from linkforge.manifest.builder import build_manifest
from linkforge.manifest.verifier import is_already_applied

logger = logging.getLogger(__name__)


@dataclass
class ApplyReport:
    """Counts and journal of one sync pass."""

    copied: int = 0
    replaced: int = 0
    backed_up: int = 0
    already_applied: bool = False
    manifest_fingerprint: str | None = None
    journal: Journal = field(default_factory=Journal)

    def to_dict(self) -> dict[str, Any]:
        return {
            "copied": self.copied,
            "replaced": self.replaced,
            "backed_up": self.backed_up,
            "manifest_fingerprint": self.manifest_fingerprint,
        }


@dataclass
class InstallResult:
    """Outcome of installing a payload, as reported to callers."""

    source: str
    dest: str
    already: bool
    applied: bool
    report: ApplyReport | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "already": self.already,
            "applied": self.applied,
            "source": self.source,
            "dest": self.dest,
        }
        if self.report is not None:
            data.update(self.report.to_dict())
        return data


def _copy_file(source: Path, destination: Path, follow_symlinks: bool = True) -> None:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        # Never write through a link sitting at the destination
        if destination.is_symlink():
            destination.unlink()
        shutil.copy2(source, destination, follow_symlinks=follow_symlinks)
    except OSError as e:
        raise SyncIOError(f"Failed to copy {source} -> {destination}: {e}", destination, e) from e


class SyncApplier:
    """
    Applies payload trees onto installation trees.

    Holds configuration only; every call reads state fresh from disk.
    """

    def __init__(self, config: EngineConfig | None = None):
        """
        Initialize applier.

        Args:
            config: Engine config. Defaults to ``load_config()``.
        """
        self.config = config or load_config()

    def manifest_path_for(self, dest_root: Path) -> Path:
        """Default manifest sidecar location for a destination."""
        return Path(dest_root) / self.config.manifest_file_name

    def apply(
        self,
        src_root: Path,
        dest_root: Path,
        backup_root: Path | None = None,
        manifest_path: Path | None = None,
    ) -> ApplyReport:
        """
        Copy every file under ``src_root`` onto ``dest_root``.

        Returns an empty report without touching anything when the
        destination already holds the payload.

        Files missing at the destination are copied. Files already present
        are overwritten, after their current bytes are saved under
        ``backup_root`` if one is given and no backup of that path exists
        yet. A fresh manifest of the source is persisted after a full pass.

        Not transactional: a failure leaves a partially synced destination
        that is safe to apply again.

        Args:
            src_root: Payload tree.
            dest_root: Installation tree.
            backup_root: Optional tree receiving originals of replaced files.
            manifest_path: Manifest sidecar. Defaults to one in ``dest_root``.

        Returns:
            ApplyReport with copy, replace and backup counts.

        Raises:
            NotFoundError: If ``src_root`` is not a directory.
            SyncIOError: If any file cannot be read or written.
        """
        src_root, dest_root = Path(src_root), Path(dest_root)
        backup_root = Path(backup_root) if backup_root is not None else None
        manifest_path = Path(manifest_path) if manifest_path else self.manifest_path_for(dest_root)

        if not src_root.is_dir():
            raise NotFoundError(f"Source not found: {src_root}", src_root)

        if is_already_applied(src_root, dest_root, manifest_path, self.config):
            logger.info("Payload %s already applied to %s", src_root, dest_root)
            return ApplyReport(already_applied=True)

        report = ApplyReport()
        for source in list_files(src_root):
            rel = relative_posix(source, src_root)
            destination = dest_root / rel

            if not os.path.lexists(destination):
                _copy_file(source, destination)
                report.journal.record(CopyFile(source=source, destination=destination))
                report.copied += 1
                logger.debug("Copied %s", rel)
                continue

            if backup_root is not None:
                backup = backup_root / rel
                if not os.path.lexists(backup):
                    _copy_file(destination, backup, follow_symlinks=False)
                    report.journal.record(BackupFile(original=destination, backup=backup))
                    report.backed_up += 1
                    logger.debug("Backed up %s", rel)

            _copy_file(source, destination)
            report.journal.record(CopyFile(source=source, destination=destination, overwrote=True))
            report.replaced += 1
            logger.debug("Replaced %s", rel)

        manifest = build_manifest(src_root, self.config)
        manifest.save(manifest_path)
        report.manifest_fingerprint = manifest.fingerprint

        logger.info(
            "Applied %s -> %s: %d copied, %d replaced, %d backed up",
            src_root,
            dest_root,
            report.copied,
            report.replaced,
            report.backed_up,
        )
        return report

    def is_applied(
        self,
        src_root: Path,
        dest_root: Path,
        manifest_path: Path | None = None,
    ) -> bool:
        """Check whether the payload is already present at the destination."""
        manifest_path = Path(manifest_path) if manifest_path else self.manifest_path_for(dest_root)
        return is_already_applied(src_root, dest_root, manifest_path, self.config)

    def install(
        self,
        src_root: Path,
        dest_root: Path,
        backup_root: Path | None = None,
        manifest_path: Path | None = None,
    ) -> InstallResult:
        """
        Install a payload unless it is already applied.

        Returns:
            InstallResult with ``already`` set when nothing needed doing.

        Raises:
            NotFoundError: If ``src_root`` is not a directory.
        """
        report = self.apply(src_root, dest_root, backup_root, manifest_path)
        if report.already_applied:
            return InstallResult(
                source=str(src_root), dest=str(dest_root), already=True, applied=False
            )
        return InstallResult(
            source=str(src_root),
            dest=str(dest_root),
            already=False,
            applied=True,
            report=report,
        )


def apply_tree(
    src_root: Path,
    dest_root: Path,
    backup_root: Path | None = None,
    manifest_path: Path | None = None,
    config: EngineConfig | None = None,
) -> ApplyReport:
    """Convenience wrapper around ``SyncApplier.apply``."""
    return SyncApplier(config).apply(src_root, dest_root, backup_root, manifest_path)


def install_payload(
    src_root: Path,
    dest_root: Path,
    backup_root: Path | None = None,
    config: EngineConfig | None = None,
) -> InstallResult:
    """Convenience wrapper around ``SyncApplier.install``."""
    return SyncApplier(config).install(src_root, dest_root, backup_root)
