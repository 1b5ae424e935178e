"""
Directory link substitution.

Replaces a mount point with a directory link, moving any real directory
found there to a timestamped backup, and records both actions in a lock
file so ``cleanup`` can put everything back.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from linkforge.core.config import EngineConfig, load_config
from linkforge.core.errors import (
    AlreadyExistsError,
    LinkCreationError,
    SerializationError,
    SyncIOError,
)
from linkforge.core.journal import (
    CreateLink,
    Journal,
    MoveDirectory,
    StepFailure,
    StepKind,
    rollback,
)
from linkforge.core.json_canonical import read_json_file, write_json_file
from linkforge.fs.links import LinkOps, get_link_ops
from linkforge.fs.moves import move_directory

logger = logging.getLogger(__name__)


class LinkRecord(BaseModel):
    """
    Lock state: links created and directories displaced by linking.

    Backup pairs are ``(original, backup)`` and only exist for mount points
    that were real directories.
    """

    links: list[str] = Field(default_factory=list)
    backups: list[tuple[str, str]] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.links and not self.backups

    def merge(self, other: LinkRecord) -> LinkRecord:
        """Combine two records, keeping order and dropping duplicates."""
        links = list(dict.fromkeys([*self.links, *other.links]))
        backups = list(dict.fromkeys([*self.backups, *other.backups]))
        return LinkRecord(links=links, backups=backups)

    def to_journal(self) -> Journal:
        """
        Express the record as a journal.

        Backups are moved before links are created, so rolling back removes
        links first and then returns backups to their original paths.
        """
        journal = Journal()
        for original, backup in self.backups:
            journal.record(MoveDirectory(source=Path(original), destination=Path(backup)))
        for link in self.links:
            journal.record(CreateLink(link_path=Path(link)))
        return journal

    @classmethod
    def from_journal(cls, journal: Journal) -> LinkRecord:
        links = [str(s.link_path) for s in journal.of_kind(StepKind.CREATE_LINK)]
        backups = [
            (str(s.source), str(s.destination))
            for s in journal.of_kind(StepKind.MOVE_DIRECTORY)
        ]
        return cls(links=links, backups=backups)

    def save(self, path: Path) -> None:
        write_json_file(path, self.model_dump())

    @classmethod
    def load(cls, path: Path) -> LinkRecord:
        """
        Load a lock file.

        Raises:
            SerializationError: If the file is not a valid lock record.
        """
        data = read_json_file(path)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SerializationError(f"Invalid lock file {path}: {e}", path, e) from e


@dataclass
class LinkResult:
    """Outcome of one ``link`` call."""

    links_created: int
    backups_taken: int
    lock_path: Path
    journal: Journal = field(default_factory=Journal)

    def to_dict(self) -> dict[str, Any]:
        return {
            "links_created": self.links_created,
            "backups_taken": self.backups_taken,
            "lock_path": str(self.lock_path),
        }


@dataclass
class CleanupReport:
    """Outcome of one ``cleanup`` call."""

    lock_found: bool = False
    links_removed: int = 0
    backups_restored: int = 0
    failures: list[StepFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "lock_found": self.lock_found,
            "links_removed": self.links_removed,
            "backups_restored": self.backups_restored,
            "failures": [f.to_dict() for f in self.failures],
        }


def _same_path(a: Path, b: Path) -> bool:
    return os.path.normcase(os.path.abspath(a)) == os.path.normcase(os.path.abspath(b))


class LinkManager:
    """
    Creates and reverses directory link substitutions.

    Every call loads the lock file from disk and persists it before
    returning.
    """

    def __init__(self, config: EngineConfig | None = None, links: LinkOps | None = None):
        """
        Initialize link manager.

        Args:
            config: Engine config. Defaults to ``load_config()``.
            links: Link implementation. Defaults to the current platform's.
        """
        self.config = config or load_config()
        self.links = links or get_link_ops()

    def lock_path_for(self, dest_path: Path) -> Path:
        """Lock file location for a mount point."""
        return Path(dest_path).parent / self.config.lock_file_name

    def backup_path_for(self, dest_path: Path) -> Path:
        """
        Fresh timestamped backup location for a mount point.

        A numeric suffix is added when the timestamped name is taken, so
        an existing backup is never reused.
        """
        dest_path = Path(dest_path)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        base = f"{dest_path.name}{self.config.backup_suffix}-{stamp}"
        candidate = dest_path.with_name(base)
        counter = 1
        while os.path.lexists(candidate):
            candidate = dest_path.with_name(f"{base}-{counter}")
            counter += 1
        return candidate

    def link(self, dest_path: Path, target_path: Path) -> LinkResult:
        """
        Make ``dest_path`` a directory link to ``target_path``.

        Steps:
        1. Create ``target_path`` if missing.
        2. An existing link already pointing at the target is left alone;
           one pointing elsewhere is re-created.
        3. A real directory at ``dest_path`` is moved to a new backup path.
        4. The link is created.
        5. Actions are merged into the lock file beside ``dest_path``.

        Args:
            dest_path: Mount point.
            target_path: Directory the link should point at.

        Returns:
            LinkResult with counts of links created and backups taken.

        Raises:
            AlreadyExistsError: If a plain file occupies ``dest_path``.
            LinkCreationError: If the platform link primitive fails.
            SyncIOError: If the target or backup cannot be created.
            SerializationError: If an existing lock file is corrupt.
        """
        dest_path, target_path = Path(dest_path).absolute(), Path(target_path).absolute()
        lock_path = self.lock_path_for(dest_path)
        journal = Journal()
        # A corrupt lock must fail before anything on disk changes
        existing = LinkRecord.load(lock_path) if lock_path.is_file() else LinkRecord()

        try:
            target_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SyncIOError(f"Failed to create {target_path}: {e}", target_path, e) from e

        if self.links.is_link(dest_path):
            current = self.links.resolve_link_target(dest_path)
            if _same_path(current, target_path):
                logger.info("%s already links to %s", dest_path, target_path)
                return LinkResult(0, 0, lock_path, journal)
            logger.info("Re-pointing %s from %s to %s", dest_path, current, target_path)
            self.links.remove_link(dest_path)
        elif dest_path.is_dir():
            backup = self.backup_path_for(dest_path)
            move_directory(dest_path, backup)
            journal.record(MoveDirectory(source=dest_path, destination=backup))
            logger.info("Backed up %s to %s", dest_path, backup)
        elif os.path.lexists(dest_path):
            raise AlreadyExistsError(f"A file occupies the mount point {dest_path}", dest_path)

        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SyncIOError(f"Failed to create {dest_path.parent}: {e}", dest_path, e) from e

        try:
            self.links.create_link(dest_path, target_path)
        except LinkCreationError:
            # A backup already taken must stay restorable
            self._persist(lock_path, existing, LinkRecord.from_journal(journal))
            raise
        journal.record(CreateLink(link_path=dest_path, target=target_path))
        self._persist(lock_path, existing, LinkRecord.from_journal(journal))

        logger.info("Linked %s -> %s", dest_path, target_path)
        return LinkResult(
            links_created=len(journal.of_kind(StepKind.CREATE_LINK)),
            backups_taken=len(journal.of_kind(StepKind.MOVE_DIRECTORY)),
            lock_path=lock_path,
            journal=journal,
        )

    def _persist(self, lock_path: Path, existing: LinkRecord, record: LinkRecord) -> None:
        if record.is_empty():
            return
        existing.merge(record).save(lock_path)

    def cleanup(self, lock_path: Path) -> CleanupReport:
        """
        Reverse everything recorded in a lock file.

        Recorded links that still exist are removed (the link only, never
        the target's contents). Backups whose original path is free again
        are moved back. Every entry is attempted; entries that fail stay in
        the lock file for a later call, otherwise the lock file is deleted.

        A missing lock file means nothing is pending and is not an error.

        Args:
            lock_path: Lock file written by ``link``.

        Returns:
            CleanupReport with counts and per-entry failures.

        Raises:
            SerializationError: If the lock file is corrupt.
            SyncIOError: If the lock file cannot be deleted or rewritten.
        """
        lock_path = Path(lock_path)
        if not lock_path.is_file():
            return CleanupReport()

        record = LinkRecord.load(lock_path)
        result = rollback(record.to_journal(), self.links)

        report = CleanupReport(
            lock_found=True,
            links_removed=result.count(StepKind.CREATE_LINK),
            backups_restored=result.count(StepKind.MOVE_DIRECTORY),
            failures=result.failures,
        )

        if result.failures:
            remaining = LinkRecord.from_journal(Journal(steps=[f.step for f in result.failures]))
            remaining.save(lock_path)
            logger.warning(
                "Cleanup of %s left %d entries pending", lock_path, len(result.failures)
            )
        else:
            try:
                lock_path.unlink()
            except OSError as e:
                raise SyncIOError(f"Failed to delete {lock_path}: {e}", lock_path, e) from e

        logger.info(
            "Cleaned up %s: %d links removed, %d backups restored",
            lock_path,
            report.links_removed,
            report.backups_restored,
        )
        return report


def link_directory(
    dest_path: Path,
    target_path: Path,
    config: EngineConfig | None = None,
) -> LinkResult:
    """Convenience wrapper around ``LinkManager.link``."""
    return LinkManager(config).link(dest_path, target_path)


def cleanup_links(lock_path: Path, config: EngineConfig | None = None) -> CleanupReport:
    """Convenience wrapper around ``LinkManager.cleanup``."""
    return LinkManager(config).cleanup(lock_path)
