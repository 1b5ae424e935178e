"""
Mutation journal.

An ordered record of the filesystem mutations an operation performed,
expressed as tagged steps that each know how to undo themselves. Rolling
back walks the journal in reverse and keeps going past individual
failures, reporting each one.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

from linkforge.core.errors import LinkForgeError, SerializationError, SyncIOError
from linkforge.fs.links import LinkOps
from linkforge.fs.moves import move_directory

logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    """Tag identifying a journal step variant."""

    CREATE_LINK = "create_link"
    MOVE_DIRECTORY = "move_directory"
    COPY_FILE = "copy_file"
    BACKUP_FILE = "backup_file"


@dataclass(frozen=True)
class CreateLink:
    """A directory link was created at ``link_path``."""

    link_path: Path
    target: Path | None = None
    kind: StepKind = field(default=StepKind.CREATE_LINK, init=False)

    def undo(self, links: LinkOps) -> bool:
        if not links.is_link(self.link_path):
            return False
        links.remove_link(self.link_path)
        return True


@dataclass(frozen=True)
class MoveDirectory:
    """A real directory was moved from ``source`` to ``destination``."""

    source: Path
    destination: Path
    kind: StepKind = field(default=StepKind.MOVE_DIRECTORY, init=False)

    def undo(self, links: LinkOps) -> bool:
        if links.exists(self.source) or not self.destination.is_dir():
            return False
        move_directory(self.destination, self.source)
        return True


@dataclass(frozen=True)
class CopyFile:
    """A payload file was written to ``destination``."""

    source: Path
    destination: Path
    overwrote: bool = False
    kind: StepKind = field(default=StepKind.COPY_FILE, init=False)

    def undo(self, links: LinkOps) -> bool:
        # Overwritten files come back through their BackupFile step
        if self.overwrote or not self.destination.is_file():
            return False
        try:
            self.destination.unlink()
        except OSError as e:
            raise SyncIOError(f"Failed to remove {self.destination}: {e}", self.destination, e) from e
        return True


@dataclass(frozen=True)
class BackupFile:
    """The previous content of ``original`` was saved to ``backup``."""

    original: Path
    backup: Path
    kind: StepKind = field(default=StepKind.BACKUP_FILE, init=False)

    def undo(self, links: LinkOps) -> bool:
        if not self.backup.is_symlink() and not self.backup.is_file():
            return False
        try:
            # Links are restored as links, and never written through
            if self.original.is_symlink() or (
                self.backup.is_symlink() and os.path.lexists(self.original)
            ):
                self.original.unlink()
            shutil.copy2(self.backup, self.original, follow_symlinks=False)
        except OSError as e:
            raise SyncIOError(f"Failed to restore {self.original}: {e}", self.original, e) from e
        return True


Step = Union[CreateLink, MoveDirectory, CopyFile, BackupFile]

_STEP_TYPES: dict[StepKind, type] = {
    StepKind.CREATE_LINK: CreateLink,
    StepKind.MOVE_DIRECTORY: MoveDirectory,
    StepKind.COPY_FILE: CopyFile,
    StepKind.BACKUP_FILE: BackupFile,
}

_PATH_FIELDS = {"link_path", "target", "source", "destination", "original", "backup"}


def step_to_dict(step: Step) -> dict[str, Any]:
    """Convert a step to a tagged dictionary."""
    data: dict[str, Any] = {"kind": step.kind.value}
    for name, value in vars(step).items():
        if name == "kind":
            continue
        data[name] = str(value) if isinstance(value, Path) else value
    return data


def step_from_dict(data: dict[str, Any]) -> Step:
    """
    Create a step from a tagged dictionary.

    Raises:
        SerializationError: If the tag or fields are invalid.
    """
    try:
        step_type = _STEP_TYPES[StepKind(data["kind"])]
        kwargs = {
            k: (Path(v) if k in _PATH_FIELDS and v is not None else v)
            for k, v in data.items()
            if k != "kind"
        }
        return step_type(**kwargs)
    except (KeyError, ValueError, TypeError) as e:
        raise SerializationError(f"Invalid journal step {data!r}: {e}") from e


@dataclass
class StepFailure:
    """A step that could not be undone."""

    step: Step
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"step": step_to_dict(self.step), "error": self.error}


@dataclass
class RollbackResult:
    """Outcome of rolling back a journal."""

    undone: list[Step] = field(default_factory=list)
    skipped: list[Step] = field(default_factory=list)
    failures: list[StepFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def count(self, kind: StepKind) -> int:
        """Number of undone steps of a given kind."""
        return sum(1 for s in self.undone if s.kind == kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "undone": len(self.undone),
            "skipped": len(self.skipped),
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class Journal:
    """Ordered sequence of performed mutations."""

    steps: list[Step] = field(default_factory=list)

    def record(self, step: Step) -> Step:
        self.steps.append(step)
        return step

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def of_kind(self, kind: StepKind) -> list[Step]:
        return [s for s in self.steps if s.kind == kind]

    def to_list(self) -> list[dict[str, Any]]:
        return [step_to_dict(s) for s in self.steps]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]]) -> Journal:
        """
        Rebuild a journal from ``to_list`` output.

        Raises:
            SerializationError: If ``data`` is not a list of valid steps.
        """
        if not isinstance(data, list):
            raise SerializationError(f"Journal must be a list of steps, got {type(data).__name__}")
        return cls(steps=[step_from_dict(d) for d in data])


def rollback(journal: Journal, links: LinkOps) -> RollbackResult:
    """
    Undo a journal's steps in reverse order.

    Every step is attempted even when an earlier one fails.

    Args:
        journal: Journal to undo.
        links: Link implementation.

    Returns:
        RollbackResult listing undone, skipped and failed steps.
    """
    result = RollbackResult()
    for step in reversed(journal.steps):
        try:
            if step.undo(links):
                result.undone.append(step)
            else:
                result.skipped.append(step)
        except (LinkForgeError, OSError) as e:
            logger.warning("Could not undo %s: %s", step_to_dict(step), e)
            result.failures.append(StepFailure(step=step, error=str(e)))
    return result

