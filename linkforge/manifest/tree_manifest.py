"""
Tree manifest schema.

A content-addressed snapshot of a file tree: one entry per file with its
relative path, size and SHA-256 digest.
"""

from __future__ import annotations

from pathlib import Path

import xxhash
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from linkforge.core.errors import SerializationError
from linkforge.core.json_canonical import (
    canonical_json_bytes,
    read_json_file,
    write_json_file,
)

HASH_HEX_LENGTH = 64


class ManifestEntry(BaseModel):
    """A single file in a manifest."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="Relative, slash-normalized file path")
    size: int = Field(ge=0, description="File size in bytes")
    hash: str = Field(description="Lowercase hex SHA-256 of the file content")

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        value = value.replace("\\", "/")
        if not value or value.startswith("/") or ".." in value.split("/"):
            raise ValueError(f"Manifest path must be relative: {value!r}")
        return value

    @field_validator("hash")
    @classmethod
    def _check_hash(cls, value: str) -> str:
        value = value.lower()
        if len(value) != HASH_HEX_LENGTH or any(c not in "0123456789abcdef" for c in value):
            raise ValueError(f"Not a SHA-256 hex digest: {value!r}")
        return value


class Manifest(BaseModel):
    """
    Snapshot of a source tree at build time.

    Entries are kept sorted by path and paths are unique.
    """

    model_config = ConfigDict(frozen=True)

    entries: list[ManifestEntry] = Field(default_factory=list)

    @field_validator("entries")
    @classmethod
    def _sort_and_dedupe(cls, entries: list[ManifestEntry]) -> list[ManifestEntry]:
        ordered = sorted(entries, key=lambda e: e.path)
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.path == cur.path:
                raise ValueError(f"Duplicate manifest path: {cur.path}")
        return ordered

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def total_size(self) -> int:
        """Sum of all entry sizes in bytes."""
        return sum(e.size for e in self.entries)

    @property
    def fingerprint(self) -> str:
        """Short hash identifying this snapshot's content."""
        return xxhash.xxh64(canonical_json_bytes(self.model_dump())).hexdigest()

    def paths(self) -> list[str]:
        """Relative paths of all entries, in order."""
        return [e.path for e in self.entries]

    def save(self, path: Path) -> None:
        """Save manifest to file."""
        write_json_file(path, self.model_dump())

    @classmethod
    def load(cls, path: Path) -> Manifest:
        """
        Load manifest from file.

        Raises:
            SerializationError: If the file is not a valid manifest.
        """
        data = read_json_file(path)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SerializationError(f"Invalid manifest {path}: {e}", path, e) from e
