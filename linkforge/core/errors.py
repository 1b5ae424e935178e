"""
Error taxonomy for engine operations.

Every failure surfaces to the caller as one of these types; nothing is
retried internally.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class ErrorCategory(str, Enum):
    """Category of error for reporting."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    IO = "io"
    LINK_CREATION = "link_creation"
    SERIALIZATION = "serialization"


class LinkForgeError(Exception):
    """Base class for all engine errors."""

    category: ErrorCategory = ErrorCategory.IO

    def __init__(
        self,
        message: str,
        path: Path | str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.path = Path(path) if path is not None else None
        self.original_error = original_error


class NotFoundError(LinkForgeError):
    """An expected source or destination is absent."""

    category = ErrorCategory.NOT_FOUND


class AlreadyExistsError(LinkForgeError):
    """A destination is already occupied."""

    category = ErrorCategory.ALREADY_EXISTS


class SyncIOError(LinkForgeError):
    """A read, write, copy or move failed."""

    category = ErrorCategory.IO


class LinkCreationError(LinkForgeError):
    """The platform link primitive reported failure."""

    category = ErrorCategory.LINK_CREATION


class SerializationError(LinkForgeError):
    """Manifest, lock or override data could not be parsed."""

    category = ErrorCategory.SERIALIZATION
