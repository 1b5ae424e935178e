"""Directory link substitution and relocation."""

from linkforge.links.manager import (
    CleanupReport,
    LinkManager,
    LinkRecord,
    LinkResult,
    cleanup_links,
    link_directory,
)
from linkforge.links.overrides import OverrideStore
from linkforge.links.relocation import RelocationManager, RelocationResult

__all__ = [
    "CleanupReport",
    "LinkManager",
    "LinkRecord",
    "LinkResult",
    "cleanup_links",
    "link_directory",
    "OverrideStore",
    "RelocationManager",
    "RelocationResult",
]
