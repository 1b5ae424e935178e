"""Filesystem primitives: directory links, cross-volume moves, tree walking."""

from linkforge.fs.links import JunctionOps, LinkOps, SymlinkOps, get_link_ops
from linkforge.fs.moves import move_directory
from linkforge.fs.walk import iter_files, list_files, relative_posix

__all__ = [
    "LinkOps",
    "SymlinkOps",
    "JunctionOps",
    "get_link_ops",
    "move_directory",
    "iter_files",
    "list_files",
    "relative_posix",
]
