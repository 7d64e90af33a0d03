"""Recursive directory creation over a pluggable filesystem."""

from .filesystem import FileSystem, OsFileSystem, PathKind
from .mkdirp import CreationResult, RecursiveDirectoryCreator, mkdirp

__all__ = [
    "CreationResult",
    "FileSystem",
    "OsFileSystem",
    "PathKind",
    "RecursiveDirectoryCreator",
    "mkdirp",
]
