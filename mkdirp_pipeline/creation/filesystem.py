"""Filesystem capabilities consumed by the directory creator."""
from __future__ import annotations

import enum
import os
import stat
from typing import Protocol

from mkdirp_pipeline.settings import PROCESS_UMASK


class PathKind(enum.Enum):
    DIRECTORY = "directory"
    OTHER = "other"
    MISSING = "missing"


class FileSystem(Protocol):
    """The three operations the creator needs from the host filesystem."""

    def mkdir(self, path: str, mode: int) -> None:
        ...

    def stat_path(self, path: str) -> PathKind:
        ...

    def get_umask(self) -> int:
        ...


class OsFileSystem:
    """``FileSystem`` backed by the ``os`` module."""

    def mkdir(self, path: str, mode: int) -> None:
        os.mkdir(path, mode)

    def stat_path(self, path: str) -> PathKind:
        # Follows symlinks: a link to a directory is a usable directory.
        try:
            result = os.stat(path)
        except OSError:
            return PathKind.MISSING
        if stat.S_ISDIR(result.st_mode):
            return PathKind.DIRECTORY
        return PathKind.OTHER

    def get_umask(self) -> int:
        return PROCESS_UMASK
