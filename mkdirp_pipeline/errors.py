"""Exceptions raised while resolving targets and creating directories."""
from __future__ import annotations

import enum
import os


class CreationCause(enum.Enum):
    """Why a directory could not be created."""

    NOT_A_DIRECTORY = "not_a_directory"
    PERMISSION = "permission"
    INVALID_PATH = "invalid_path"
    OTHER = "other"


class MkdirpPipelineError(Exception):
    """Base class for every error the pipeline stage surfaces."""


class ResolverError(MkdirpPipelineError):
    """A resolver failed to map an item to a directory target."""

    def __init__(self, message: str, *, item_index: int | None = None) -> None:
        super().__init__(message)
        self.item_index = item_index


class DirectoryCreationError(MkdirpPipelineError):
    """An ancestor of the requested directory could not be created."""

    def __init__(self, path: str | os.PathLike[str], cause: CreationCause, message: str | None = None) -> None:
        self.path = path
        self.cause = cause
        super().__init__(message or f"Cannot create directory {os.fspath(path)!r}: {cause.value}")

    @property
    def errno(self) -> int | None:
        """Errno of the underlying ``OSError``, when there is one."""
        original = self.__cause__
        if isinstance(original, OSError):
            return original.errno
        return None


class StageAbortedError(MkdirpPipelineError):
    """Raised when a stage that already aborted is asked to process more items."""
