"""Race-tolerant recursive directory creation."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import errno
import logging
import os

from mkdirp_pipeline.creation.filesystem import FileSystem, OsFileSystem, PathKind
from mkdirp_pipeline.errors import CreationCause, DirectoryCreationError
from mkdirp_pipeline.settings import DEFAULT_DIR_MODE, MODE_MASK

logger = logging.getLogger(__name__)

_PERMISSION_ERRNOS = frozenset({errno.EACCES, errno.EPERM, errno.EROFS})
_INVALID_PATH_ERRNOS = frozenset(
    code
    for code in (
        errno.ENAMETOOLONG,
        errno.EINVAL,
        errno.ELOOP,
        getattr(errno, "EILSEQ", None),
    )
    if code is not None
)


@dataclass(frozen=True)
class CreationResult:
    """Outcome of a successful :meth:`RecursiveDirectoryCreator.create` call."""

    path: Path
    created: tuple[Path, ...] = ()

    @property
    def leaf_created(self) -> bool:
        return bool(self.created) and self.created[-1] == self.path


def classify_os_error(exc: OSError) -> CreationCause:
    """Map an ``OSError`` from ``mkdir`` onto a :class:`CreationCause`."""
    if exc.errno in _PERMISSION_ERRNOS:
        return CreationCause.PERMISSION
    if exc.errno in _INVALID_PATH_ERRNOS:
        return CreationCause.INVALID_PATH
    if exc.errno == errno.ENOTDIR:
        return CreationCause.NOT_A_DIRECTORY
    return CreationCause.OTHER


def canonicalize(path: str | os.PathLike[str]) -> Path:
    """Return ``path`` as an absolute path with ``..`` segments collapsed."""
    raw = os.fsdecode(os.fspath(path))
    if not raw:
        raise DirectoryCreationError(raw, CreationCause.INVALID_PATH, "Directory path must not be empty")
    if "\x00" in raw:
        raise DirectoryCreationError(raw, CreationCause.INVALID_PATH, f"Directory path contains a NUL byte: {raw!r}")
    return Path(os.path.abspath(raw))


def ancestors_of(path: Path) -> list[Path]:
    """Ancestors of an absolute ``path`` ordered from the root to ``path`` itself."""
    return [*reversed(path.parents), path]


def validate_mode(mode: int) -> int:
    if isinstance(mode, bool) or not isinstance(mode, int) or not 0 <= mode <= MODE_MASK:
        raise ValueError(f"Directory mode must be an integer between 0 and 0o7777, got {mode!r}")
    return mode


class RecursiveDirectoryCreator:
    """Ensure a directory and every missing ancestor exist.

    Each ancestor is created with a single ``mkdir`` attempt. When that fails,
    one ``stat`` decides whether the failure matters: a directory already
    sitting at that path (pre-existing, or created by a concurrent process
    between our check and our call) counts as success. Nothing is retried.

    The umask is captured once, at construction, from the filesystem
    capability unless an explicit ``umask`` is injected.
    """

    def __init__(
        self,
        filesystem: FileSystem | None = None,
        *,
        umask: int | None = None,
        default_mode: int = DEFAULT_DIR_MODE,
    ) -> None:
        self.filesystem = filesystem or OsFileSystem()
        self.umask = validate_mode(self.filesystem.get_umask() if umask is None else umask)
        self.default_mode = validate_mode(default_mode)

    def requested_mode(self, mode: int | None) -> int:
        """Permission bits passed to ``mkdir`` once the umask is applied."""
        bits = self.default_mode if mode is None else validate_mode(mode)
        return bits & ~self.umask & MODE_MASK

    def create(self, path: str | os.PathLike[str], mode: int | None = None) -> CreationResult:
        """Create ``path`` and any missing ancestors.

        Parameters
        ----------
        path:
            Directory to ensure. Relative paths are resolved against the
            current working directory.
        mode:
            Permission bits for the leaf directory if this call creates it.
            Intermediate directories use ``default_mode``. Directories that
            already exist are never modified.

        Returns
        -------
        CreationResult
            The canonical path and the directories this call created.

        Raises
        ------
        DirectoryCreationError
            If an ancestor exists as a non-directory or the OS refuses to
            create one. Directories created before the failure are kept.
        """
        target = canonicalize(path)
        leaf_mode = self.requested_mode(mode)
        parent_mode = self.requested_mode(None)

        created: list[Path] = []
        for ancestor in ancestors_of(target):
            requested = leaf_mode if ancestor == target else parent_mode
            if self._ensure_one(ancestor, requested):
                created.append(ancestor)

        if created:
            logger.debug(f"Created {len(created)} director{'y' if len(created) == 1 else 'ies'} for {target}")
        return CreationResult(path=target, created=tuple(created))

    def _ensure_one(self, directory: Path, mode: int) -> bool:
        """Create one directory; return ``True`` if this call created it."""
        location = str(directory)
        try:
            self.filesystem.mkdir(location, mode)
        except ValueError as exc:
            # os.mkdir raises ValueError, not OSError, for names the OS cannot encode.
            raise DirectoryCreationError(
                directory,
                CreationCause.INVALID_PATH,
                f"Cannot create directory {location!r}: {exc}",
            ) from exc
        except OSError as exc:
            kind = self.filesystem.stat_path(location)
            if kind is PathKind.DIRECTORY:
                return False
            if kind is PathKind.OTHER:
                raise DirectoryCreationError(
                    directory,
                    CreationCause.NOT_A_DIRECTORY,
                    f"Cannot create directory {location!r}: path exists and is not a directory",
                ) from exc
            cause = classify_os_error(exc)
            raise DirectoryCreationError(
                directory,
                cause,
                f"Cannot create directory {location!r}: {exc.strerror or exc}",
            ) from exc
        return True


_default_creator: RecursiveDirectoryCreator | None = None


def default_creator() -> RecursiveDirectoryCreator:
    """Shared creator bound to the real filesystem."""
    global _default_creator
    if _default_creator is None:
        _default_creator = RecursiveDirectoryCreator()
    return _default_creator


def mkdirp(path: str | os.PathLike[str], mode: int | None = None) -> CreationResult:
    """Ensure ``path`` exists as a directory, creating missing ancestors."""
    return default_creator().create(path, mode)
