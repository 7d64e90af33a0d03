"""Project-wide configuration helpers and directory constants."""
from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
MANIFEST_DIR = DATA_DIR / "manifests"
DEFAULT_MANIFEST = MANIFEST_DIR / "output_dirs.csv"

DEFAULT_DIR_MODE = 0o777
MODE_MASK = 0o7777

DEFAULT_CHUNK_SIZE = 10_000
PROGRESS_LOG_EVERY = 1_000


def read_process_umask() -> int:
    """Return the current process umask without changing it.

    ``os.umask`` can only be read by setting it, so this briefly swaps in
    ``0`` and restores the previous value. Call it once at startup.
    """
    current = os.umask(0)
    os.umask(current)
    return current


PROCESS_UMASK = read_process_umask()
