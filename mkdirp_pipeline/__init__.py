"""Pipeline stage that ensures output directories exist before items move on."""

from importlib.metadata import PackageNotFoundError, version

from .creation import CreationResult, RecursiveDirectoryCreator, mkdirp
from .errors import (
    CreationCause,
    DirectoryCreationError,
    MkdirpPipelineError,
    ResolverError,
    StageAbortedError,
)
from .streaming import (
    SKIP,
    DirectoryStage,
    Target,
    acallback_resolver,
    callback_resolver,
    field_resolver,
    mkdirp_stream,
    mkdirp_stream_obj,
    static_resolver,
)

__all__ = [
    "__version__",
    "CreationCause",
    "CreationResult",
    "DirectoryCreationError",
    "DirectoryStage",
    "MkdirpPipelineError",
    "RecursiveDirectoryCreator",
    "ResolverError",
    "SKIP",
    "StageAbortedError",
    "Target",
    "acallback_resolver",
    "callback_resolver",
    "field_resolver",
    "mkdirp",
    "mkdirp_stream",
    "mkdirp_stream_obj",
    "static_resolver",
]

try:
    __version__ = version("mkdirp-pipeline")
except PackageNotFoundError:  # pragma: no cover - distribution not installed
    __version__ = "0.0.0"
