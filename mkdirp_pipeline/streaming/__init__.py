"""Streaming stage and resolvers."""

from .resolvers import (
    SKIP,
    Target,
    acallback_resolver,
    callback_resolver,
    field_resolver,
    identity_resolver,
    parse_mode,
    static_resolver,
)
from .stage import DirectoryStage, StageState, StageStats, mkdirp_stream, mkdirp_stream_obj

__all__ = [
    "DirectoryStage",
    "SKIP",
    "StageState",
    "StageStats",
    "Target",
    "acallback_resolver",
    "callback_resolver",
    "field_resolver",
    "identity_resolver",
    "mkdirp_stream",
    "mkdirp_stream_obj",
    "parse_mode",
    "static_resolver",
]
