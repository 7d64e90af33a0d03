"""Pipeline stage that ensures each item's directory exists before forwarding it."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Iterator, Union
import asyncio
import enum
import inspect
import logging
import os
import time

from mkdirp_pipeline.creation.mkdirp import CreationResult, RecursiveDirectoryCreator, default_creator
from mkdirp_pipeline.errors import MkdirpPipelineError, ResolverError, StageAbortedError
from mkdirp_pipeline.settings import PROGRESS_LOG_EVERY
from mkdirp_pipeline.streaming.resolvers import (
    SKIP,
    Resolution,
    Resolver,
    coerce_resolution,
    identity_resolver,
    parse_mode,
    static_resolver,
)

logger = logging.getLogger(__name__)

TargetSpec = Union[str, "os.PathLike[str]", Resolver, None]


class StageState(enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    CREATING = "creating"
    FORWARDING = "forwarding"
    ABORTED = "aborted"


@dataclass
class StageStats:
    """Running counters for one stage instance."""

    received: int = 0
    forwarded: int = 0
    skipped: int = 0
    created: int = 0


class DirectoryStage:
    """Single-input, single-output stage that runs ``mkdir -p`` per item.

    Items are handled strictly one at a time and forwarded unchanged, in the
    order they arrive. The first resolver or creation error aborts the
    sequence: it is raised to the consumer, the failing item is not
    forwarded and the stage refuses further work.
    """

    def __init__(
        self,
        resolver: Resolver,
        *,
        object_mode: bool,
        mode: int | None = None,
        creator: RecursiveDirectoryCreator | None = None,
    ) -> None:
        if not callable(resolver):
            raise TypeError(f"resolver must be callable, got {resolver!r}")
        self.resolver = resolver
        self.object_mode = object_mode
        self.default_mode = None if mode is None else parse_mode(mode)
        self.creator = creator or default_creator()
        self.state = StageState.IDLE
        self.stats = StageStats()
        self._active = False
        self._started_at = 0.0

    def __call__(self, items: Iterable[Any]) -> Iterator[Any]:
        return self.process(items)

    def process(self, items: Iterable[Any]) -> Iterator[Any]:
        """Yield every item of ``items`` once its directory exists."""
        self._begin()
        try:
            for index, item in enumerate(items):
                self._received(index)
                try:
                    target = self._coerce(index, self._call_sync_resolver(index, item))
                    if target is not SKIP:
                        self.state = StageState.CREATING
                        self._record(self.creator.create(target.path, target.mode))
                except Exception as exc:
                    self._abort(index, exc)
                    raise
                self.state = StageState.FORWARDING
                self.stats.forwarded += 1
                yield item
            self._finished()
        finally:
            self._end()

    async def aprocess(self, items: Union[AsyncIterable[Any], Iterable[Any]]) -> AsyncIterator[Any]:
        """Async counterpart of :meth:`process`.

        Async resolvers are awaited, and directory creation runs in a worker
        thread so other tasks keep running while the OS call is in flight.
        """
        self._begin()
        try:
            index = 0
            async for item in _aiterate(items):
                self._received(index)
                try:
                    value = self._call_resolver(index, item)
                    if inspect.isawaitable(value):
                        value = await _await_resolver(index, value)
                    target = self._coerce(index, value)
                    if target is not SKIP:
                        self.state = StageState.CREATING
                        result = await asyncio.to_thread(self.creator.create, target.path, target.mode)
                        self._record(result)
                except Exception as exc:
                    self._abort(index, exc)
                    raise
                self.state = StageState.FORWARDING
                self.stats.forwarded += 1
                yield item
                index += 1
            self._finished()
        finally:
            self._end()

    def _begin(self) -> None:
        if self.state is StageState.ABORTED:
            raise StageAbortedError("Stage aborted on a previous error and cannot process more items")
        if self._active:
            raise RuntimeError("Stage is already processing a sequence")
        self._active = True
        self._started_at = time.time()

    def _end(self) -> None:
        self._active = False
        if self.state is not StageState.ABORTED:
            self.state = StageState.IDLE

    def _received(self, index: int) -> None:
        self.state = StageState.RESOLVING
        self.stats.received += 1
        if index and index % PROGRESS_LOG_EVERY == 0:
            logger.info(
                f"Progress: {index:,} items, {self.stats.created:,} directories created, "
                f"{self.stats.skipped:,} skipped"
            )

    def _call_resolver(self, index: int, item: Any) -> Any:
        try:
            return self.resolver(item)
        except ResolverError as exc:
            if exc.item_index is None:
                exc.item_index = index
            raise
        except Exception as exc:
            raise ResolverError(f"Resolver failed for item {index}: {exc}", item_index=index) from exc

    def _call_sync_resolver(self, index: int, item: Any) -> Any:
        value = self._call_resolver(index, item)
        if inspect.isawaitable(value):
            if inspect.iscoroutine(value):
                value.close()
            raise ResolverError(f"Resolver for item {index} is async; use aprocess()", item_index=index)
        return value

    def _coerce(self, index: int, value: Any) -> Resolution:
        try:
            resolution = coerce_resolution(value, self.default_mode)
        except ResolverError as exc:
            exc.item_index = index
            raise
        if resolution is SKIP:
            self.stats.skipped += 1
            logger.debug(f"Item {index}: no directory, forwarding unchanged")
        return resolution

    @property
    def kind(self) -> str:
        return "object-mode" if self.object_mode else "value-mode"

    def _abort(self, index: int, exc: Exception) -> None:
        self.state = StageState.ABORTED
        logger.error(f"Aborting {self.kind} sequence at item {index}: {exc}")

    def _record(self, result: CreationResult) -> None:
        self.stats.created += len(result.created)
        if result.created:
            logger.debug(f"Ensured {result.path} (created {len(result.created)})")

    def _finished(self) -> None:
        elapsed = time.time() - self._started_at
        logger.info(
            f"Directory stage ({self.kind}) finished in {elapsed:.2f}s: {self.stats.forwarded:,} items forwarded, "
            f"{self.stats.created:,} directories created, {self.stats.skipped:,} skipped"
        )


async def _aiterate(items: Union[AsyncIterable[Any], Iterable[Any]]) -> AsyncIterator[Any]:
    if hasattr(items, "__aiter__"):
        async for item in items:
            yield item
    else:
        for item in items:
            yield item


async def _await_resolver(index: int, awaitable: Any) -> Any:
    try:
        return await awaitable
    except ResolverError as exc:
        if exc.item_index is None:
            exc.item_index = index
        raise
    except MkdirpPipelineError:
        raise
    except Exception as exc:
        raise ResolverError(f"Resolver failed for item {index}: {exc}", item_index=index) from exc


def _as_resolver(target: TargetSpec) -> Resolver:
    if callable(target):
        return target
    return static_resolver(target)


def mkdirp_stream(
    target: TargetSpec = None,
    mode: int | None = None,
    *,
    creator: RecursiveDirectoryCreator | None = None,
) -> DirectoryStage:
    """Build a value-mode stage.

    ``target`` is a fixed directory, a resolver, or ``None`` to use each item
    as its own directory path.
    """
    resolver = identity_resolver if target is None else _as_resolver(target)
    return DirectoryStage(resolver, object_mode=False, mode=mode, creator=creator)


def mkdirp_stream_obj(
    target: TargetSpec,
    mode: int | None = None,
    *,
    creator: RecursiveDirectoryCreator | None = None,
) -> DirectoryStage:
    """Build an object-mode stage for structured records."""
    if target is None:
        raise TypeError("Object-mode stages need a fixed directory or a resolver")
    return DirectoryStage(_as_resolver(target), object_mode=True, mode=mode, creator=creator)
