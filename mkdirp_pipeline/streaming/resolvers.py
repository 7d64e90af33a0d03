"""Resolvers that map pipeline items onto directory targets."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Union
import asyncio
import os
import threading

from mkdirp_pipeline.errors import ResolverError
from mkdirp_pipeline.settings import MODE_MASK


@dataclass(frozen=True)
class Target:
    """A directory to ensure, with optional permission bits for the leaf."""

    path: Union[str, "os.PathLike[str]"]
    mode: int | None = None


class _Skip:
    """Marker returned by a resolver when the item needs no directory."""

    _instance: "_Skip | None" = None

    def __new__(cls) -> "_Skip":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "SKIP"


SKIP = _Skip()

Resolution = Union[Target, _Skip]
Resolver = Callable[[Any], Any]
Done = Callable[..., None]


def parse_mode(value: Any) -> int:
    """Convert ``value`` (int or octal string such as ``"755"``) to permission bits."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid directory mode: {value!r}")
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        try:
            mode = int(text, 8)
        except ValueError:
            raise ValueError(f"Invalid octal directory mode: {value!r}") from None
    else:
        raise ValueError(f"Invalid directory mode: {value!r}")

    if not 0 <= mode <= MODE_MASK:
        raise ValueError(f"Directory mode {value!r} is outside 0..0o7777")
    return mode


def coerce_resolution(value: Any, default_mode: int | None = None) -> Resolution:
    """Normalise whatever a resolver returned into a :class:`Target` or ``SKIP``.

    Falsy values skip. ``(path, mode)`` tuples and bare paths become targets.
    A missing mode falls back to ``default_mode``.
    """
    if value is SKIP or not value:
        return SKIP

    if isinstance(value, Target):
        path, mode = value.path, value.mode
    elif isinstance(value, tuple):
        if len(value) != 2:
            raise ResolverError(f"Resolver tuples must be (path, mode), got {len(value)} elements")
        path, mode = value
    else:
        path, mode = value, None

    if not path:
        return SKIP
    if not isinstance(path, (str, os.PathLike)):
        raise ResolverError(f"Resolver returned a non path-like target: {path!r}")

    if mode is None:
        mode = default_mode
    if mode is not None:
        try:
            mode = parse_mode(mode)
        except ValueError as exc:
            raise ResolverError(str(exc)) from exc
    return Target(path, mode)


def identity_resolver(item: Any) -> Any:
    """Treat the item itself as the directory path."""
    return item


def static_resolver(path: Union[str, "os.PathLike[str]"], mode: int | None = None) -> Resolver:
    """Resolver that ignores the item and always returns the same target."""
    if path and not isinstance(path, (str, os.PathLike)):
        raise TypeError(f"Static target must be path-like, got {path!r}")
    if mode is not None:
        mode = parse_mode(mode)
    target = coerce_resolution((path, mode))

    def resolve(item: Any) -> Resolution:
        return target

    return resolve


def field_resolver(field: Hashable, mode_field: Hashable | None = None) -> Resolver:
    """Resolver for records: read the path (and optional mode) by key.

    Works for anything supporting ``record[key]`` and ``.get``: dicts and
    pandas rows alike. A missing or empty path field skips the record.
    """

    def resolve(record: Any) -> Resolution:
        try:
            path = record[field]
        except KeyError:
            raise ResolverError(f"Record has no {field!r} field") from None
        mode = None
        if mode_field is not None:
            mode = record.get(mode_field)
        return coerce_resolution((path, mode))

    return resolve


def _from_done_args(error: BaseException | None, path: Any, mode: Any) -> Resolution:
    if error is not None:
        raise ResolverError(f"Resolver reported an error: {error}") from error
    return coerce_resolution((path, mode))


def callback_resolver(fn: Callable[[Any, Done], None]) -> Resolver:
    """Adapt a ``fn(item, done)`` style resolver.

    ``done(error=None, path=None, mode=None)`` must be called exactly once,
    before ``fn`` returns.
    """

    def resolve(item: Any) -> Resolution:
        calls: list[tuple[Any, Any, Any]] = []

        def done(error: BaseException | None = None, path: Any = None, mode: Any = None) -> None:
            if calls:
                raise ResolverError("Resolver callback invoked more than once")
            calls.append((error, path, mode))

        fn(item, done)
        if not calls:
            raise ResolverError("Resolver returned without invoking its callback")
        return _from_done_args(*calls[0])

    return resolve


def acallback_resolver(fn: Callable[[Any, Done], None]) -> Callable[[Any], Awaitable[Resolution]]:
    """Async variant of :func:`callback_resolver`.

    ``done`` may fire after ``fn`` returns and from any thread; the returned
    coroutine waits for it. A second invocation raises :class:`ResolverError`
    in the caller of ``done``. A resolver that never calls ``done`` leaves the
    coroutine pending forever; wrap it in ``asyncio.wait_for`` if that matters.
    """

    async def resolve(item: Any) -> Resolution:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[tuple[Any, Any, Any]] = loop.create_future()
        lock = threading.Lock()
        fired = False

        def settle(args: tuple[Any, Any, Any]) -> None:
            if not future.done():
                future.set_result(args)

        def done(error: BaseException | None = None, path: Any = None, mode: Any = None) -> None:
            nonlocal fired
            with lock:
                if fired:
                    raise ResolverError("Resolver callback invoked more than once")
                fired = True
            loop.call_soon_threadsafe(settle, (error, path, mode))

        fn(item, done)
        error, path, mode = await future
        return _from_done_args(error, path, mode)

    return resolve
