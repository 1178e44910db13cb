"""Request contexts and a server-stream wrapper whose context can be replaced."""

from __future__ import annotations

from typing import Any

_NO_KEY = object()


class Context:
    """An immutable chain of key/value pairs carried alongside a call."""

    __slots__ = ("_parent", "_key", "_value")

    def __init__(self, parent: Context | None = None, key: Any = _NO_KEY, value: Any = None) -> None:
        self._parent = parent
        self._key = key
        self._value = value

    def value(self, key: Any) -> Any:
        """Return the value stored under ``key`` here or in any parent, else None."""
        ctx: Context | None = self
        while ctx is not None:
            if ctx._key is not _NO_KEY and ctx._key == key:
                return ctx._value
            ctx = ctx._parent
        return None

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a child context that also carries ``key`` -> ``value``."""
        return Context(self, key, value)

    def __repr__(self) -> str:
        depth = 0
        ctx = self._parent
        while ctx is not None:
            depth += 1
            ctx = ctx._parent
        return f"Context(depth={depth})"


_BACKGROUND = Context()


def background() -> Context:
    """Return the empty root context."""
    return _BACKGROUND


class WrappedServerStream:
    """A server stream whose ``context`` attribute can be reassigned.

    Every other attribute is looked up on the wrapped stream.
    """

    def __init__(self, stream: Any, context: Context | None = None) -> None:
        self.stream = stream
        self.context = stream.context if context is None else context

    def __getattr__(self, name: str) -> Any:
        if name == "stream":
            raise AttributeError(name)
        return getattr(self.stream, name)


def wrap_server_stream(stream: Any) -> WrappedServerStream:
    """Wrap ``stream`` so its context can be replaced; an existing wrapper is returned as is."""
    if isinstance(stream, WrappedServerStream):
        return stream
    return WrappedServerStream(stream)