"""Listener base class shared by the POSIX and Windows backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
import enum
from typing import TYPE_CHECKING, Self

import anyio

from anysignal.kinds import normalize


if TYPE_CHECKING:
    from collections.abc import Iterable


class ListenerState(enum.Enum):
    """Lifecycle of a :class:`Listener`."""

    REGISTERED = "registered"
    """Hooks are held, nobody has asked for an event yet."""

    POLLING = "polling"
    """Waiting for the backend to report something."""

    DELIVERING = "delivering"
    """Events are buffered and being handed out."""

    CLOSED = "closed"
    """Every hook has been released."""


class Listener[K: enum.IntEnum](ABC):
    """Per-consumer handle yielding OS signals or console events as they arrive.

    Create one through :func:`anysignal.create_listener`, then either await
    :meth:`next` or iterate with ``async for``. Dispose it with :meth:`dispose`
    or by using it as a (sync or async) context manager; disposal releases the
    OS hooks this listener holds.

    Example:
        ```python
        with create_listener([signal.SIGTERM, signal.SIGHUP]) as listener:
            async for signum in listener:
                if signum == signal.SIGHUP:
                    reload_config()
                else:
                    break
        ```
    """

    def __init__(self, kinds: Iterable[object] = ()) -> None:
        self._kinds: set[K] = set()
        self._state = ListenerState.REGISTERED
        self._ended = False
        self.add(kinds)

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is ListenerState.CLOSED

    @property
    def kinds(self) -> frozenset[K]:
        """Kinds this listener currently receives."""
        return frozenset(self._kinds)

    def add(self, kinds: Iterable[object]) -> None:
        """Start receiving more kinds. Kinds already registered are skipped.

        Raises:
            InvalidSignal: If any kind is unsupported; nothing is registered then.
            RegistrationFailed: If the OS refused a hook; nothing is registered then.
            anyio.ClosedResourceError: If the listener was disposed.
        """
        if self.closed:
            raise anyio.ClosedResourceError
        new = [kind for kind in normalize(kinds, self._convert) if kind not in self._kinds]
        if new:
            self._register(new)
            self._kinds.update(new)

    def remove(self, kinds: Iterable[object]) -> None:
        """Stop receiving some kinds. Kinds not registered are skipped.

        Events of those kinds that arrived but were not yet handed out are dropped.
        """
        if self.closed:
            return
        gone = [kind for kind in normalize(kinds, self._convert) if kind in self._kinds]
        if gone:
            self._kinds.difference_update(gone)
            self._unregister(gone)

    async def next(self) -> K:
        """Wait for the next event.

        Events of one kind come out once per occurrence. When several kinds are
        pending, lower numbers come first. A listener holding no kinds has
        nothing to wait for and stays suspended until the caller cancels.

        Raises:
            ChannelIoError: Once, if the backend's notification path broke.
            anyio.EndOfStream: After such a failure has been reported.
            anyio.ClosedResourceError: If the listener was disposed.
        """
        while True:
            if self.closed:
                if self._ended:
                    raise anyio.EndOfStream
                raise anyio.ClosedResourceError
            kind = self._pop()
            if kind is not None:
                self._state = ListenerState.DELIVERING
                return kind
            failure = self._failure()
            if failure is not None:
                self._ended = True
                self.dispose()
                raise failure
            self._state = ListenerState.POLLING
            await self._wait()

    def dispose(self) -> None:
        """Release every hook held by this listener. Safe to call repeatedly."""
        if self.closed:
            return
        self._state = ListenerState.CLOSED
        kinds, self._kinds = list(self._kinds), set()
        self._unregister(kinds)

    close = dispose

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> K:
        try:
            return await self.next()
        except anyio.EndOfStream:
            raise StopAsyncIteration from None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        kinds = ", ".join(kind.name for kind in sorted(self._kinds))
        return f"<{type(self).__name__} {self._state.value} {{{kinds}}}>"

    @abstractmethod
    def _convert(self, kind: object) -> K:
        """Validate one requested kind, raising ``InvalidSignal`` if unsupported."""

    @abstractmethod
    def _register(self, kinds: list[K]) -> None:
        """Acquire backend registrations; all-or-nothing."""

    @abstractmethod
    def _unregister(self, kinds: list[K]) -> None:
        """Release backend registrations and drop anything buffered for them."""

    @abstractmethod
    def _pop(self) -> K | None:
        """Hand out one buffered event without waiting."""

    @abstractmethod
    def _failure(self) -> BaseException | None:
        """Terminal backend error, if any."""

    @abstractmethod
    async def _wait(self) -> None:
        """Suspend until the backend may have something new."""
