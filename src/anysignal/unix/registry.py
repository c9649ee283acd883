"""Process-wide, reference-counted registry of POSIX signal hooks.

One hook per signal number is installed with :func:`signal.signal` the first
time any listener asks for that number, and the previous disposition is put
back when the last listener lets go.

Occurrences are counted from the notification channel, which is registered
with :func:`signal.set_wakeup_fd` while any hook is installed. CPython's C-level
handler writes one byte per delivery there, so bursts that the interpreter
folds into a single Python-level call are still counted one by one.

Handler context contract:
    The installed hook (:meth:`RegistrationHandle.__call__`) only calls the
    chaining target recorded at install time. It never takes the registry
    lock, never logs and never raises on its own account. Everything else in
    this module runs outside handler context and holds ``SignalRegistry._lock``
    while it mutates bookkeeping.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import TYPE_CHECKING, Any, Protocol

import anyio

from anysignal.config import get_config
from anysignal.exceptions import ChannelIoError, RegistrationFailed, RegistryCorrupted
from anysignal.kinds import to_signal
from anysignal.unix.channel import NotificationChannel
from anysignal.unix.counters import CounterTable


if TYPE_CHECKING:
    from collections.abc import Callable
    from types import FrameType

    from anysignal.config import SignalConfig


logger = logging.getLogger(__name__)


class SignalSink(Protocol):
    """Receives drained occurrences for the signals it registered."""

    def deliver(self, signum: signal.Signals, count: int) -> None: ...


class RegistrationHandle:
    """The installed hook for one signal number.

    Instances are the callables handed to :func:`signal.signal`. A handle lives
    from installation until its reference count drops to zero; a later
    registration for the same number creates a new handle.
    """

    __slots__ = ("_registry", "active", "chain", "previous", "signum", "tokens")

    def __init__(self, registry: SignalRegistry, signum: signal.Signals) -> None:
        self._registry = registry
        self.signum = signum
        self.previous: Any = None
        self.chain: Callable[[int, FrameType | None], Any] | None = None
        self.tokens: set[ListenerToken] = set()
        self.active = True

    @property
    def refcount(self) -> int:
        return len(self.tokens)

    def __call__(self, signum: int, frame: FrameType | None) -> None:
        # Counting already happened through the wakeup fd.
        if self.chain is not None:
            self.chain(signum, frame)

    def __repr__(self) -> str:
        state = "active" if self.active else "removed"
        return f"<RegistrationHandle {self.signum.name} refcount={self.refcount} {state}>"


class ListenerToken:
    """One listener's claim on a :class:`RegistrationHandle`."""

    __slots__ = ("handle", "released", "sink")

    def __init__(self, handle: RegistrationHandle, sink: SignalSink | None) -> None:
        self.handle = handle
        self.sink = sink
        self.released = False

    @property
    def signum(self) -> signal.Signals:
        return self.handle.signum

    def release(self) -> None:
        """Give the claim back. Releasing twice is a no-op."""
        self.handle._registry.release(self)


class SignalRegistry:
    """Reference-counted table of installed signal hooks.

    The notification channel is opened with the first registration and closed
    after the last release, so the registry holds no OS resources while idle.
    """

    def __init__(self, config: SignalConfig | None = None) -> None:
        self._config = config
        self._lock = threading.Lock()
        self._handles: dict[signal.Signals, RegistrationHandle] = {}
        self._counters = CounterTable()
        self._channel: NotificationChannel | None = None
        self._failure: ChannelIoError | None = None
        self._reading = False
        self._drained: anyio.Event | None = None

    @property
    def config(self) -> SignalConfig:
        return self._config or get_config()

    @property
    def counters(self) -> CounterTable:
        return self._counters

    @property
    def channel(self) -> NotificationChannel | None:
        """The shared notification channel, or None while no hook is installed."""
        return self._channel

    @property
    def failure(self) -> ChannelIoError | None:
        """The process-wide channel failure, if one happened."""
        return self._failure

    def handle(self, signum: int) -> RegistrationHandle | None:
        """Return the live handle for a signal number, if one is installed."""
        return self._handles.get(signum)  # type: ignore[call-overload]

    def refcount(self, signum: int) -> int:
        handle = self.handle(signum)
        return handle.refcount if handle is not None else 0

    @property
    def signals(self) -> frozenset[signal.Signals]:
        """Signal numbers that currently have a hook installed."""
        return frozenset(self._handles)

    def fileno(self) -> int:
        """File descriptor of the channel's read end (-1 while idle)."""
        channel = self._channel
        return channel.fileno() if channel is not None else -1

    def register(self, signum: int, sink: SignalSink | None = None) -> ListenerToken:
        """Claim a hook for ``signum``, installing it if nobody holds one yet.

        Raises:
            InvalidSignal: If ``signum`` cannot be listened for.
            RegistrationFailed: If the OS refused to install the hook.
        """
        signum = to_signal(signum)
        with self._lock:
            if self._channel is None:
                self._channel = self._open_channel()
            handle = self._handles.get(signum)
            if handle is None:
                handle = self._install(signum)
            token = ListenerToken(handle, sink)
            handle.tokens.add(token)
            return token

    def release(self, token: ListenerToken) -> None:
        """Drop a claim; the last one removes the hook and restores the old disposition.

        Raises:
            RegistrationFailed: If restoring the previous disposition failed. The
                bookkeeping is dropped regardless.
            RegistryCorrupted: If the token does not belong to a live handle.
        """
        with self._lock:
            if token.released:
                return
            handle = token.handle
            if not handle.active or token not in handle.tokens:
                msg = f"Token for {handle.signum.name} is not held by a live handle"
                raise RegistryCorrupted(msg)
            token.released = True
            handle.tokens.discard(token)
            if handle.tokens:
                return
            if self._handles.pop(handle.signum, None) is not handle:
                msg = f"Handle for {handle.signum.name} missing from registry"
                raise RegistryCorrupted(msg)
            handle.active = False
            try:
                self._uninstall(handle)
            finally:
                if not self._handles:
                    self._teardown()

    def _open_channel(self) -> NotificationChannel:
        try:
            channel = NotificationChannel()
        except OSError as exc:
            msg = f"Could not open notification channel: {exc}"
            raise RegistrationFailed(msg) from exc
        try:
            channel.attach()
        except ValueError as exc:
            channel.close()
            logger.exception("Failed to register the signal wakeup fd")
            msg = f"Could not register notification channel: {exc}"
            raise RegistrationFailed(msg) from exc
        return channel

    def _install(self, signum: signal.Signals) -> RegistrationHandle:
        handle = RegistrationHandle(self, signum)
        # Occurrences left over from an earlier handle belong to nobody.
        self._counters.take(signum)
        try:
            previous = signal.signal(signum, handle)
        except (OSError, ValueError, RuntimeError) as exc:
            if not self._handles:
                self._teardown()
            logger.exception("Failed to install hook for %s", signum.name)
            msg = f"Could not install handler for {signum.name}: {exc}"
            raise RegistrationFailed(msg) from exc
        while isinstance(previous, RegistrationHandle):
            # Left behind by a failed restore; what it replaced is the real disposition.
            previous = previous.previous
        handle.previous = previous
        if (
            self.config.chain_previous
            and callable(previous)
            and previous is not signal.default_int_handler
        ):
            handle.chain = previous
        self._handles[signum] = handle
        logger.debug("Installed hook for %s (previous: %r)", signum.name, previous)
        return handle

    def _uninstall(self, handle: RegistrationHandle) -> None:
        previous = handle.previous if handle.previous is not None else signal.SIG_DFL
        try:
            signal.signal(handle.signum, previous)
        except (OSError, ValueError, RuntimeError) as exc:
            logger.exception("Failed to restore disposition of %s", handle.signum.name)
            msg = f"Could not restore handler for {handle.signum.name}: {exc}"
            raise RegistrationFailed(msg) from exc
        logger.debug("Removed hook for %s", handle.signum.name)

    def _teardown(self) -> None:
        channel = self._channel
        if channel is None:
            return
        try:
            channel.detach()
        except ValueError as exc:
            # Retried by the next teardown, which may run on the main thread.
            logger.warning("Kept notification channel registered: %s", exc)
            return
        self._channel = None
        self._failure = None
        if self._reading:
            # The reader wakes on EOF and closes the read end itself.
            channel.shutdown_writer()
        else:
            channel.close()

    def _fail(self, channel: NotificationChannel, exc: ChannelIoError) -> None:
        if channel is not self._channel or self._failure is not None:
            return
        logger.error("Signal notification channel failed: %s", exc)
        self._failure = exc

    def dispatch(self, channel: NotificationChannel | None = None) -> None:
        """Empty the channel, then broadcast every pending count to its listeners.

        Counts for a signal number with no remaining listener are discarded.
        """
        channel = channel or self._channel
        if channel is None or channel is not self._channel:
            return
        try:
            received = channel.drain(self.config.drain_chunk_size)
        except ChannelIoError as exc:
            with self._lock:
                self._fail(channel, exc)
            return
        with self._lock:
            for number, count in received.items():
                self._counters.increment(number, count)
            for number, count in self._counters.drain():
                handle = self._handles.get(number)  # type: ignore[call-overload]
                if handle is None:
                    continue
                for token in handle.tokens:
                    if token.sink is not None:
                        token.sink.deliver(handle.signum, count)

    async def wait(self) -> None:
        """Suspend until the channel has been drained once or has failed.

        Exactly one task awaits the read end at a time. Every other caller parks
        on an event the reading task sets once it has dispatched. While no
        channel is open there is no reader, so a caller parks until cancelled.
        """
        if self.failure is not None:
            return
        channel = self._channel
        if self._reading or channel is None:
            if self._drained is None:
                self._drained = anyio.Event()
            await self._drained.wait()
            return
        self._reading = True
        try:
            await channel.wait_readable()
            self.dispatch(channel)
        finally:
            self._reading = False
            drained, self._drained = self._drained, None
            if drained is not None:
                drained.set()
            if channel is not self._channel:
                channel.close()


_registry: SignalRegistry | None = None
_registry_lock = threading.Lock()


def get_signal_registry() -> SignalRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = SignalRegistry()
        return _registry
