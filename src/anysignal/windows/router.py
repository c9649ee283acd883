"""Fan-out of Windows console control events to async listeners.

Windows calls a console control handler on a thread it spawns for the purpose,
one event at a time. The router installs a single such handler for the whole
process and forwards every event to the waker entries that asked for it. The
handler thread then waits, for at most ``SignalConfig.ack_timeout`` seconds,
until each of those listeners has taken the event. The router lock is never
held during that wait.
"""

from __future__ import annotations

from collections import deque
import itertools
import logging
import sys
import threading
from typing import TYPE_CHECKING

import anyio
from anyio import from_thread
from anyio.lowlevel import current_token

from anysignal.config import get_config
from anysignal.exceptions import AckTimeout, RegistrationFailed, RegistryCorrupted
from anysignal.kinds import ConsoleEvent


if TYPE_CHECKING:
    from collections.abc import Iterable

    from anysignal.config import SignalConfig
    from anysignal.windows.console_api import ConsoleApi


logger = logging.getLogger(__name__)


class _Acknowledgement:
    """Countdown latch for one delivered event."""

    __slots__ = ("_cond", "_remaining", "event")

    def __init__(self, event: ConsoleEvent, count: int) -> None:
        self.event = event
        self._cond = threading.Condition()
        self._remaining = count

    @property
    def remaining(self) -> int:
        return self._remaining

    def acknowledge(self) -> None:
        with self._cond:
            if self._remaining <= 0:
                msg = f"{self.event.name} acknowledged more often than delivered"
                raise RegistryCorrupted(msg)
            self._remaining -= 1
            if not self._remaining:
                self._cond.notify_all()

    def wait(self, timeout: float) -> None:
        with self._cond:
            if not self._cond.wait_for(lambda: self._remaining <= 0, timeout):
                msg = (
                    f"{self.event.name} still unacknowledged by "
                    f"{self._remaining} listener(s) after {timeout:.2f}s"
                )
                raise AckTimeout(msg)


class _Waiter:
    """A task suspended in :meth:`ConsoleEventRouter.wait`."""

    __slots__ = ("event", "thread", "token")

    def __init__(self) -> None:
        self.event = anyio.Event()
        self.token = current_token()
        self.thread = threading.get_ident()

    def wake(self) -> None:
        """Set the event, hopping onto the waiter's event loop when called from elsewhere."""
        if threading.get_ident() == self.thread:
            self.event.set()
            return
        try:
            from_thread.run_sync(self.event.set, token=self.token)
        except anyio.RunFinishedError:
            # The loop is gone and took the waiting task with it.
            logger.debug("Console event waiter outlived its event loop")


class WakerEntry:
    """One listener's slot in the router."""

    __slots__ = ("mask", "pending", "slot", "waiters")

    def __init__(self, slot: int, mask: frozenset[ConsoleEvent]) -> None:
        self.slot = slot
        self.mask = mask
        self.pending: deque[_Acknowledgement] = deque()
        self.waiters: list[_Waiter] = []

    def __repr__(self) -> str:
        events = ", ".join(event.name for event in sorted(self.mask))
        return f"<WakerEntry #{self.slot} {{{events}}} pending={len(self.pending)}>"


class ConsoleEventRouter:
    """Owns the process-wide console control handler.

    The handler is installed with the first :meth:`register` and removed when
    the last entry is released.
    """

    def __init__(self, api: ConsoleApi | None = None, config: SignalConfig | None = None) -> None:
        self._api = api
        self._config = config
        self._lock = threading.Lock()
        self._entries: dict[int, WakerEntry] = {}
        self._slots = itertools.count()
        self._installed = False
        self.ack_timeouts = 0
        """Events whose acknowledgment wait ran out."""

    @property
    def config(self) -> SignalConfig:
        return self._config or get_config()

    @property
    def installed(self) -> bool:
        """Whether the OS handler is currently installed."""
        return self._installed

    @property
    def entries(self) -> list[WakerEntry]:
        with self._lock:
            return list(self._entries.values())

    def _get_api(self) -> ConsoleApi:
        if self._api is None:
            from anysignal.windows.console_api import Kernel32ConsoleApi

            self._api = Kernel32ConsoleApi()
        return self._api

    def register(self, events: Iterable[ConsoleEvent]) -> WakerEntry:
        """Add an entry for ``events``, installing the OS handler if needed.

        Raises:
            RegistrationFailed: If the OS refused the handler.
        """
        with self._lock:
            if not self._installed:
                api = self._get_api()
                if not api.set_handler(self.handle, True):
                    error = api.last_error()
                    logger.error("Failed to install console control handler: %s", error)
                    msg = f"Could not install console control handler: {error}"
                    raise RegistrationFailed(msg) from error
                self._installed = True
                logger.debug("Installed console control handler")
            entry = WakerEntry(next(self._slots), frozenset(events))
            self._entries[entry.slot] = entry
            return entry

    def update(self, entry: WakerEntry, events: Iterable[ConsoleEvent]) -> None:
        """Change which events an entry receives, dropping queued ones it no longer wants."""
        with self._lock:
            entry.mask = frozenset(events)
            kept = [ack for ack in entry.pending if ack.event in entry.mask]
            dropped = [ack for ack in entry.pending if ack.event not in entry.mask]
            entry.pending = deque(kept)
        for ack in dropped:
            ack.acknowledge()

    def release(self, entry: WakerEntry) -> None:
        """Remove an entry; the last one uninstalls the OS handler.

        Events still queued for the entry count as acknowledged, so the handler
        thread stops waiting for this listener.

        Raises:
            RegistrationFailed: If the OS refused to remove the handler. The
                entry is gone regardless.
        """
        with self._lock:
            if self._entries.pop(entry.slot, None) is None:
                return
            dropped, entry.pending = list(entry.pending), deque()
            waiters, entry.waiters = entry.waiters, []
            error: OSError | None = None
            if not self._entries and self._installed:
                api = self._get_api()
                self._installed = False
                if api.set_handler(self.handle, False):
                    logger.debug("Removed console control handler")
                else:
                    error = api.last_error()
                    logger.error("Failed to remove console control handler: %s", error)
        for ack in dropped:
            ack.acknowledge()
        for waiter in waiters:
            waiter.wake()
        if error is not None:
            msg = f"Could not remove console control handler: {error}"
            raise RegistrationFailed(msg) from error

    def handle(self, code: int) -> bool:
        """Console control handler body, run on the OS-owned handler thread.

        Returns:
            True if at least one listener took the event, so the OS skips the
            next handler (and, for Ctrl-C / Ctrl-Break, the default action).
        """
        event = ConsoleEvent.from_code(code)
        if event is None:
            return False
        with self._lock:
            targets = [entry for entry in self._entries.values() if event in entry.mask]
            if not targets:
                return False
            ack = _Acknowledgement(event, len(targets))
            waiters: list[_Waiter] = []
            for entry in targets:
                entry.pending.append(ack)
                waiters.extend(entry.waiters)
                entry.waiters = []
        for waiter in waiters:
            waiter.wake()
        timeout = self.config.ack_timeout
        try:
            ack.wait(timeout)
        except AckTimeout as exc:
            self.ack_timeouts += 1
            logger.warning("Console event not fully acknowledged: %s", exc)
        return True

    def pop(self, entry: WakerEntry) -> ConsoleEvent | None:
        """Take and acknowledge the oldest event queued for ``entry``."""
        with self._lock:
            if not entry.pending:
                return None
            ack = entry.pending.popleft()
        ack.acknowledge()
        return ack.event

    async def wait(self, entry: WakerEntry) -> None:
        """Suspend until the handler thread queues something for ``entry``.

        Returns at once if something is already queued or the entry was
        released. No thread is tied up while waiting; the handler thread
        sets the waiter's event through its event loop.
        """
        with self._lock:
            if entry.pending or entry.slot not in self._entries:
                return
            waiter = _Waiter()
            entry.waiters.append(waiter)
        try:
            await waiter.event.wait()
        finally:
            with self._lock:
                if waiter in entry.waiters:
                    entry.waiters.remove(waiter)


_router: ConsoleEventRouter | None = None
_router_lock = threading.Lock()


def get_console_router() -> ConsoleEventRouter:
    """Return the process-wide router, creating it on first use.

    Raises:
        RegistrationFailed: Outside Windows, where there is no console API.
    """
    global _router
    with _router_lock:
        if _router is None:
            if sys.platform != "win32":
                msg = "Console control events are only available on Windows"
                raise RegistrationFailed(msg)
            _router = ConsoleEventRouter()
        return _router
