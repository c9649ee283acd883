"""Event kinds a listener can subscribe to."""

from __future__ import annotations

import enum
import signal
from typing import TYPE_CHECKING

from anysignal.exceptions import InvalidSignal


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable


class ConsoleEvent(enum.IntEnum):
    """Windows console control events, valued by their ``CTRL_*`` codes."""

    CTRL_C = 0
    CTRL_BREAK = 1
    CLOSE = 2
    LOGOFF = 5
    SHUTDOWN = 6

    @classmethod
    def from_code(cls, code: int) -> ConsoleEvent | None:
        """Map a raw control code to an event, or None if it is unknown."""
        try:
            return cls(code)
        except ValueError:
            return None

    @property
    def suppressible(self) -> bool:
        """Whether handling the event prevents the default termination."""
        return self in (ConsoleEvent.CTRL_C, ConsoleEvent.CTRL_BREAK)


type SignalKind = signal.Signals | ConsoleEvent

_SIGNAL_NAMES = (
    "SIGHUP",
    "SIGINT",
    "SIGQUIT",
    "SIGILL",
    "SIGTRAP",
    "SIGABRT",
    "SIGBUS",
    "SIGFPE",
    "SIGUSR1",
    "SIGSEGV",
    "SIGUSR2",
    "SIGPIPE",
    "SIGALRM",
    "SIGTERM",
    "SIGCHLD",
    "SIGCONT",
    "SIGTSTP",
    "SIGTTIN",
    "SIGTTOU",
    "SIGURG",
    "SIGXCPU",
    "SIGXFSZ",
    "SIGVTALRM",
    "SIGPROF",
    "SIGWINCH",
    "SIGIO",
    "SIGSYS",
)

SUPPORTED_SIGNALS: frozenset[signal.Signals] = frozenset(
    getattr(signal.Signals, name)
    for name in _SIGNAL_NAMES
    if hasattr(signal.Signals, name)
)
"""Catchable POSIX signals defined on this platform."""


def to_signal(value: object) -> signal.Signals:
    """Validate and normalize a POSIX signal number.

    Args:
        value: An ``int`` or ``signal.Signals`` member.

    Raises:
        InvalidSignal: If the value is not a supported, catchable signal.
    """
    if isinstance(value, (ConsoleEvent, bool)):
        msg = f"{value!r} is not a POSIX signal"
        raise InvalidSignal(msg)
    if not isinstance(value, int):
        msg = f"Expected a signal number, got {type(value).__name__}"
        raise InvalidSignal(msg)
    try:
        signum = signal.Signals(value)
    except ValueError:
        msg = f"Unknown signal number {value}"
        raise InvalidSignal(msg) from None
    if signum not in SUPPORTED_SIGNALS:
        msg = f"{signum.name} cannot be listened for"
        raise InvalidSignal(msg)
    return signum


def to_console_event(value: object) -> ConsoleEvent:
    """Validate a console event.

    Raises:
        InvalidSignal: If the value is not a ``ConsoleEvent``.
    """
    if not isinstance(value, ConsoleEvent):
        msg = f"{value!r} is not a console event"
        raise InvalidSignal(msg)
    return value


def normalize[T](kinds: Iterable[object], convert: Callable[[object], T]) -> list[T]:
    """Convert every kind, dropping duplicates while keeping first-seen order."""
    seen: dict[T, None] = {}
    for kind in kinds:
        seen.setdefault(convert(kind), None)
    return list(seen)


def raise_default(signum: int) -> None:
    """Run the default disposition of a signal once.

    The current handler is swapped for ``SIG_DFL`` while the signal is raised
    and put back afterwards. Whatever the default does (terminate, stop,
    ignore) happens to this process.
    """
    signum = to_signal(signum)
    previous = signal.signal(signum, signal.SIG_DFL)
    try:
        signal.raise_signal(signum)
    finally:
        signal.signal(signum, previous)
