"""Exception types raised by anysignal."""

from __future__ import annotations


class AsyncSignalError(Exception):
    """Base class for all anysignal errors."""


class InvalidSignal(AsyncSignalError, ValueError):
    """Requested signal number or console event is not supported here."""


class RegistrationFailed(AsyncSignalError, OSError):
    """Installing or removing an OS-level hook failed."""


class ChannelIoError(AsyncSignalError, OSError):
    """The shared notification channel failed.

    This is a process-level condition: every listener surfaces it once and then
    reports end-of-stream.
    """


class AckTimeout(AsyncSignalError, TimeoutError):
    """A console event was not acknowledged by every listener in time.

    Only used internally by the console event router; listeners never see it.
    """


class RegistryCorrupted(AsyncSignalError, RuntimeError):
    """Registry bookkeeping broke an invariant (e.g. refcount underflow)."""
