"""POSIX backend: signal hooks, counter table and self-pipe wake-ups."""

from __future__ import annotations

from anysignal.unix.channel import NotificationChannel
from anysignal.unix.counters import CounterTable
from anysignal.unix.listener import UnixListener
from anysignal.unix.registry import (
    ListenerToken,
    RegistrationHandle,
    SignalRegistry,
    SignalSink,
    get_signal_registry,
)


__all__ = [
    "CounterTable",
    "ListenerToken",
    "NotificationChannel",
    "RegistrationHandle",
    "SignalRegistry",
    "SignalSink",
    "UnixListener",
    "get_signal_registry",
]
