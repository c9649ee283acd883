"""AnySignal: OS signals and console control events as async event streams."""

from __future__ import annotations

__version__ = "0.1.0"

from anysignal.config import SignalConfig, get_config, set_config
from anysignal.exceptions import (
    AckTimeout,
    AsyncSignalError,
    ChannelIoError,
    InvalidSignal,
    RegistrationFailed,
    RegistryCorrupted,
)
from anysignal.functional import PlatformListener, create_listener, open_listener
from anysignal.kinds import SUPPORTED_SIGNALS, ConsoleEvent, SignalKind, raise_default
from anysignal.listener import Listener, ListenerState

__all__ = [
    # Listeners
    "Listener",
    "ListenerState",
    "PlatformListener",
    "create_listener",
    "open_listener",
    # Kinds
    "SUPPORTED_SIGNALS",
    "ConsoleEvent",
    "SignalKind",
    "raise_default",
    # Configuration
    "SignalConfig",
    "get_config",
    "set_config",
    # Errors
    "AckTimeout",
    "AsyncSignalError",
    "ChannelIoError",
    "InvalidSignal",
    "RegistrationFailed",
    "RegistryCorrupted",
]
