"""Windows backend: console control events routed to async listeners."""

from __future__ import annotations

from anysignal.windows.console_api import ConsoleApi, Kernel32ConsoleApi
from anysignal.windows.listener import WindowsListener
from anysignal.windows.router import ConsoleEventRouter, WakerEntry, get_console_router


__all__ = [
    "ConsoleApi",
    "ConsoleEventRouter",
    "Kernel32ConsoleApi",
    "WakerEntry",
    "WindowsListener",
    "get_console_router",
]
