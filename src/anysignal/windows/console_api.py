"""Binding to the Win32 console control handler API."""

from __future__ import annotations

import ctypes
from typing import TYPE_CHECKING, Any, Protocol


if TYPE_CHECKING:
    from collections.abc import Callable


class ConsoleApi(Protocol):
    """The one OS call the console router needs."""

    def set_handler(self, callback: Callable[[int], bool], add: bool) -> bool:
        """Add or remove ``callback`` as a console control handler."""
        ...

    def last_error(self) -> OSError:
        """Describe why the last ``set_handler`` call failed."""
        ...


class Kernel32ConsoleApi:
    """``SetConsoleCtrlHandler`` through ctypes.

    The C function pointer wrapping each callback is kept alive here for as
    long as the callback stays installed.
    """

    def __init__(self) -> None:
        from ctypes import wintypes

        self._routine_type = ctypes.WINFUNCTYPE(wintypes.BOOL, wintypes.DWORD)
        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        self._set_console_ctrl_handler = kernel32.SetConsoleCtrlHandler
        self._set_console_ctrl_handler.argtypes = (self._routine_type, wintypes.BOOL)
        self._set_console_ctrl_handler.restype = wintypes.BOOL
        self._routines: dict[Callable[[int], bool], Any] = {}

    def set_handler(self, callback: Callable[[int], bool], add: bool) -> bool:
        if add:
            routine = self._routine_type(lambda code: bool(callback(code)))
            if not self._set_console_ctrl_handler(routine, True):
                return False
            self._routines[callback] = routine
            return True
        routine = self._routines.get(callback)
        if routine is None:
            return False
        if not self._set_console_ctrl_handler(routine, False):
            return False
        del self._routines[callback]
        return True

    def last_error(self) -> OSError:
        return ctypes.WinError(ctypes.get_last_error())
