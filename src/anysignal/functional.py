"""Platform-selected entry points for creating listeners."""

from __future__ import annotations

from contextlib import contextmanager
import sys
from typing import TYPE_CHECKING


if sys.platform == "win32":
    from anysignal.windows.listener import WindowsListener as PlatformListener
else:
    from anysignal.unix.listener import UnixListener as PlatformListener

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


def create_listener(kinds: Iterable[object]) -> PlatformListener:
    """Start listening for signals (POSIX) or console events (Windows).

    Args:
        kinds: ``signal.SIG*`` numbers on POSIX systems, ``ConsoleEvent``
            members on Windows.

    Returns:
        A listener that already holds its OS hooks; dispose it when done.

    Raises:
        InvalidSignal: If a kind is not supported on this platform.
        RegistrationFailed: If the OS refused to install a hook.
    """
    return PlatformListener(kinds)


@contextmanager
def open_listener(*kinds: object) -> Iterator[PlatformListener]:
    """Context manager form of :func:`create_listener`.

    Entering and leaving never block, so a plain ``with`` works; the waiting
    happens in :meth:`Listener.next`, which needs a running event loop.

    Example:
        ```python
        async def main() -> None:
            with open_listener(signal.SIGINT, signal.SIGTERM) as listener:
                signum = await listener.next()

        anyio.run(main)
        ```
    """
    listener = create_listener(kinds)
    try:
        yield listener
    finally:
        listener.dispose()
