"""Self-pipe used as the wake-up edge between signal handlers and the event loop."""

from __future__ import annotations

from collections import Counter
import logging
import os
import signal
import socket

import anyio

from anysignal.exceptions import ChannelIoError


logger = logging.getLogger(__name__)


class NotificationChannel:
    """A non-blocking socket pair registered as the interpreter's wakeup fd.

    Once attached, CPython's C-level signal handler writes one byte, the signal
    number, for every delivery of a signal that has a Python-level handler.
    That happens before the interpreter gets around to running the Python
    handler, so occurrences that collapse into a single Python call still show
    up as separate bytes. A full buffer drops bytes silently.
    """

    __slots__ = ("_attached", "_forward", "_reader", "_writer")

    def __init__(self) -> None:
        self._reader, self._writer = socket.socketpair()
        self._reader.setblocking(False)
        self._writer.setblocking(False)
        self._attached = False
        self._forward = -1
        """Wakeup fd that was registered before ours; its bytes are passed on."""

    def fileno(self) -> int:
        return self._reader.fileno()

    @property
    def closed(self) -> bool:
        return self._reader.fileno() == -1

    @property
    def attached(self) -> bool:
        """Whether the write end is the interpreter's wakeup fd."""
        return self._attached

    def attach(self) -> None:
        """Make the write end the wakeup fd.

        Raises:
            ValueError: Outside the main thread.
        """
        if self._attached:
            return
        self._forward = signal.set_wakeup_fd(self._writer.fileno(), warn_on_full_buffer=False)
        self._attached = True

    def detach(self) -> None:
        """Put the previous wakeup fd back.

        Raises:
            ValueError: Outside the main thread. The channel stays attached.
        """
        if not self._attached:
            return
        current = signal.set_wakeup_fd(self._forward)
        if current != self._writer.fileno():
            # Replaced after we attached; leave the newer owner in place.
            signal.set_wakeup_fd(current)
        self._attached = False
        self._forward = -1

    async def wait_readable(self) -> None:
        await anyio.wait_readable(self._reader)

    def drain(self, chunk_size: int = 512) -> Counter[int]:
        """Read every queued byte and count them per signal number.

        Raises:
            ChannelIoError: If the read fails or the write end is gone.
        """
        counts: Counter[int] = Counter()
        while True:
            try:
                data = self._reader.recv(chunk_size)
            except BlockingIOError:
                return counts
            except OSError as exc:
                msg = f"Notification channel read failed: {exc}"
                raise ChannelIoError(msg) from exc
            if not data:
                msg = "Notification channel closed unexpectedly"
                raise ChannelIoError(msg)
            counts.update(data)
            self._pass_on(data)

    def _pass_on(self, data: bytes) -> None:
        if self._forward == -1:
            return
        try:
            os.write(self._forward, data)
        except BlockingIOError:
            # Buffer full, so the previous owner already has a wake-up pending.
            pass
        except OSError as exc:
            logger.warning("Stopped passing signals on to wakeup fd %d: %s", self._forward, exc)
            self._forward = -1

    def shutdown_writer(self) -> None:
        """Stop writing, waking a task blocked on the read end with EOF.

        The write end's descriptor stays open, so a wakeup fd pointing at it
        never refers to an unrelated file.
        """
        self._writer.shutdown(socket.SHUT_WR)

    def close(self) -> None:
        self._writer.close()
        self._reader.close()
