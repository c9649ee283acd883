"""Per-signal occurrence counters fed from the notification channel."""

from __future__ import annotations

import signal
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterator


class CounterTable:
    """One counter per possible signal number.

    :meth:`increment` records occurrences read off the channel, :meth:`take`
    and :meth:`drain` hand them out. ``_raised`` only ever grows, ``_taken``
    trails it, and the pending count is their difference. Python ints do not
    wrap.
    """

    __slots__ = ("_raised", "_taken")

    def __init__(self, size: int = signal.NSIG) -> None:
        self._raised = [0] * size
        self._taken = [0] * size

    def __len__(self) -> int:
        return len(self._raised)

    def increment(self, signum: int, count: int = 1) -> None:
        """Record ``count`` occurrences of ``signum``."""
        self._raised[signum] += count

    def pending(self, signum: int) -> int:
        """Occurrences recorded but not yet taken."""
        return self._raised[signum] - self._taken[signum]

    def take(self, signum: int) -> int:
        """Read and reset the pending count for one signal number."""
        raised = self._raised[signum]
        count = raised - self._taken[signum]
        self._taken[signum] = raised
        return count

    def drain(self) -> Iterator[tuple[int, int]]:
        """Take every non-zero count, in ascending signal-number order."""
        for signum in range(1, len(self._raised)):
            if self._raised[signum] != self._taken[signum]:
                count = self.take(signum)
                if count:
                    yield signum, count
