"""POSIX signal listener backed by the shared signal registry."""

from __future__ import annotations

from collections import Counter
import signal
from typing import TYPE_CHECKING

from anysignal.kinds import to_signal
from anysignal.listener import Listener
from anysignal.unix.registry import get_signal_registry


if TYPE_CHECKING:
    from collections.abc import Iterable

    from anysignal.exceptions import ChannelIoError
    from anysignal.unix.registry import ListenerToken, SignalRegistry


class UnixListener(Listener[signal.Signals]):
    """Receives POSIX signals, one event per occurrence."""

    def __init__(
        self,
        kinds: Iterable[object] = (),
        *,
        registry: SignalRegistry | None = None,
    ) -> None:
        self._registry = registry or get_signal_registry()
        self._tokens: dict[signal.Signals, ListenerToken] = {}
        self._pending: Counter[signal.Signals] = Counter()
        super().__init__(kinds)

    @property
    def registry(self) -> SignalRegistry:
        return self._registry

    def fileno(self) -> int:
        """File descriptor that turns readable when any hooked signal arrives."""
        return self._registry.fileno()

    def deliver(self, signum: signal.Signals, count: int) -> None:
        if signum in self._tokens:
            self._pending[signum] += count

    def _convert(self, kind: object) -> signal.Signals:
        return to_signal(kind)

    def _register(self, kinds: list[signal.Signals]) -> None:
        acquired: list[ListenerToken] = []
        try:
            for signum in kinds:
                acquired.append(self._registry.register(signum, self))
        except BaseException:
            for token in acquired:
                token.release()
            raise
        self._tokens.update((token.signum, token) for token in acquired)

    def _unregister(self, kinds: list[signal.Signals]) -> None:
        error: BaseException | None = None
        for signum in kinds:
            self._pending.pop(signum, None)
            token = self._tokens.pop(signum, None)
            if token is None:
                continue
            try:
                token.release()
            except Exception as exc:  # noqa: BLE001
                error = error or exc
        if error is not None:
            raise error

    def _pop(self) -> signal.Signals | None:
        if not self._pending:
            return None
        signum = min(self._pending)
        self._pending[signum] -= 1
        if self._pending[signum] <= 0:
            del self._pending[signum]
        return signum

    def _failure(self) -> ChannelIoError | None:
        return self._registry.failure

    async def _wait(self) -> None:
        await self._registry.wait()
