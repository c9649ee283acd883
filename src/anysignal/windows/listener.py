"""Console control event listener backed by the console event router."""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio

from anysignal.kinds import ConsoleEvent, to_console_event
from anysignal.listener import Listener
from anysignal.windows.router import get_console_router


if TYPE_CHECKING:
    from collections.abc import Iterable

    from anysignal.windows.router import ConsoleEventRouter, WakerEntry


class WindowsListener(Listener[ConsoleEvent]):
    """Receives Windows console control events in the order they happened."""

    def __init__(
        self,
        kinds: Iterable[object] = (),
        *,
        router: ConsoleEventRouter | None = None,
    ) -> None:
        self._router = router or get_console_router()
        self._entry: WakerEntry | None = None
        super().__init__(kinds)

    @property
    def router(self) -> ConsoleEventRouter:
        return self._router

    @property
    def entry(self) -> WakerEntry | None:
        return self._entry

    def _convert(self, kind: object) -> ConsoleEvent:
        return to_console_event(kind)

    def _register(self, kinds: list[ConsoleEvent]) -> None:
        if self._entry is None:
            self._entry = self._router.register(kinds)
        else:
            self._router.update(self._entry, self._kinds.union(kinds))

    def _unregister(self, kinds: list[ConsoleEvent]) -> None:
        entry = self._entry
        if entry is None:
            return
        if self._kinds:
            self._router.update(entry, self._kinds)
            return
        self._entry = None
        self._router.release(entry)

    def _pop(self) -> ConsoleEvent | None:
        if self._entry is None:
            return None
        return self._router.pop(self._entry)

    def _failure(self) -> None:
        return None

    async def _wait(self) -> None:
        if self._entry is None:
            await anyio.sleep_forever()
        await self._router.wait(self._entry)
