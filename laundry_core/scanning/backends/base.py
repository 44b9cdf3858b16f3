from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol


@dataclass(frozen=True)
class TagReadEvent:
    id: str
    signal_strength: float
    timestamp: Optional[float] = None


TagListener = Callable[[TagReadEvent], None]
ErrorListener = Callable[[str], None]


class Subscription:
    """Handle returned by the listener registration calls; ``remove()`` detaches it."""

    def __init__(self, dispose: Callable[[], None]) -> None:
        self._dispose: Optional[Callable[[], None]] = dispose

    @property
    def active(self) -> bool:
        return self._dispose is not None

    def remove(self) -> None:
        dispose, self._dispose = self._dispose, None
        if dispose is not None:
            dispose()


class ScanTransport(Protocol):
    name: str

    def is_available(self) -> bool:
        ...

    async def start_scan(self) -> None:
        ...

    async def stop_scan(self) -> None:
        ...

    async def is_scanning(self) -> bool:
        ...

    async def get_power(self) -> int:
        ...

    async def set_power(self, power: int) -> None:
        ...

    def add_tag_listener(self, listener: TagListener) -> Subscription:
        ...

    def add_error_listener(self, listener: ErrorListener) -> Subscription:
        ...
