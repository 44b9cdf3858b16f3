from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import List, Optional

from laundry_core.config import ScanConfig
from laundry_core.scanning.backends.base import (
    ErrorListener,
    ScanTransport,
    Subscription,
    TagListener,
    TagReadEvent,
)
from laundry_core.scanning.errors import HardwareScanError, ScanUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_POWER = 26


def random_epc(rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    return f"E280{rng.randrange(10_000):020d}"


class StubScanTransport(ScanTransport):
    """In-process reader used for development and tests.

    Reads are pushed with :meth:`emit_tag` / :meth:`emit_error`, or produced
    on a timer by :meth:`start_simulation`.
    """

    name = "stub"

    def __init__(self, config: ScanConfig | None = None, *, available: bool = True) -> None:
        self._config = config
        self._available = available
        self._scanning = False
        self._power = DEFAULT_POWER
        self._tag_listeners: List[TagListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._simulation: Optional[asyncio.Task[None]] = None
        self.fail_next_start: Optional[str] = None
        self.start_calls = 0
        self.stop_calls = 0
        self.power_history: List[int] = []

    def is_available(self) -> bool:
        return self._available

    async def start_scan(self) -> None:
        if not self._available:
            raise ScanUnavailableError("RFID module not available.")
        self.start_calls += 1
        if self.fail_next_start is not None:
            message, self.fail_next_start = self.fail_next_start, None
            raise HardwareScanError(message)
        self._scanning = True
        logger.debug("Stub reader started")

    async def stop_scan(self) -> None:
        if not self._available:
            raise ScanUnavailableError("RFID module not available.")
        self.stop_calls += 1
        self._scanning = False
        await self.stop_simulation()
        logger.debug("Stub reader stopped")

    async def is_scanning(self) -> bool:
        return self._scanning

    async def get_power(self) -> int:
        return self._power

    async def set_power(self, power: int) -> None:
        if not self._available:
            raise ScanUnavailableError("RFID module not available.")
        self._power = power
        self.power_history.append(power)

    def add_tag_listener(self, listener: TagListener) -> Subscription:
        self._tag_listeners.append(listener)
        return Subscription(lambda: self._discard(self._tag_listeners, listener))

    def add_error_listener(self, listener: ErrorListener) -> Subscription:
        self._error_listeners.append(listener)
        return Subscription(lambda: self._discard(self._error_listeners, listener))

    @property
    def listener_count(self) -> int:
        return len(self._tag_listeners) + len(self._error_listeners)

    def emit_tag(self, tag_id: str, signal_strength: float, timestamp: float | None = None) -> None:
        event = TagReadEvent(id=tag_id, signal_strength=signal_strength, timestamp=timestamp or time.time())
        for listener in list(self._tag_listeners):
            listener(event)

    def emit_error(self, message: str) -> None:
        for listener in list(self._error_listeners):
            listener(message)

    def start_simulation(self, interval: float | None = None, *, seed: int | None = None) -> asyncio.Task[None]:
        if self._simulation is not None and not self._simulation.done():
            return self._simulation
        if interval is None:
            interval = self._config.simulate_interval if self._config else 2.0
        self._simulation = asyncio.ensure_future(self._simulate(interval, random.Random(seed)))
        return self._simulation

    async def stop_simulation(self) -> None:
        task, self._simulation = self._simulation, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _simulate(self, interval: float, rng: random.Random) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._scanning:
                self.emit_tag(random_epc(rng), float(-40 - rng.randrange(30)))

    @staticmethod
    def _discard(listeners: list, listener: object) -> None:
        if listener in listeners:
            listeners.remove(listener)
