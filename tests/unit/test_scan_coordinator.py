from __future__ import annotations

import asyncio
from typing import List

import pytest

from laundry_core.config import ScanConfig
from laundry_core.scanning.backends.stub import StubScanTransport
from laundry_core.scanning.coordinator import ScanSessionCoordinator
from laundry_core.scanning.errors import HardwareScanError, ScanAlreadyActive, ScanUnavailableError
from laundry_core.scanning.models import ScannedTag, ScanOptions, ScanState
from laundry_core.scanning.ranges import get_scan_range

CONFIG = ScanConfig(backend="stub", range_key="medium", simulate_interval=0.01)


def _coordinator(**kwargs) -> tuple[ScanSessionCoordinator, StubScanTransport]:
    transport = StubScanTransport(CONFIG, **kwargs)
    return ScanSessionCoordinator(transport, CONFIG), transport


def test_duplicate_reads_are_delivered_once() -> None:
    async def scenario() -> List[str]:
        coordinator, reader = _coordinator()
        received: List[str] = []
        await coordinator.start(lambda tag: received.append(tag.id))
        for tag_id in ("A", "A", "B", "A"):
            reader.emit_tag(tag_id, -50)
        return received

    assert asyncio.run(scenario()) == ["A", "B"]


def test_weak_reads_are_dropped_and_not_marked_seen() -> None:
    async def scenario() -> List[ScannedTag]:
        coordinator, reader = _coordinator()
        received: List[ScannedTag] = []
        await coordinator.start(received.append)
        reader.emit_tag("A", -70)
        reader.emit_tag("A", -65)
        reader.emit_tag("B", -80)
        return received

    received = asyncio.run(scenario())
    assert [(tag.id, tag.signal_strength) for tag in received] == [("A", -65)]


def test_explicit_signal_floor_overrides_range_preset() -> None:
    async def scenario() -> List[str]:
        coordinator, reader = _coordinator()
        received: List[str] = []
        await coordinator.start(lambda tag: received.append(tag.id), ScanOptions(min_signal_strength=-45))
        reader.emit_tag("A", -50)
        reader.emit_tag("B", -44)
        return received

    assert asyncio.run(scenario()) == ["B"]


def test_range_preset_sets_power_and_floor() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        session = await coordinator.start(lambda tag: None, ScanOptions(range_key="near"))
        status = await coordinator.status()
        return session, status, reader

    session, status, reader = asyncio.run(scenario())
    near = get_scan_range("near")
    assert session.min_signal_strength == near.min_rssi
    assert reader.power_history == [near.power]
    assert status.power == near.power
    assert status.state is ScanState.ACTIVE
    assert status.range_key == "near"


def test_unknown_range_is_rejected_before_starting() -> None:
    coordinator, reader = _coordinator()
    with pytest.raises(ValueError):
        asyncio.run(coordinator.start(lambda tag: None, ScanOptions(range_key="orbit")))
    assert reader.start_calls == 0
    assert coordinator.state is ScanState.IDLE


def test_second_start_is_rejected_while_active() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        first: List[str] = []
        await coordinator.start(lambda tag: first.append(tag.id))
        with pytest.raises(ScanAlreadyActive):
            await coordinator.start(lambda tag: None)
        reader.emit_tag("A", -50)
        return first, reader

    first, reader = asyncio.run(scenario())
    assert first == ["A"]
    assert reader.start_calls == 1


def test_concurrent_starts_admit_one_session() -> None:
    async def scenario():
        coordinator, _ = _coordinator()
        return await asyncio.gather(
            coordinator.start(lambda tag: None),
            coordinator.start(lambda tag: None),
            return_exceptions=True,
        )

    results = asyncio.run(scenario())
    assert sum(isinstance(result, ScanAlreadyActive) for result in results) == 1


def test_stop_detaches_and_keeps_seen_ids() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        received: List[str] = []
        await coordinator.start(lambda tag: received.append(tag.id))
        reader.emit_tag("A", -50)
        await coordinator.stop()
        await coordinator.stop()
        detached = reader.listener_count
        reader.emit_tag("C", -50)
        await coordinator.start(lambda tag: received.append(tag.id))
        reader.emit_tag("A", -50)
        reader.emit_tag("B", -50)
        return received, detached, reader

    received, detached, reader = asyncio.run(scenario())
    assert received == ["A", "B"]
    assert detached == 0
    assert reader.stop_calls == 1


def test_forget_allows_a_tag_to_be_read_again() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        received: List[str] = []
        await coordinator.start(lambda tag: received.append(tag.id))
        reader.emit_tag("A", -50)
        reader.emit_tag("B", -50)
        assert coordinator.forget("A") is True
        assert coordinator.forget("missing") is False
        reader.emit_tag("A", -50)
        reader.emit_tag("B", -50)
        return received, coordinator.seen_ids

    received, seen = asyncio.run(scenario())
    assert received == ["A", "B", "A"]
    assert seen == frozenset({"A", "B"})


def test_reset_and_reset_seen_option_clear_history() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        received: List[str] = []
        await coordinator.start(lambda tag: received.append(tag.id))
        reader.emit_tag("A", -50)
        await coordinator.stop()
        coordinator.reset()
        await coordinator.start(lambda tag: received.append(tag.id))
        reader.emit_tag("A", -50)
        await coordinator.stop()
        await coordinator.start(lambda tag: received.append(tag.id), ScanOptions(reset_seen=True))
        reader.emit_tag("A", -50)
        return received

    assert asyncio.run(scenario()) == ["A", "A", "A"]


def test_session_stops_once_capacity_is_reached() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        received: List[str] = []
        await coordinator.start(lambda tag: received.append(tag.id), ScanOptions(max_tags=2))
        for tag_id in ("A", "B", "C"):
            reader.emit_tag(tag_id, -50)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        return received, coordinator.state, reader

    received, state, reader = asyncio.run(scenario())
    assert received == ["A", "B"]
    assert state is ScanState.IDLE
    assert reader.stop_calls == 1


def test_max_tags_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ScanOptions(max_tags=0)


def test_reader_errors_are_forwarded_without_stopping() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        errors: List[HardwareScanError] = []
        received: List[str] = []
        await coordinator.start(lambda tag: received.append(tag.id), on_error=errors.append)
        reader.emit_error("antenna fault")
        reader.emit_tag("A", -50)
        return errors, received, coordinator.is_active

    errors, received, active = asyncio.run(scenario())
    assert [str(error) for error in errors] == ["antenna fault"]
    assert received == ["A"]
    assert active is True


def test_reader_error_without_handler_is_logged() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        await coordinator.start(lambda tag: None)
        reader.emit_error("antenna fault")
        return coordinator.is_active

    assert asyncio.run(scenario()) is True


def test_consumer_exception_does_not_break_the_session() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        received: List[str] = []

        def consumer(tag: ScannedTag) -> None:
            if tag.id == "A":
                raise RuntimeError("ui bug")
            received.append(tag.id)

        await coordinator.start(consumer)
        reader.emit_tag("A", -50)
        reader.emit_tag("B", -50)
        return received, coordinator.seen_ids

    received, seen = asyncio.run(scenario())
    assert received == ["B"]
    assert "A" in seen


def test_failed_start_rolls_back_to_idle() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        reader.fail_next_start = "reader busy"
        with pytest.raises(HardwareScanError):
            await coordinator.start(lambda tag: None)
        rolled_back = (coordinator.state, reader.listener_count)
        await coordinator.start(lambda tag: None)
        return rolled_back, coordinator.state

    rolled_back, state = asyncio.run(scenario())
    assert rolled_back == (ScanState.IDLE, 0)
    assert state is ScanState.ACTIVE


class SlowStartTransport(StubScanTransport):
    """Reader whose start blocks until released, as on a slow serial link."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.starting = asyncio.Event()
        self.release = asyncio.Event()

    async def start_scan(self) -> None:
        self.starting.set()
        await self.release.wait()
        await super().start_scan()


def test_cancelled_start_rolls_back_to_idle() -> None:
    async def scenario():
        reader = SlowStartTransport(CONFIG)
        coordinator = ScanSessionCoordinator(reader, CONFIG)
        pending = asyncio.ensure_future(coordinator.start(lambda tag: None))
        await reader.starting.wait()
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        rolled_back = (coordinator.state, reader.listener_count, await reader.is_scanning())
        reader.release.set()
        await coordinator.start(lambda tag: None)
        return rolled_back, coordinator.state

    rolled_back, state = asyncio.run(scenario())
    assert rolled_back == (ScanState.IDLE, 0, False)
    assert state is ScanState.ACTIVE


def test_unexpected_reader_exception_rolls_back_to_idle() -> None:
    class BrokenTransport(StubScanTransport):
        async def start_scan(self) -> None:
            raise OSError("serial port closed")

    async def scenario():
        reader = BrokenTransport(CONFIG)
        coordinator = ScanSessionCoordinator(reader, CONFIG)
        with pytest.raises(OSError):
            await coordinator.start(lambda tag: None)
        return coordinator.state, reader.listener_count

    assert asyncio.run(scenario()) == (ScanState.IDLE, 0)


def test_failing_error_handler_does_not_starve_other_listeners() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        others: List[str] = []

        def on_error(error: HardwareScanError) -> None:
            raise RuntimeError("ui bug")

        await coordinator.start(lambda tag: None, on_error=on_error)
        reader.add_error_listener(others.append)
        reader.emit_error("antenna fault")
        return others, coordinator.is_active

    others, active = asyncio.run(scenario())
    assert others == ["antenna fault"]
    assert active is True


def test_unavailable_reader_cannot_start() -> None:
    coordinator, reader = _coordinator(available=False)
    with pytest.raises(ScanUnavailableError) as excinfo:
        asyncio.run(coordinator.start(lambda tag: None))
    assert excinfo.value.status_code == 503
    assert coordinator.state is ScanState.IDLE
    assert reader.listener_count == 0


def test_close_stops_and_forgets_everything() -> None:
    async def scenario():
        coordinator, reader = _coordinator()
        await coordinator.start(lambda tag: None)
        reader.emit_tag("A", -50)
        await coordinator.close()
        return coordinator.state, coordinator.seen_ids

    state, seen = asyncio.run(scenario())
    assert state is ScanState.IDLE
    assert seen == frozenset()


def test_simulated_reads_look_like_epc_tags() -> None:
    async def scenario() -> List[ScannedTag]:
        coordinator, reader = _coordinator()
        received: List[ScannedTag] = []
        enough = asyncio.Event()

        def consumer(tag: ScannedTag) -> None:
            received.append(tag)
            if len(received) >= 3:
                enough.set()

        await coordinator.start(consumer, ScanOptions(min_signal_strength=-100))
        reader.start_simulation(0.001, seed=7)
        await asyncio.wait_for(enough.wait(), timeout=5)
        await coordinator.close()
        return received

    received = asyncio.run(scenario())
    assert len(received) >= 3
    for tag in received:
        assert tag.id.startswith("E280")
        assert len(tag.id) == 24
        assert -69 <= tag.signal_strength <= -40
