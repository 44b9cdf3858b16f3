from __future__ import annotations

import asyncio
import logging
import time
from typing import FrozenSet, Optional, Set

from laundry_core.config import ScanConfig, get_scan_config
from laundry_core.logging.audit import audit_event
from laundry_core.scanning.backends.base import ScanTransport, Subscription, TagReadEvent
from laundry_core.scanning.errors import HardwareScanError, ScanAlreadyActive, ScanError
from laundry_core.scanning.models import (
    ErrorCallback,
    ScannedTag,
    ScanOptions,
    ScanSession,
    ScanState,
    ScanStatus,
    TagCallback,
)
from laundry_core.scanning.ranges import get_scan_range

logger = logging.getLogger(__name__)


class ScanSessionCoordinator:
    """Owns the single reader session of the process.

    The coordinator is the only subscriber to the raw transport events. It
    drops reads below the session's signal floor, suppresses ids already seen
    and hands every remaining tag to the one consumer that started the
    session. ``stop()`` keeps the seen-set; ``reset()``/``forget()`` edit it.
    """

    def __init__(self, transport: ScanTransport, config: ScanConfig | None = None) -> None:
        self._transport = transport
        self._config = config or get_scan_config()
        self._session: Optional[ScanSession] = None
        self._seen: Set[str] = set()
        self._tag_subscription: Optional[Subscription] = None
        self._error_subscription: Optional[Subscription] = None
        self._capacity_stop: Optional[asyncio.Task[None]] = None

    @property
    def transport(self) -> ScanTransport:
        return self._transport

    @property
    def state(self) -> ScanState:
        if self._session is None:
            return ScanState.IDLE
        return self._session.state

    @property
    def is_active(self) -> bool:
        return self.state is ScanState.ACTIVE

    @property
    def session(self) -> Optional[ScanSession]:
        return self._session

    @property
    def seen_ids(self) -> FrozenSet[str]:
        return frozenset(self._seen)

    async def start(
        self,
        on_tag: TagCallback,
        options: ScanOptions | None = None,
        on_error: ErrorCallback | None = None,
    ) -> ScanSession:
        if self.is_active:
            audit_event("scan.start", ok=False, reason="already_active")
            raise ScanAlreadyActive()

        options = options or ScanOptions()
        if options.reset_seen:
            self._seen.clear()
        preset = get_scan_range(options.range_key or self._config.range_key)
        min_signal = options.min_signal_strength
        if min_signal is None:
            min_signal = float(preset.min_rssi)

        session = ScanSession(
            min_signal_strength=min_signal,
            consumer=on_tag,
            on_error=on_error,
            max_tags=options.max_tags,
            range_key=preset.key,
            state=ScanState.ACTIVE,
            seen=self._seen,
            started_at=time.time(),
        )
        self._session = session
        self._attach()

        try:
            if options.apply_power:
                await self._transport.set_power(preset.power)
            await self._transport.start_scan()
        except BaseException as exc:
            # Cancelled or failed while the reader was starting: nothing is scanning.
            if self._session is session and session.active:
                session.state = ScanState.IDLE
                self._detach()
            if isinstance(exc, ScanError):
                audit_event("scan.start", ok=False, backend=self._transport.name, reason=str(exc))
            raise

        if not session.active:
            # Stopped while the reader was still starting up.
            await self._transport.stop_scan()
            return session

        audit_event(
            "scan.start",
            ok=True,
            backend=self._transport.name,
            range=preset.key,
            min_signal_strength=min_signal,
            max_tags=options.max_tags,
            seen=len(self._seen),
        )
        return session

    async def stop(self, reason: str = "requested") -> None:
        session = self._session
        if session is None or not session.active:
            return
        session.state = ScanState.IDLE
        self._detach()
        audit_event(
            "scan.stop",
            reason=reason,
            accepted=len(session.accepted),
            seen=len(self._seen),
        )
        try:
            await self._transport.stop_scan()
        except ScanError as exc:
            raise HardwareScanError(f"Reader did not stop cleanly: {exc}") from exc

    def reset(self) -> None:
        cleared = len(self._seen)
        self._seen.clear()
        audit_event("scan.reset", cleared=cleared)

    def forget(self, tag_id: str) -> bool:
        """Let ``tag_id`` be accepted again, e.g. after it was removed from a draft list."""
        if tag_id not in self._seen:
            return False
        self._seen.discard(tag_id)
        return True

    async def close(self) -> None:
        try:
            await self.stop(reason="closed")
        finally:
            self.reset()

    async def status(self) -> ScanStatus:
        available = self._transport.is_available()
        power = await self._transport.get_power() if available else None
        session = self._session
        return ScanStatus(
            backend=self._transport.name,
            available=available,
            state=self.state,
            range_key=session.range_key if session else None,
            min_signal_strength=session.min_signal_strength if session else None,
            power=power,
            seen_count=len(self._seen),
            accepted_count=len(session.accepted) if session else 0,
        )

    def _attach(self) -> None:
        self._detach()
        self._tag_subscription = self._transport.add_tag_listener(self._handle_tag)
        self._error_subscription = self._transport.add_error_listener(self._handle_error)

    def _detach(self) -> None:
        for subscription in (self._tag_subscription, self._error_subscription):
            if subscription is not None:
                subscription.remove()
        self._tag_subscription = None
        self._error_subscription = None

    def _handle_tag(self, event: TagReadEvent) -> None:
        session = self._session
        if session is None or not session.active or session.saturated:
            return
        if event.signal_strength < session.min_signal_strength:
            return
        if event.id in session.seen:
            return
        session.seen.add(event.id)
        session.accepted.append(event.id)
        tag = ScannedTag(
            id=event.id,
            signal_strength=event.signal_strength,
            observed_at=event.timestamp or time.time(),
        )
        try:
            session.consumer(tag)
        except Exception:  # noqa: BLE001
            logger.exception("Scan consumer failed for tag %s", event.id)
        if session.saturated:
            self._stop_at_capacity(session)

    def _handle_error(self, message: str) -> None:
        error = HardwareScanError(message)
        audit_event("scan.error", message=message, backend=self._transport.name)
        session = self._session
        if session is not None and session.on_error is not None:
            try:
                session.on_error(error)
            except Exception:  # noqa: BLE001
                logger.exception("Scan error handler failed for: %s", message)
            return
        logger.warning("Reader error with no handler: %s", message)

    def _stop_at_capacity(self, session: ScanSession) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            session.state = ScanState.IDLE
            self._detach()
            logger.warning("Scan capacity reached outside an event loop; reader left running")
            return
        self._capacity_stop = loop.create_task(self._capacity_stop_task(session))

    async def _capacity_stop_task(self, session: ScanSession) -> None:
        if self._session is not session or not session.active:
            return
        try:
            await self.stop(reason="capacity_reached")
        except HardwareScanError as exc:
            if session.on_error is not None:
                session.on_error(exc)
            else:
                logger.warning("%s", exc)
