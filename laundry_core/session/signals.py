from __future__ import annotations

from typing import Callable, List

from laundry_core.logging.logger import get_logger

SessionEndedListener = Callable[[str], None]


class SessionSignals:
    """Process-wide "session ended" notification.

    Listeners receive the reason (``refresh_failed``, ``no_refresh_token`` or
    ``logout``) and are expected to drop in-memory auth state.
    """

    def __init__(self) -> None:
        self._listeners: List[SessionEndedListener] = []
        self.ended_count = 0

    def subscribe(self, listener: SessionEndedListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def emit_session_ended(self, reason: str) -> None:
        self.ended_count += 1
        for listener in list(self._listeners):
            try:
                listener(reason)
            except Exception:  # noqa: BLE001
                get_logger().exception("session_ended listener failed")
