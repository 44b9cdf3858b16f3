from __future__ import annotations

import asyncio
import inspect
import logging
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from laundry_core.authorization.api import AuthorizationsApi
from laundry_core.authorization.errors import (
    AuthorizationAlreadyPending,
    AuthorizationInvalidated,
    AuthorizationRejected,
    AuthorizationTimeout,
)
from laundry_core.authorization.models import (
    ActionType,
    AuthorizationOutcome,
    AuthorizationRequest,
    AuthorizationStatus,
    CreateAuthorizationRequest,
)
from laundry_core.config import AuthorizationConfig, get_authorization_config
from laundry_core.logging.audit import audit_event
from laundry_core.session.errors import ApiError, SessionError, TransportError

logger = logging.getLogger(__name__)

RecordCallback = Callable[[AuthorizationRequest], Union[None, Awaitable[None]]]
EntityKey = Tuple[str, str]

_RESERVED = ""
_RETIRED_LIMIT = 1024


async def _call(callback: Callable[..., Any], *args: Any) -> Any:
    result = callback(*args)
    if inspect.isawaitable(result):
        return await result
    return result


class PollHandle:
    """Stop handle for one polling subscription.

    The outcome is set once and never changes afterwards, whatever later
    observations say.
    """

    def __init__(self, authorization_id: str, claim: Optional[Callable[[str], bool]] = None) -> None:
        self.authorization_id = authorization_id
        self.polls = 0
        self.record: Optional[AuthorizationRequest] = None
        self.error: Optional[BaseException] = None
        self._outcome: Optional[AuthorizationOutcome] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._consumed = False
        self._claim = claim

    @property
    def outcome(self) -> Optional[AuthorizationOutcome]:
        return self._outcome

    @property
    def done(self) -> bool:
        return self._outcome is not None

    def consume(self) -> bool:
        """Return True exactly once per approval.

        Handles created by a gate share the claim: whichever handle (or
        ``on_approved`` callback) takes it first wins, and an approval for an
        invalidated entity is never handed out.
        """
        if self._outcome is not AuthorizationOutcome.APPROVED or self._consumed:
            return False
        self._consumed = True
        if self._claim is None:
            return True
        return self._claim(self.authorization_id)

    def cancel(self) -> None:
        self._resolve(AuthorizationOutcome.CANCELLED)
        self._stop_task()

    async def wait(self) -> AuthorizationOutcome:
        task = self._task
        if task is not None:
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                self.cancel()
                raise
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]
        return self._outcome or AuthorizationOutcome.CANCELLED

    def _invalidate(self) -> None:
        self._resolve(AuthorizationOutcome.INVALIDATED)
        self._stop_task()

    def _resolve(self, outcome: AuthorizationOutcome, record: Optional[AuthorizationRequest] = None) -> bool:
        if self._outcome is not None:
            return False
        self._outcome = outcome
        if record is not None:
            self.record = record
        return True

    def _stop_task(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()


class AuthorizationGate:
    """Request -> poll -> approve/reject handshake for guarded mutations.

    The gate never performs the mutation itself. An approval is handed to the
    caller once per authorization id, however many handles poll it;
    invalidation makes any approval not yet handed out inert.
    """

    def __init__(self, api: AuthorizationsApi, config: AuthorizationConfig | None = None) -> None:
        self._api = api
        self._config = config or get_authorization_config()
        self._pending: Dict[EntityKey, str] = {}
        # Ids that may still authorize: pending, or approved and not yet claimed.
        self._entities: Dict[str, EntityKey] = {}
        self._handles: Dict[str, List[PollHandle]] = {}
        # Ids that can no longer authorize, mapped to INVALIDATED or APPROVED (claimed).
        self._retired: OrderedDict[str, AuthorizationOutcome] = OrderedDict()

    def pending_for(self, entity_type: str, entity_id: str) -> Optional[str]:
        authorization_id = self._pending.get((entity_type, entity_id))
        return authorization_id or None

    @property
    def active_polls(self) -> int:
        return sum(1 for handles in self._handles.values() for handle in handles if not handle.done)

    async def request(
        self,
        entity_type: str,
        entity_id: str,
        action_type: ActionType | str,
        reason: str,
        requested_data: Optional[Dict[str, Any]] = None,
    ) -> str:
        key = (entity_type, entity_id)
        if key in self._pending:
            raise AuthorizationAlreadyPending(entity_type, entity_id, self.pending_for(*key))
        action = ActionType(action_type)
        payload = CreateAuthorizationRequest(
            entity_type=entity_type,
            entity_id=entity_id,
            action_type=action,
            reason=reason,
            requested_data=requested_data,
        )
        self._pending[key] = _RESERVED
        try:
            check = await self._api.check(entity_type, entity_id, action)
            if check.pending:
                audit_event(
                    "authorization.requested",
                    ok=False,
                    reason="already_pending",
                    entity_type=entity_type,
                    entity_id=entity_id,
                )
                raise AuthorizationAlreadyPending(entity_type, entity_id, check.authorization_id)
            record = await self._api.create(payload)
        except BaseException:
            if self._pending.get(key) == _RESERVED:
                del self._pending[key]
            raise

        self._pending[key] = record.id
        self._entities[record.id] = key
        self._retired.pop(record.id, None)
        audit_event(
            "authorization.requested",
            ok=True,
            authorization_id=record.id,
            entity_type=entity_type,
            entity_id=entity_id,
            action_type=action.value,
        )
        return record.id

    def poll(
        self,
        authorization_id: str,
        on_approved: Optional[RecordCallback] = None,
        on_rejected: Optional[RecordCallback] = None,
        *,
        interval: Optional[float] = None,
        max_wait: Optional[float] = None,
    ) -> PollHandle:
        handle = PollHandle(authorization_id, self._claim)
        if self._retired.get(authorization_id) is AuthorizationOutcome.INVALIDATED:
            handle._resolve(AuthorizationOutcome.INVALIDATED)
            return handle
        interval = self._config.poll_interval if interval is None else interval
        max_wait = self._config.max_wait if max_wait is None else max_wait
        self._handles.setdefault(authorization_id, []).append(handle)
        task = asyncio.ensure_future(self._poll_loop(handle, on_approved, on_rejected, interval, max_wait))
        task.add_done_callback(lambda _: self._release(handle))
        handle._task = task
        return handle

    async def invalidate(self, entity_type: str, entity_id: str) -> None:
        key = (entity_type, entity_id)
        pending_id = self._pending.pop(key, None)
        live = [authorization_id for authorization_id, owner in self._entities.items() if owner == key]
        if pending_id and pending_id not in live:
            live.append(pending_id)
        for authorization_id in live:
            self._entities.pop(authorization_id, None)
            self._retire(authorization_id, AuthorizationOutcome.INVALIDATED)
            for handle in self._handles.pop(authorization_id, []):
                handle._invalidate()
        audit_event(
            "authorization.invalidated",
            authorization_id=pending_id or None,
            entity_type=entity_type,
            entity_id=entity_id,
            dropped=len(live),
        )
        await self._api.invalidate(entity_type, entity_id)

    async def guard(
        self,
        entity_type: str,
        entity_id: str,
        action_type: ActionType | str,
        reason: str,
        action: Callable[[AuthorizationRequest], Any],
        *,
        requested_data: Optional[Dict[str, Any]] = None,
        interval: Optional[float] = None,
        max_wait: Optional[float] = None,
    ) -> Any:
        """Request approval, wait for the decision and run ``action`` once if approved."""
        authorization_id = await self.request(entity_type, entity_id, action_type, reason, requested_data)
        handle = self.poll(authorization_id, interval=interval, max_wait=max_wait)
        outcome = await handle.wait()
        if outcome is AuthorizationOutcome.APPROVED and handle.consume():
            return await _call(action, handle.record)
        if outcome is AuthorizationOutcome.REJECTED:
            raise AuthorizationRejected(authorization_id)
        if outcome is AuthorizationOutcome.TIMED_OUT:
            raise AuthorizationTimeout(authorization_id, max_wait or 0.0)
        if handle.error is not None:
            raise handle.error
        raise AuthorizationInvalidated(authorization_id)

    def close(self) -> None:
        handles = [handle for group in self._handles.values() for handle in group]
        self._handles.clear()
        for handle in handles:
            handle.cancel()

    async def _poll_loop(
        self,
        handle: PollHandle,
        on_approved: Optional[RecordCallback],
        on_rejected: Optional[RecordCallback],
        interval: float,
        max_wait: Optional[float],
    ) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        authorization_id = handle.authorization_id
        while not handle.done:
            record: Optional[AuthorizationRequest] = None
            try:
                record = await self._api.get(authorization_id)
            except ApiError as exc:
                if exc.status_code == 404:
                    self._fail(handle, exc)
                    return
                logger.warning("Authorization %s poll failed: %s", authorization_id, exc)
            except TransportError as exc:
                logger.warning("Authorization %s poll failed: %s", authorization_id, exc)
            except SessionError as exc:
                self._fail(handle, exc)
                return
            except Exception as exc:  # noqa: BLE001
                logger.exception("Authorization %s poll returned an unusable record", authorization_id)
                self._fail(handle, exc)
                return

            if handle.done or self._retired.get(authorization_id) is AuthorizationOutcome.INVALIDATED:
                # Late observation for an abandoned request.
                return
            handle.polls += 1

            if record is not None and record.status.terminal:
                self._settle(authorization_id, record.status)
                if record.status is AuthorizationStatus.APPROVED:
                    if handle._resolve(AuthorizationOutcome.APPROVED, record):
                        audit_event("authorization.resolved", authorization_id=authorization_id, status="APPROVED")
                        if on_approved is not None and handle.consume():
                            await _call(on_approved, record)
                else:
                    if handle._resolve(AuthorizationOutcome.REJECTED, record):
                        audit_event("authorization.resolved", authorization_id=authorization_id, status="REJECTED")
                        if on_rejected is not None:
                            await _call(on_rejected, record)
                return

            if max_wait is not None and loop.time() - started >= max_wait:
                handle._resolve(AuthorizationOutcome.TIMED_OUT, record)
                audit_event("authorization.resolved", authorization_id=authorization_id, status="TIMED_OUT")
                return
            await asyncio.sleep(interval)

    def _fail(self, handle: PollHandle, error: BaseException) -> None:
        handle.error = error
        handle._resolve(AuthorizationOutcome.FAILED)
        audit_event("authorization.resolved", authorization_id=handle.authorization_id, status="FAILED")

    def _claim(self, authorization_id: str) -> bool:
        if authorization_id in self._retired:
            return False
        self._entities.pop(authorization_id, None)
        self._retire(authorization_id, AuthorizationOutcome.APPROVED)
        return True

    def _retire(self, authorization_id: str, outcome: AuthorizationOutcome) -> None:
        self._retired[authorization_id] = outcome
        self._retired.move_to_end(authorization_id)
        while len(self._retired) > _RETIRED_LIMIT:
            self._retired.popitem(last=False)

    def _release(self, handle: PollHandle) -> None:
        handles = self._handles.get(handle.authorization_id)
        if not handles or handle not in handles:
            return
        handles.remove(handle)
        if not handles:
            del self._handles[handle.authorization_id]

    def _settle(self, authorization_id: str, status: AuthorizationStatus) -> None:
        key = self._entities.get(authorization_id)
        if key is not None and self._pending.get(key) == authorization_id:
            del self._pending[key]
        if status is not AuthorizationStatus.APPROVED:
            # Approved ids stay tracked until claimed or invalidated.
            self._entities.pop(authorization_id, None)
