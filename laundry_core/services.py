from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from adapters.http.transport import HttpTransport, RequestsTransport
from laundry_core.authorization.api import AuthorizationsApi
from laundry_core.authorization.gate import AuthorizationGate
from laundry_core.config import (
    get_api_config,
    get_authorization_config,
    get_scan_config,
)
from laundry_core.logging.logger import get_logger
from laundry_core.scanning.backends.base import ScanTransport
from laundry_core.scanning.backends.stub import StubScanTransport
from laundry_core.scanning.coordinator import ScanSessionCoordinator
from laundry_core.session.auth_api import AuthApi
from laundry_core.session.pipeline import AuthenticatedClient
from laundry_core.session.refresh import TokenRefresher
from laundry_core.session.service import SessionService
from laundry_core.session.signals import SessionSignals
from laundry_core.session.token_store import KeyValueStorage, SqliteKeyValueStorage, TokenStore


@dataclass
class CoreServices:
    signals: SessionSignals
    token_store: TokenStore
    auth_api: AuthApi
    refresher: TokenRefresher
    client: AuthenticatedClient
    session: SessionService
    scanner: ScanSessionCoordinator
    authorizations: AuthorizationsApi
    gate: AuthorizationGate

    async def shutdown(self) -> None:
        self.gate.close()
        await self.scanner.close()
        self.session.close()


def _build_scan_transport() -> ScanTransport:
    config = get_scan_config()
    # "stub" is the only in-tree reader; device drivers plug in through ScanTransport.
    return StubScanTransport(config)


def build_core_services(
    *,
    transport: Optional[HttpTransport] = None,
    storage: Optional[KeyValueStorage] = None,
    scan_transport: Optional[ScanTransport] = None,
) -> CoreServices:
    """Wire the process-wide singletons: one token store, one refresher, one reader session."""
    get_logger()
    if transport is None:
        api_config = get_api_config()
        transport = RequestsTransport(
            api_config.base_url,
            timeout=api_config.timeout_seconds,
            max_retries=api_config.max_retries,
        )
    signals = SessionSignals()
    token_store = TokenStore(storage or SqliteKeyValueStorage())
    auth_api = AuthApi(transport)
    refresher = TokenRefresher(token_store, auth_api, signals)
    client = AuthenticatedClient(transport, token_store, refresher)
    authorizations = AuthorizationsApi(client)
    return CoreServices(
        signals=signals,
        token_store=token_store,
        auth_api=auth_api,
        refresher=refresher,
        client=client,
        session=SessionService(token_store, auth_api, signals),
        scanner=ScanSessionCoordinator(scan_transport or _build_scan_transport(), get_scan_config()),
        authorizations=authorizations,
        gate=AuthorizationGate(authorizations, get_authorization_config()),
    )
