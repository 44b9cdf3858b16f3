from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from laundry_core.logging.logger import get_logger


def redact_token(value: Optional[str], *, visible: int = 6) -> str:
    if not value:
        return "<none>"
    if len(value) <= visible:
        return "***"
    return f"{value[:visible]}..."


def audit_event(event: str, **fields: Any) -> None:
    logger = get_logger()
    timestamp = datetime.now(tz=timezone.utc).isoformat()
    payload = {"event": event, "timestamp": timestamp, **fields}
    logger.info("audit %s", payload)
