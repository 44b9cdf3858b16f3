from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Set

from pydantic import BaseModel

from laundry_core.scanning.errors import HardwareScanError


class ScanState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass(frozen=True)
class ScannedTag:
    id: str
    signal_strength: float
    observed_at: float = field(default_factory=time.time)


TagCallback = Callable[[ScannedTag], None]
ErrorCallback = Callable[[HardwareScanError], None]


@dataclass(frozen=True)
class ScanOptions:
    """Options for one scan session.

    ``min_signal_strength`` overrides the RSSI floor of ``range_key``.
    ``max_tags`` stops the session once that many tags were accepted.
    ``reset_seen`` starts from an empty seen-set instead of the one kept
    across the previous stop.
    """

    range_key: Optional[str] = None
    min_signal_strength: Optional[float] = None
    max_tags: Optional[int] = None
    apply_power: bool = True
    reset_seen: bool = False

    def __post_init__(self) -> None:
        if self.max_tags is not None and self.max_tags <= 0:
            raise ValueError("max_tags must be positive")


@dataclass
class ScanSession:
    min_signal_strength: float
    consumer: TagCallback
    on_error: Optional[ErrorCallback] = None
    max_tags: Optional[int] = None
    range_key: Optional[str] = None
    state: ScanState = ScanState.IDLE
    seen: Set[str] = field(default_factory=set)
    accepted: List[str] = field(default_factory=list)
    started_at: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.state is ScanState.ACTIVE

    @property
    def saturated(self) -> bool:
        return self.max_tags is not None and len(self.accepted) >= self.max_tags


class ScanStatus(BaseModel):
    backend: str
    available: bool
    state: ScanState
    range_key: Optional[str] = None
    min_signal_strength: Optional[float] = None
    power: Optional[int] = None
    seen_count: int = 0
    accepted_count: int = 0
