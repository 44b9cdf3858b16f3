from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class ScanRange:
    key: str
    label: str
    min_rssi: int
    power: int
    distance: str
    description: str


SCAN_RANGE_PRESETS: Dict[str, ScanRange] = {
    "near": ScanRange(
        key="near",
        label="Near",
        min_rssi=-55,
        power=18,
        distance="~0.5 m",
        description="Pinpoint reads, for single tags.",
    ),
    "medium": ScanRange(
        key="medium",
        label="Medium",
        min_rssi=-65,
        power=22,
        distance="~1.5 m",
        description="Balance between reach and precision for most work.",
    ),
    "far": ScanRange(
        key="far",
        label="Wide",
        min_rssi=-75,
        power=26,
        distance="~3 m",
        description="Wide coverage for bundles or containers of garments.",
    ),
}

SCAN_RANGE_ORDER: List[str] = ["near", "medium", "far"]
DEFAULT_RANGE_KEY = "medium"


def get_scan_range(key: str | None) -> ScanRange:
    if key is None:
        return SCAN_RANGE_PRESETS[DEFAULT_RANGE_KEY]
    normalized = key.strip().lower()
    if normalized not in SCAN_RANGE_PRESETS:
        raise ValueError(f"Unknown scan range '{key}'. Expected one of: {', '.join(SCAN_RANGE_ORDER)}")
    return SCAN_RANGE_PRESETS[normalized]
