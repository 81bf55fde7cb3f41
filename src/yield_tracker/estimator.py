"""
Trailing APR estimation from share-price history.

For each lookback horizon the estimator picks an anchor snapshot, compares
the current price against it and annualizes the change over the anchor's
actual age.
"""

from typing import Dict, List, Mapping, Optional

from yield_tracker.config import DEFAULT_COVERAGE_FLOOR, DEFAULT_HORIZONS
from yield_tracker.models import Snapshot

MS_PER_HOUR = 60 * 60 * 1000
HOURS_PER_YEAR = 365 * 24
# anchors younger than this would blow up the annualization factor
MIN_ANCHOR_HOURS = 0.1


def apr_key(label: str) -> str:
    return f"apr_{label}"


def find_anchor(snapshots: List[Snapshot], target_ms: float) -> Optional[Snapshot]:
    """
    Return the snapshot at or before target_ms that is closest to it.

    When nothing is that old, the oldest snapshot is returned as a
    partial-coverage anchor; the caller decides whether it covers enough.
    """
    if not snapshots:
        return None

    best: Optional[Snapshot] = None
    best_distance: Optional[float] = None
    for snap in snapshots:
        if snap["timestamp"] > target_ms:
            continue
        distance = target_ms - snap["timestamp"]
        if best_distance is None or distance < best_distance:
            best = snap
            best_distance = distance

    if best is None:
        best = min(snapshots, key=lambda s: s["timestamp"])
    return best


def annualized_rate(
    anchor_price: float, current_price: float, hours: float
) -> Optional[float]:
    """Percentage APR of a move from anchor_price to current_price over `hours`."""
    if hours < MIN_ANCHOR_HOURS or anchor_price <= 0:
        return None
    change = (current_price - anchor_price) / anchor_price
    return change * (HOURS_PER_YEAR / hours) * 100


def estimate_horizon(
    snapshots: List[Snapshot],
    current_price: float,
    now_ms: float,
    horizon_hours: float,
    coverage_floor: float = DEFAULT_COVERAGE_FLOOR,
) -> Optional[float]:
    anchor = find_anchor(snapshots, now_ms - horizon_hours * MS_PER_HOUR)
    if anchor is None:
        return None

    actual_hours = (now_ms - anchor["timestamp"]) / MS_PER_HOUR
    if actual_hours < coverage_floor * horizon_hours:
        return None
    return annualized_rate(anchor["price"], current_price, actual_hours)


def estimate_apr(
    snapshots: List[Snapshot],
    current_price: float,
    now_ms: float,
    horizons: Optional[Mapping[str, float]] = None,
    coverage_floor: float = DEFAULT_COVERAGE_FLOOR,
) -> Dict[str, Optional[float]]:
    """
    Estimate APR for every horizon against the existing history.

    Args:
        snapshots: Token history, oldest first, not yet containing the new price.
        current_price: Price observed now.
        now_ms: Observation time, milliseconds since epoch.
        horizons: Label -> hours. Defaults to 1h..30d.
        coverage_floor: Minimum fraction of a horizon the anchor must span.

    Returns:
        {apr_<label>: float | None, ..., data_hours: float}, or {} for an
        empty history.
    """
    if not snapshots:
        return {}
    if horizons is None:
        horizons = DEFAULT_HORIZONS

    result: Dict[str, Optional[float]] = {}
    for label, hours in horizons.items():
        result[apr_key(label)] = estimate_horizon(
            snapshots, current_price, now_ms, hours, coverage_floor
        )

    oldest = min(snap["timestamp"] for snap in snapshots)
    result["data_hours"] = round((now_ms - oldest) / MS_PER_HOUR, 1)
    return result
