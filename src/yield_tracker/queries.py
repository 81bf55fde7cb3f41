"""Read-only projections of a snapshot set for the HTTP API."""

from typing import Any, Dict, Iterable, Optional

from yield_tracker.config import DEFAULT_HORIZONS
from yield_tracker.estimator import MS_PER_HOUR, apr_key
from yield_tracker.exceptions import TokenNotFoundError
from yield_tracker.models import Snapshot, SnapshotSet

HISTORY_WINDOW_HOURS = 7 * 24
SUMMARY_HORIZONS = ["24h", "7d"]


def _latest_view(latest: Optional[Snapshot], labels: Iterable[str], with_data_hours: bool) -> Optional[Dict[str, Any]]:
    if latest is None:
        return None
    view: Dict[str, Any] = {"timestamp": latest["timestamp"], "price": latest["price"]}
    for label in labels:
        view[apr_key(label)] = latest.get(apr_key(label))
    if with_data_hours:
        view["data_hours"] = latest.get("data_hours")
    return view


def single_token_view(
    snapshot_set: SnapshotSet,
    token_id: str,
    horizon_labels: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Latest metrics plus the last 7 days of history for one token.

    Raises:
        TokenNotFoundError: with the list of known ids.
    """
    tokens = snapshot_set.get("tokens") or {}
    series = tokens.get(token_id)
    if series is None:
        raise TokenNotFoundError(token_id, tokens.keys())

    labels = list(horizon_labels) if horizon_labels is not None else list(DEFAULT_HORIZONS)
    snaps = series.get("snapshots") or []
    latest = snaps[-1] if snaps else None
    cutoff = (latest["timestamp"] if latest else 0) - HISTORY_WINDOW_HOURS * MS_PER_HOUR

    return {
        "token": token_id,
        "symbol": series.get("symbol"),
        "name": series.get("name"),
        "chain": series.get("chain"),
        "protocol": series.get("protocol"),
        "lastUpdate": snapshot_set.get("lastUpdate"),
        "snapshotCount": len(snaps),
        "latest": _latest_view(latest, labels, with_data_hours=True),
        "history": [
            {"timestamp": s["timestamp"], "price": s["price"], "apr_1h": s.get("apr_1h")}
            for s in snaps
            if s["timestamp"] >= cutoff
        ],
    }


def summary_view(snapshot_set: SnapshotSet) -> Dict[str, Any]:
    """Latest price and 24h/7d APR of every token, without history."""
    summary: Dict[str, Any] = {}
    for token_id, series in (snapshot_set.get("tokens") or {}).items():
        snaps = series.get("snapshots") or []
        latest = snaps[-1] if snaps else None
        summary[token_id] = {
            "symbol": series.get("symbol"),
            "name": series.get("name"),
            "chain": series.get("chain"),
            "snapshotCount": len(snaps),
            "latest": _latest_view(latest, SUMMARY_HORIZONS, with_data_hours=False),
        }
    return {"lastUpdate": snapshot_set.get("lastUpdate"), "tokens": summary}
