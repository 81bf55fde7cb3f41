import csv
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, TypedDict

from yield_tracker.config import TrackerSettings
from yield_tracker.estimator import MS_PER_HOUR, apr_key, estimate_apr
from yield_tracker.exceptions import PublishError, TokenNotFoundError
from yield_tracker.models import Snapshot, TokenDescriptor
from yield_tracker.price_sources import PriceSourceAdapter
from yield_tracker.publisher import SupabasePublisher
from yield_tracker.store import SnapshotStore, append_snapshot

logger = logging.getLogger(__name__)

EXPORT_HORIZONS = ["24h", "7d", "30d"]


class CycleReport(TypedDict):
    timestamp: int
    recorded: List[str]
    skipped: List[str]
    failed: List[str]
    published_url: Optional[str]
    publish_error: Optional[str]


def now_ms() -> int:
    return int(time.time() * 1000)


def iso_date(timestamp_ms: int) -> str:
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def run_snapshot_cycle(
    tokens: List[TokenDescriptor],
    store: SnapshotStore,
    price_source: PriceSourceAdapter,
    settings: TrackerSettings,
    publisher: Optional[SupabasePublisher] = None,
    timestamp: Optional[int] = None,
) -> CycleReport:
    """
    Take one snapshot of every configured token and persist the result.

    Tokens are processed in configured order. A failing token is logged and
    skipped; storage errors propagate to the caller.
    """
    timestamp = timestamp if timestamp is not None else now_ms()
    logger.info(f"Taking snapshot at {iso_date(timestamp)}")

    data = store.load()
    report: CycleReport = {
        "timestamp": timestamp,
        "recorded": [],
        "skipped": [],
        "failed": [],
        "published_url": None,
        "publish_error": None,
    }

    for token in tokens:
        if not token.is_resolved:
            logger.info(f"{token.symbol}: address TBD, skipping")
            report["skipped"].append(token.id)
            continue

        try:
            price = price_source.fetch_price(token)
            if price is None:
                report["failed"].append(token.id)
                continue

            series = data["tokens"].get(token.id)
            history = series["snapshots"] if series else []
            estimate = estimate_apr(
                history,
                price,
                timestamp,
                horizons=settings.horizons,
                coverage_floor=settings.coverage_floor,
            )
            snapshot: Snapshot = {"timestamp": timestamp, "price": price, **estimate}
            append_snapshot(data, token, snapshot, settings.retention_cap)
        except Exception as e:
            logger.error(f"{token.symbol}: failed to record snapshot: {e}", exc_info=True)
            report["failed"].append(token.id)
            continue

        apr_24h = estimate.get(apr_key("24h"))
        apr_text = f"{apr_24h:.2f}%" if apr_24h is not None else "N/A"
        logger.info(f"{token.symbol}: {price:.8f} (APR 24h: {apr_text})")
        report["recorded"].append(token.id)

    data["lastUpdate"] = timestamp
    store.save(data)

    if publisher is not None:
        try:
            report["published_url"] = publisher.publish(data)
        except PublishError as e:
            logger.error(str(e))
            report["publish_error"] = str(e)

    logger.info(
        f"Snapshot cycle done: {len(report['recorded'])} recorded, "
        f"{len(report['skipped'])} skipped, {len(report['failed'])} failed"
    )
    return report


def query_history(
    store: SnapshotStore,
    token_id: str,
    hours: float = 24,
    timestamp: Optional[int] = None,
) -> Dict[str, Any]:
    """Series metadata plus the snapshots taken within the last `hours`."""
    data = store.load()
    series = data["tokens"].get(token_id)
    if series is None:
        raise TokenNotFoundError(token_id, data["tokens"].keys())

    timestamp = timestamp if timestamp is not None else now_ms()
    cutoff = timestamp - hours * MS_PER_HOUR
    return {
        "token": token_id,
        "symbol": series["symbol"],
        "name": series["name"],
        "chain": series["chain"],
        "protocol": series["protocol"],
        "snapshots": [s for s in series["snapshots"] if s["timestamp"] >= cutoff],
    }


def format_history(history: Dict[str, Any], hours: float) -> str:
    lines = [
        f"{history['name']} ({history['symbol']})",
        f"Protocol: {history['protocol']} | Chain: {history['chain']}",
        f"Last {hours:g}h snapshots:",
    ]
    for snap in history["snapshots"]:
        apr = snap.get(apr_key("24h"))
        apr_text = f"{apr:.2f}%" if apr is not None else "N/A"
        lines.append(
            f"  {iso_date(snap['timestamp'])} | Price: {snap['price']:.8f} | APR 24h: {apr_text}"
        )
    if not history["snapshots"]:
        lines.append("  (no snapshots)")
    return "\n".join(lines)


def export_csv(store: SnapshotStore, token_id: str, out_path: str) -> int:
    """
    Write the full retained history of a token as CSV.

    Returns:
        int: Number of rows written.
    """
    data = store.load()
    series = data["tokens"].get(token_id)
    if series is None:
        raise TokenNotFoundError(token_id, data["tokens"].keys())

    out_dir = os.path.dirname(os.path.abspath(out_path))
    os.makedirs(out_dir, exist_ok=True)

    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(
            ["timestamp", "date", "price"] + [f"apr_{label}" for label in EXPORT_HORIZONS]
        )
        for snap in series["snapshots"]:
            aprs = [snap.get(apr_key(label)) for label in EXPORT_HORIZONS]
            writer.writerow(
                [snap["timestamp"], iso_date(snap["timestamp"]), snap["price"]]
                + ["" if apr is None else apr for apr in aprs]
            )

    logger.info(f"Exported {len(series['snapshots'])} snapshots of {token_id} to {out_path}")
    return len(series["snapshots"])
