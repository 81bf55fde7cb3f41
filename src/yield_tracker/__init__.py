"""
Yield tracker.
Snapshots share prices of yield-bearing tokens and derives trailing APR.
"""

__version__ = "0.1.0"

from .estimator import estimate_apr, find_anchor
from .store import SnapshotStore, append_snapshot
from .indexer import run_snapshot_cycle, query_history, export_csv
from .queries import single_token_view, summary_view
