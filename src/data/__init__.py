"""
Data inputs: evaluation snapshots and replay signal files (JSON), normalized to UTC.
"""

from data.snapshot import SnapshotError, load_signals, load_snapshot

__all__ = ["SnapshotError", "load_signals", "load_snapshot"]
