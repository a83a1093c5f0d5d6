"""
State management module.

Handles the durable queue file and per-target rate windows.
"""

from userop_batcher.state.queue_store import MalformedEntry, QueueStore, QueueStoreError
from userop_batcher.state.rate_windows import RateWindow, RateWindowStore

__all__ = [
    "MalformedEntry",
    "QueueStore",
    "QueueStoreError",
    "RateWindow",
    "RateWindowStore",
]
