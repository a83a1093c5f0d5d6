"""
UserOperation Batcher

Drains a durable queue of signed ERC-4337 user operations, applies admission
policy and per-target rate limits, backfills unset fees, and submits the
admitted operations to a relay as a single bundle.
"""

__version__ = "0.1.0"

from userop_batcher.core.operation import QueueEntry, UserOperation
from userop_batcher.core.policy import Policy, validate
from userop_batcher.core.batcher import Batcher, RunOutcome, RunStatus

__all__ = [
    "Batcher",
    "RunOutcome",
    "RunStatus",
    "QueueEntry",
    "UserOperation",
    "Policy",
    "validate",
]
