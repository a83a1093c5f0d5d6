"""
Core models.

User operations, queue entries and the admission policy.
"""

from userop_batcher.core.operation import InvalidOperationError, QueueEntry, UserOperation
from userop_batcher.core.policy import Policy, validate

__all__ = [
    "InvalidOperationError",
    "QueueEntry",
    "UserOperation",
    "Policy",
    "validate",
]
