"""
Batch Selector - decides which queued operations go into this run's bundle.

Groups entries by target, applies the per-target rate limit and the
admission policy, and partitions the queue into selected, retained and
dropped entries.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

import structlog

from userop_batcher.core.operation import QueueEntry, UserOperation
from userop_batcher.core.policy import Policy, validate

logger = structlog.get_logger(__name__)


@dataclass
class DroppedEntry:
    """An entry removed for good because it failed validation."""

    entry: QueueEntry
    reasons: List[str]


@dataclass
class SelectionResult:
    """
    Result of a selection pass.

    Every input entry ends up in exactly one of the three lists.

    Attributes:
        selected: Entries admitted for this bundle, FIFO within each target
        retained: Entries kept in the queue (rate-limited or blocked target)
        dropped: Entries removed because they failed validation
    """

    selected: List[QueueEntry] = field(default_factory=list)
    retained: List[QueueEntry] = field(default_factory=list)
    dropped: List[DroppedEntry] = field(default_factory=list)

    @property
    def operations(self) -> List[UserOperation]:
        """Operations to send, in bundle order."""
        return [entry.op for entry in self.selected]

    @property
    def dropped_count(self) -> int:
        return len(self.dropped)

    @property
    def is_empty(self) -> bool:
        return not self.selected

    def sent_per_target(self) -> Dict[str, int]:
        """Number of selected entries per lowercased target."""
        counts: Dict[str, int] = {}
        for entry in self.selected:
            counts[entry.target_key] = counts.get(entry.target_key, 0) + 1
        return counts


def group_by_target(entries: Sequence[QueueEntry]) -> Dict[str, List[QueueEntry]]:
    """Group entries by lowercased target, keeping queue order within groups."""
    groups: Dict[str, List[QueueEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.target_key, []).append(entry)
    return groups


def select(
    entries: Sequence[QueueEntry],
    policy: Policy,
    sent_counts: Mapping[str, int],
    max_per_target: int,
) -> SelectionResult:
    """
    Partition queue entries for one run.

    Args:
        entries: Queue contents in enqueue order
        policy: Admission policy for this run
        sent_counts: Operations already sent per lowercased target in the
            current rate window
        max_per_target: Admission cap per target per window

    Returns:
        SelectionResult partitioning all entries
    """
    result = SelectionResult()
    retained_ids = set()

    for target, items in group_by_target(entries).items():
        already_sent = sent_counts.get(target, 0)
        allowed = max(0, max_per_target - already_sent)
        candidates = items[:allowed]
        limited = items[allowed:]

        if limited:
            logger.info(
                "target_rate_limited",
                target=target,
                allowed=allowed,
                held=len(limited),
            )

        for entry in candidates:
            if policy.is_blocked(target):
                logger.warning("target_blocked", target=target, session=entry.session)
                retained_ids.add(id(entry))
                continue

            errors = validate(entry.op, policy)
            if errors:
                logger.warning(
                    "entry_dropped",
                    session=entry.session,
                    target=target,
                    reasons="; ".join(errors),
                )
                result.dropped.append(DroppedEntry(entry=entry, reasons=errors))
                continue

            result.selected.append(entry)

        retained_ids.update(id(entry) for entry in limited)

    # Retained entries keep their original queue order
    result.retained = [entry for entry in entries if id(entry) in retained_ids]

    logger.info(
        "selection_complete",
        selected=len(result.selected),
        retained=len(result.retained),
        dropped=result.dropped_count,
    )
    return result
