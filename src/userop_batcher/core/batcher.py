"""
Main Batcher orchestrator.

Runs one pass over the queue: select, price, submit, persist.
"""

import json
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from userop_batcher.config import BatcherConfig, get_config
from userop_batcher.core.operation import QueueEntry, UserOperation
from userop_batcher.core.policy import Policy
from userop_batcher.engine.fees import FeeEstimator, backfill_fees, needs_fee_backfill
from userop_batcher.engine.selector import DroppedEntry, SelectionResult, select
from userop_batcher.engine.submitter import SubmissionPipeline
from userop_batcher.relay.interface import RelayInterface
from userop_batcher.relay.jsonrpc import JsonRpcRelay
from userop_batcher.state.queue_store import MalformedEntry, QueueStore
from userop_batcher.state.rate_windows import RateWindowStore

logger = structlog.get_logger(__name__)


class RunStatus(str, Enum):
    """How a run ended."""
    EMPTY = "empty"                        # Queue had no entries
    NOTHING_SELECTED = "nothing_selected"  # Everything retained or dropped
    DRY_RUN = "dry_run"                    # Selected and priced, not sent
    SENT = "sent"                          # Bundle accepted, queue updated


@dataclass
class RunOutcome:
    """Result of a completed run."""

    status: RunStatus
    selected: List[UserOperation] = field(default_factory=list)
    retained: List[QueueEntry] = field(default_factory=list)
    dropped: List[DroppedEntry] = field(default_factory=list)
    malformed: List[MalformedEntry] = field(default_factory=list)
    receipt: Any = None
    attempts: int = 0

    @property
    def sent_count(self) -> int:
        return len(self.selected) if self.status == RunStatus.SENT else 0

    def to_dict(self) -> dict:
        """Convert to dictionary for reporting."""
        return {
            "status": self.status.value,
            "selected": len(self.selected),
            "retained": len(self.retained),
            "dropped": len(self.dropped),
            "malformed": len(self.malformed),
            "receipt": self.receipt,
            "attempts": self.attempts,
        }


def _fingerprint(item: Any) -> str:
    return json.dumps(item, sort_keys=True)


class Batcher:
    """
    Main batcher orchestrator.

    Coordinates one run:
    - Queue loading
    - Rate window lookup and selection
    - Fee backfill
    - Bundle submission with retries
    - Atomic queue update and rate window recording

    Usage:
        ```python
        batcher = Batcher(config)
        outcome = await batcher.run()
        ```
    """

    def __init__(
        self,
        config: Optional[BatcherConfig] = None,
        relay: Optional[RelayInterface] = None,
        queue_store: Optional[QueueStore] = None,
        rate_store: Optional[RateWindowStore] = None,
        policy: Optional[Policy] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the batcher.

        Args:
            config: Batcher configuration
            relay: Custom relay interface (JSON-RPC relay if not provided)
            queue_store: Custom queue store (config.queue_path if not provided)
            rate_store: Custom rate window store (config.database_url if not provided)
            policy: Admission policy (built from config if not provided)
            sleep: Coroutine used for backoff waits
            clock: Returns the current unix time
        """
        self.config = config or get_config()
        self.relay = relay or JsonRpcRelay(self.config)
        self.queue_store = queue_store or QueueStore(self.config.queue_path)
        self.rate_store = rate_store or RateWindowStore(self.config)
        self.policy = policy or self.config.policy()
        self.fee_estimator = FeeEstimator(self.relay)
        self.pipeline = SubmissionPipeline(
            relay=self.relay,
            entrypoint=self.config.entrypoint,
            max_attempts=self.config.max_attempts,
            backoff_cap_seconds=self.config.backoff_cap_seconds,
            sleep=sleep,
        )
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def run(self) -> RunOutcome:
        """
        Process the queue once.

        Returns:
            RunOutcome describing what happened

        Raises:
            QueueStoreError: If the queue file is unusable
            EstimationError: If fees were needed but could not be estimated
            ExhaustedRetriesError: If the bundle could not be sent
        """
        snapshot = self.queue_store.load_raw()
        entries, malformed = self.queue_store.parse_lenient(snapshot)

        for bad in malformed:
            session = bad.item.get("session") if isinstance(bad.item, dict) else None
            logger.warning(
                "entry_dropped",
                session=session,
                index=bad.index,
                reasons=[bad.reason],
            )

        if not entries:
            if malformed:
                if not self.config.dry_run:
                    self.queue_store.save_raw([])
                logger.info("nothing_selected", dropped=len(malformed), retained=0)
                return RunOutcome(status=RunStatus.NOTHING_SELECTED, malformed=malformed)
            logger.info("queue_empty")
            return RunOutcome(status=RunStatus.EMPTY)

        logger.info("run_started", queue_size=len(entries), dry_run=self.config.dry_run)

        await self.rate_store.connect()
        try:
            return await self._process(snapshot, entries, malformed)
        finally:
            await self.rate_store.disconnect()
            await self.relay.disconnect()

    async def _process(
        self,
        snapshot: List[Any],
        entries: List[QueueEntry],
        malformed: List[MalformedEntry],
    ) -> RunOutcome:
        now = self._now()
        sent_counts = await self.rate_store.get_sent_counts(
            {entry.target_key for entry in entries}, now
        )

        selection = select(
            entries,
            policy=self.policy,
            sent_counts=sent_counts,
            max_per_target=self.config.max_per_target_per_window,
        )

        if selection.is_empty:
            return self._finish_without_sending(selection, malformed)

        ops = selection.operations
        if needs_fee_backfill(ops):
            estimate = await self.fee_estimator.estimate()
            ops = backfill_fees(ops, estimate)

        if self.config.dry_run:
            logger.info("dry_run", would_send=len(ops))
            return RunOutcome(
                status=RunStatus.DRY_RUN,
                selected=ops,
                retained=selection.retained,
                dropped=selection.dropped,
                malformed=malformed,
            )

        result = await self.pipeline.submit(ops)

        self._commit(snapshot, selection.retained)
        try:
            await self.rate_store.record_sent(selection.sent_per_target(), self._now())
        except SQLAlchemyError as e:
            # The bundle is out and the queue committed; only the window count is lost
            logger.error(
                "rate_window_record_failed",
                error=str(e),
                sent=selection.sent_per_target(),
            )

        return RunOutcome(
            status=RunStatus.SENT,
            selected=ops,
            retained=selection.retained,
            dropped=selection.dropped,
            malformed=malformed,
            receipt=result.receipt,
            attempts=result.attempts,
        )

    def _finish_without_sending(
        self,
        selection: SelectionResult,
        malformed: List[MalformedEntry],
    ) -> RunOutcome:
        """Handle a run where nothing was admitted for sending."""
        if (selection.dropped or malformed) and not self.config.dry_run:
            # Dropped entries are terminal and leave the store even without a send
            self.queue_store.save(selection.retained)
            logger.info(
                "nothing_selected",
                dropped=selection.dropped_count + len(malformed),
                retained=len(selection.retained),
            )
        else:
            logger.info("nothing_selected", queue_unchanged=True)

        return RunOutcome(
            status=RunStatus.NOTHING_SELECTED,
            retained=selection.retained,
            dropped=selection.dropped,
            malformed=malformed,
        )

    def _commit(self, snapshot: List[Any], retained: List[QueueEntry]) -> None:
        """
        Persist the queue after a successful send.

        Entries enqueued while the bundle was in flight are appended after
        the retained ones.
        """
        remaining = Counter(_fingerprint(item) for item in snapshot)
        arrivals = []
        for item in self.queue_store.load_raw():
            key = _fingerprint(item)
            if remaining[key] > 0:
                remaining[key] -= 1
            else:
                arrivals.append(item)

        if arrivals:
            logger.info("queue_arrivals_during_send", count=len(arrivals))

        self.queue_store.save_raw([entry.to_dict() for entry in retained] + arrivals)
        logger.info("queue_committed", size=len(retained) + len(arrivals))
