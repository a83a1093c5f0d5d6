"""
Submission Pipeline - sends a bundle with exponential backoff.

The pipeline is a small state machine:

    ATTEMPTING(n) --ok--> SUCCESS
    ATTEMPTING(n) --fail, n+1 < max--> sleep min(cap, 2**(n+1)) --> ATTEMPTING(n+1)
    ATTEMPTING(n) --fail, n+1 == max--> EXHAUSTED

Nothing else in the run makes progress while the pipeline sleeps.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import structlog

from userop_batcher.core.operation import UserOperation
from userop_batcher.relay.interface import RelayError, RelayInterface

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_CAP_SECONDS = 60


class SubmissionState(str, Enum):
    """State of the submission state machine."""
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


class TransientSubmissionError(Exception):
    """A single failed submission attempt; retried by the pipeline."""

    def __init__(self, attempt: int, cause: RelayError):
        super().__init__(f"Send failed (attempt {attempt}): {cause}")
        self.attempt = attempt
        self.cause = cause


class ExhaustedRetriesError(Exception):
    """Raised when every submission attempt failed."""

    def __init__(self, failures: List[TransientSubmissionError]):
        last = failures[-1] if failures else None
        super().__init__(
            f"Failed to send after {len(failures)} attempts: "
            f"{last.cause if last else 'no attempts made'}"
        )
        self.failures = failures

    @property
    def attempts(self) -> int:
        return len(self.failures)


@dataclass
class SubmissionResult:
    """Outcome of a successful submission."""

    receipt: Any
    attempts: int
    waits: List[float] = field(default_factory=list)


def backoff_delay(failures: int, cap: float = DEFAULT_BACKOFF_CAP_SECONDS) -> float:
    """Delay after the given number of consecutive failures."""
    return min(cap, 2 ** failures)


class SubmissionPipeline:
    """
    Sends one bundle to the relay, retrying transient failures.

    Usage:
        ```python
        pipeline = SubmissionPipeline(relay, entrypoint="0x...")
        result = await pipeline.submit(ops)
        ```
    """

    def __init__(
        self,
        relay: RelayInterface,
        entrypoint: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_cap_seconds: float = DEFAULT_BACKOFF_CAP_SECONDS,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            relay: Relay receiving the bundle
            entrypoint: EntryPoint address sent with the bundle
            max_attempts: Attempts before giving up
            backoff_cap_seconds: Upper bound for a single wait
            sleep: Coroutine used to wait between attempts
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.relay = relay
        self.entrypoint = entrypoint
        self.max_attempts = max_attempts
        self.backoff_cap_seconds = backoff_cap_seconds
        self._sleep = sleep or asyncio.sleep
        self.state = SubmissionState.ATTEMPTING

    async def submit(self, ops: Sequence[UserOperation]) -> SubmissionResult:
        """
        Submit the operations as a single bundle.

        Args:
            ops: Operations in bundle order

        Returns:
            SubmissionResult carrying the relay receipt

        Raises:
            ExhaustedRetriesError: If all attempts failed
        """
        ops = list(ops)
        failures: List[TransientSubmissionError] = []
        waits: List[float] = []
        self.state = SubmissionState.ATTEMPTING

        while self.state == SubmissionState.ATTEMPTING:
            attempt = len(failures) + 1
            try:
                receipt = await self.relay.send_bundle(ops, self.entrypoint)
            except RelayError as e:
                failure = TransientSubmissionError(attempt, e)
                failures.append(failure)

                if len(failures) >= self.max_attempts:
                    self.state = SubmissionState.EXHAUSTED
                    break

                wait = backoff_delay(len(failures), self.backoff_cap_seconds)
                logger.warning(
                    "bundle_send_failed",
                    attempt=attempt,
                    error=str(e),
                    wait_seconds=wait,
                )
                waits.append(wait)
                await self._sleep(wait)
                continue

            self.state = SubmissionState.SUCCESS
            logger.info("bundle_sent", size=len(ops), attempts=attempt, receipt=receipt)
            return SubmissionResult(receipt=receipt, attempts=attempt, waits=waits)

        logger.error("bundle_send_exhausted", attempts=len(failures), size=len(ops))
        raise ExhaustedRetriesError(failures)
