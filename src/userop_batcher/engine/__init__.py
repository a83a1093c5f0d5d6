"""
Batching engine.

Selection, fee estimation and bundle submission.
"""

from userop_batcher.engine.selector import DroppedEntry, SelectionResult, select
from userop_batcher.engine.fees import (
    EstimationError,
    FeeEstimate,
    FeeEstimator,
    backfill_fees,
    needs_fee_backfill,
)
from userop_batcher.engine.submitter import (
    ExhaustedRetriesError,
    SubmissionPipeline,
    SubmissionResult,
    SubmissionState,
    TransientSubmissionError,
)

__all__ = [
    "DroppedEntry",
    "SelectionResult",
    "select",
    "EstimationError",
    "FeeEstimate",
    "FeeEstimator",
    "backfill_fees",
    "needs_fee_backfill",
    "ExhaustedRetriesError",
    "SubmissionPipeline",
    "SubmissionResult",
    "SubmissionState",
    "TransientSubmissionError",
]
