"""
Fee Estimator - fills in fee fields that were left at zero.

Derives a fee cap and a tip from the relay's current gas price:
max fee = 2 * base, priority fee = base // 10.
"""

from dataclasses import dataclass
from typing import List, Sequence

import structlog

from userop_batcher.core.operation import UserOperation
from userop_batcher.relay.interface import RelayError, RelayInterface

logger = structlog.get_logger(__name__)

MAX_FEE_MULTIPLIER = 2
PRIORITY_FEE_DIVISOR = 10


class EstimationError(Exception):
    """Raised when current fees cannot be determined."""
    pass


@dataclass(frozen=True)
class FeeEstimate:
    """Fees derived from one gas price reading."""

    base_fee: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    @classmethod
    def from_base_fee(cls, base_fee: int) -> "FeeEstimate":
        return cls(
            base_fee=base_fee,
            max_fee_per_gas=base_fee * MAX_FEE_MULTIPLIER,
            max_priority_fee_per_gas=base_fee // PRIORITY_FEE_DIVISOR,
        )


class FeeEstimator:
    """Queries the relay for the current gas price."""

    def __init__(self, relay: RelayInterface):
        self.relay = relay

    async def estimate(self) -> FeeEstimate:
        """
        Estimate fees from the relay's gas price.

        Raises:
            EstimationError: If the relay call fails or returns a bad value
        """
        try:
            base_fee = await self.relay.get_gas_price()
        except RelayError as e:
            logger.error("fee_estimation_failed", error=str(e))
            raise EstimationError(f"Gas price query failed: {e}")

        if isinstance(base_fee, bool) or not isinstance(base_fee, int) or base_fee < 0:
            raise EstimationError(f"Gas price is not a non-negative integer: {base_fee!r}")

        estimate = FeeEstimate.from_base_fee(base_fee)
        logger.info(
            "fees_estimated",
            base_fee=base_fee,
            max_fee_per_gas=estimate.max_fee_per_gas,
            max_priority_fee_per_gas=estimate.max_priority_fee_per_gas,
        )
        return estimate


def needs_fee_backfill(ops: Sequence[UserOperation]) -> bool:
    """Check whether any operation has an unset fee field."""
    return any(op.has_unset_fees for op in ops)


def backfill_fees(ops: Sequence[UserOperation], estimate: FeeEstimate) -> List[UserOperation]:
    """
    Fill zero fee fields from an estimate.

    Fields that are already set are never changed. The inputs are not
    modified; copies are returned.
    """
    filled = []
    for op in ops:
        if op.has_unset_fees:
            op = op.with_fees(
                max_fee_per_gas=estimate.max_fee_per_gas if op.max_fee_per_gas == 0 else None,
                max_priority_fee_per_gas=(
                    estimate.max_priority_fee_per_gas
                    if op.max_priority_fee_per_gas == 0 else None
                ),
            )
        filled.append(op)
    return filled
