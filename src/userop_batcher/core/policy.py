"""
Admission policy for queued operations.

A small, fixed set of numeric and structural checks. The policy is an
explicit value handed to the validator on every call.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List

from userop_batcher.core.operation import UserOperation

WEI_PER_GWEI = 10**9


@dataclass(frozen=True)
class Policy:
    """
    Per-run admission policy.

    Attributes:
        blocked_targets: Lowercased target addresses that are held back
        max_call_gas: Highest callGasLimit accepted
        max_fee_per_gas: Highest maxFeePerGas accepted, in wei
        max_priority_fee_per_gas: Highest maxPriorityFeePerGas accepted, in wei
    """

    blocked_targets: FrozenSet[str] = field(default_factory=frozenset)
    max_call_gas: int = 6_000_000
    max_fee_per_gas: int = 200 * WEI_PER_GWEI
    max_priority_fee_per_gas: int = 20 * WEI_PER_GWEI

    def __post_init__(self):
        """Normalize blocked targets to lowercase."""
        object.__setattr__(
            self,
            "blocked_targets",
            frozenset(t.lower() for t in self.blocked_targets),
        )

    @classmethod
    def from_gwei(
        cls,
        blocked_targets: Iterable[str] = (),
        max_call_gas: int = 6_000_000,
        max_fee_gwei: int = 200,
        max_priority_gwei: int = 20,
    ) -> "Policy":
        """Build a policy with fee ceilings given in gwei."""
        return cls(
            blocked_targets=frozenset(blocked_targets),
            max_call_gas=max_call_gas,
            max_fee_per_gas=max_fee_gwei * WEI_PER_GWEI,
            max_priority_fee_per_gas=max_priority_gwei * WEI_PER_GWEI,
        )

    def is_blocked(self, target: str) -> bool:
        return target.lower() in self.blocked_targets


def validate(op: UserOperation, policy: Policy) -> List[str]:
    """
    Check an operation against the policy.

    Every check runs; the result lists one reason per violation.

    Args:
        op: Operation to check
        policy: Policy in force for this run

    Returns:
        Violation reasons (empty if the operation is admitted)
    """
    errors: List[str] = []

    if op.call_gas_limit > policy.max_call_gas:
        errors.append(
            f"callGasLimit too high: {op.call_gas_limit} > {policy.max_call_gas}"
        )

    if op.max_fee_per_gas > policy.max_fee_per_gas:
        errors.append(
            f"maxFeePerGas too high: {op.max_fee_per_gas} > {policy.max_fee_per_gas}"
        )

    if op.max_priority_fee_per_gas > policy.max_priority_fee_per_gas:
        errors.append(
            "maxPriorityFeePerGas too high: "
            f"{op.max_priority_fee_per_gas} > {policy.max_priority_fee_per_gas}"
        )

    if op.has_init_code and not op.has_signature:
        errors.append("initCode present but signature empty (likely invalid)")

    return errors
