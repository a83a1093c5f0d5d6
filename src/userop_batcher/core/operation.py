"""
UserOperation and queue entry models.

Numeric fields are held as Python integers from the moment they are read;
hex strings only exist at the store and relay boundaries.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional


class InvalidOperationError(ValueError):
    """Raised when a queued operation cannot be parsed."""


# Wire name -> attribute name
NUMERIC_FIELDS = {
    "nonce": "nonce",
    "callGasLimit": "call_gas_limit",
    "verificationGasLimit": "verification_gas_limit",
    "preVerificationGas": "pre_verification_gas",
    "maxFeePerGas": "max_fee_per_gas",
    "maxPriorityFeePerGas": "max_priority_fee_per_gas",
}

BYTES_FIELDS = {
    "sender": "sender",
    "initCode": "init_code",
    "callData": "call_data",
    "paymasterAndData": "paymaster_and_data",
    "signature": "signature",
}

OPTIONAL_BYTES_FIELDS = ("initCode", "paymasterAndData", "signature")


def parse_uint(name: str, value: Any) -> int:
    """
    Parse an unsigned integer field.

    Accepts ints, 0x-prefixed hex strings and decimal strings.

    Raises:
        InvalidOperationError: If the value is not a non-negative integer
    """
    if isinstance(value, bool):
        raise InvalidOperationError(f"{name} must be an integer, got bool")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text[:2].lower() == "0x":
                result = int(text, 16)
            else:
                result = int(text, 10)
        except ValueError:
            raise InvalidOperationError(f"{name} is not numeric: {value!r}")
    else:
        raise InvalidOperationError(f"{name} must be a string or integer, got {type(value).__name__}")

    if result < 0:
        raise InvalidOperationError(f"{name} must be non-negative: {value!r}")
    return result


def parse_bytes(name: str, value: Any) -> str:
    """Normalize a hex payload, mapping an empty value to "0x"."""
    if value is None or value == "":
        return "0x"
    if not isinstance(value, str) or value[:2].lower() != "0x":
        raise InvalidOperationError(f"{name} must be a 0x-prefixed hex string: {value!r}")
    return value


def to_hex(value: int) -> str:
    return hex(value)


@dataclass(frozen=True)
class UserOperation:
    """
    An already-signed ERC-4337 user operation.

    Attributes:
        sender: Smart account address
        nonce: Account nonce
        init_code: Account creation payload ("0x" when the account exists)
        call_data: Call executed by the account
        call_gas_limit: Gas for the main call
        verification_gas_limit: Gas for the verification step
        pre_verification_gas: Gas paid to the bundler up front
        max_fee_per_gas: Fee cap in wei (0 means "fill in for me")
        max_priority_fee_per_gas: Tip cap in wei (0 means "fill in for me")
        paymaster_and_data: Sponsor payload ("0x" when self-paid)
        signature: Account signature
    """

    sender: str
    nonce: int
    init_code: str
    call_data: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: str
    signature: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserOperation":
        """
        Create a UserOperation from its JSON (camelCase) form.

        Raises:
            InvalidOperationError: If a field is missing or malformed
        """
        if not isinstance(data, dict):
            raise InvalidOperationError("operation must be an object")

        kwargs: Dict[str, Any] = {}
        for wire_name, attr in NUMERIC_FIELDS.items():
            if wire_name not in data:
                raise InvalidOperationError(f"missing field {wire_name}")
            kwargs[attr] = parse_uint(wire_name, data[wire_name])

        for wire_name, attr in BYTES_FIELDS.items():
            if wire_name not in data and wire_name not in OPTIONAL_BYTES_FIELDS:
                raise InvalidOperationError(f"missing field {wire_name}")
            kwargs[attr] = parse_bytes(wire_name, data.get(wire_name))

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, str]:
        """Convert to the JSON (camelCase, hex) form used by the queue and the relay."""
        return {
            "sender": self.sender,
            "nonce": to_hex(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "callGasLimit": to_hex(self.call_gas_limit),
            "verificationGasLimit": to_hex(self.verification_gas_limit),
            "preVerificationGas": to_hex(self.pre_verification_gas),
            "maxFeePerGas": to_hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": to_hex(self.max_priority_fee_per_gas),
            "paymasterAndData": self.paymaster_and_data,
            "signature": self.signature,
        }

    @property
    def has_init_code(self) -> bool:
        return len(self.init_code) > 2

    @property
    def has_signature(self) -> bool:
        return len(self.signature) > 2

    @property
    def has_unset_fees(self) -> bool:
        """True when either fee field is zero and needs a backfill."""
        return self.max_fee_per_gas == 0 or self.max_priority_fee_per_gas == 0

    def with_fees(
        self,
        max_fee_per_gas: Optional[int] = None,
        max_priority_fee_per_gas: Optional[int] = None,
    ) -> "UserOperation":
        """Return a copy with the given fee fields replaced."""
        changes = {}
        if max_fee_per_gas is not None:
            changes["max_fee_per_gas"] = max_fee_per_gas
        if max_priority_fee_per_gas is not None:
            changes["max_priority_fee_per_gas"] = max_priority_fee_per_gas
        return replace(self, **changes)


@dataclass(frozen=True)
class QueueEntry:
    """
    A queued operation together with its routing metadata.

    Entries have no ID of their own; two entries with the same session are
    still distinct items in the queue.

    Attributes:
        op: The signed user operation
        target: Contract the operation calls, used for rate limiting
        session: Human-readable session identifier (diagnostics only)
        created_at: Enqueue time in unix seconds
    """

    op: UserOperation
    target: str
    session: str
    created_at: int

    @property
    def target_key(self) -> str:
        """Target address normalized for case-insensitive comparison."""
        return self.target.lower()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueEntry":
        """
        Create a QueueEntry from its JSON form.

        Raises:
            InvalidOperationError: If the entry or its operation is malformed
        """
        if not isinstance(data, dict):
            raise InvalidOperationError("queue entry must be an object")

        target = data.get("target")
        if not isinstance(target, str) or not target:
            raise InvalidOperationError("queue entry has no target")

        return cls(
            op=UserOperation.from_dict(data.get("op")),
            target=target,
            session=str(data.get("session", "")),
            created_at=parse_uint("createdAt", data.get("createdAt", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON form stored in the queue file."""
        return {
            "op": self.op.to_dict(),
            "target": self.target,
            "session": self.session,
            "createdAt": self.created_at,
        }

    def __repr__(self) -> str:
        return f"QueueEntry(session={self.session}, target={self.target}, sender={self.op.sender})"
