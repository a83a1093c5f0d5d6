"""
Pytest configuration and shared fixtures for the test suite.
"""

import json
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest

from userop_batcher.config import BatcherConfig
from userop_batcher.core.operation import QueueEntry, UserOperation
from userop_batcher.relay.interface import RelayError, RelayInterface
from userop_batcher.state.queue_store import QueueStore
from userop_batcher.state.rate_windows import RateWindowStore


TARGET_A = "0xAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAa"
TARGET_B = "0xBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBbBb"
ENTRYPOINT = "0x0576a174D229E3cFA37253523E645A78A0C91B57"
GWEI = 10**9


# ============================================================================
# Test Data Generators
# ============================================================================

def make_op_dict(index: int = 0, **overrides) -> dict:
    """Generate the JSON form of a valid, signed operation."""
    data = {
        "sender": f"0x{index:040x}",
        "nonce": hex(index),
        "initCode": "0x",
        "callData": "0xdeadbeef",
        "callGasLimit": hex(100_000),
        "verificationGasLimit": hex(150_000),
        "preVerificationGas": hex(50_000),
        "maxFeePerGas": hex(30 * GWEI),
        "maxPriorityFeePerGas": hex(2 * GWEI),
        "paymasterAndData": "0x",
        "signature": "0x" + "ab" * 65,
    }
    data.update(overrides)
    return data


def make_op(index: int = 0, **overrides) -> UserOperation:
    """Generate a valid, signed operation."""
    return UserOperation.from_dict(make_op_dict(index, **overrides))


def make_entry_dict(
    index: int = 0,
    target: str = TARGET_A,
    session: Optional[str] = None,
    **op_overrides,
) -> dict:
    """Generate the JSON form of a queue entry."""
    return {
        "op": make_op_dict(index, **op_overrides),
        "target": target,
        "session": session or f"session-{index}",
        "createdAt": 1_700_000_000 + index,
    }


def make_entry(index: int = 0, target: str = TARGET_A, **kwargs) -> QueueEntry:
    """Generate a queue entry."""
    return QueueEntry.from_dict(make_entry_dict(index, target=target, **kwargs))


def write_queue(path: Path, items: List[Any]) -> None:
    """Write raw queue items to disk."""
    path.write_text(json.dumps(items, indent=2), encoding="utf-8")


# ============================================================================
# Mock Relay
# ============================================================================

class MockRelay(RelayInterface):
    """Mock relay for testing."""

    def __init__(
        self,
        gas_price: Any = 10 * GWEI,
        send_results: Optional[List[Any]] = None,
    ):
        """
        Args:
            gas_price: Value (or exception) returned by get_gas_price
            send_results: One item per send attempt; exceptions are raised,
                anything else is returned. Defaults to always succeeding.
        """
        self.gas_price = gas_price
        self.send_results = list(send_results or [])
        self.gas_price_calls = 0
        self.sent_bundles: List[tuple] = []
        self.on_send: Optional[Callable[[], None]] = None
        self.disconnected = False

    async def disconnect(self) -> None:
        self.disconnected = True

    async def get_gas_price(self) -> int:
        self.gas_price_calls += 1
        if isinstance(self.gas_price, Exception):
            raise self.gas_price
        return self.gas_price

    async def send_bundle(self, ops: List[UserOperation], entrypoint: str) -> Any:
        self.sent_bundles.append((list(ops), entrypoint))
        if self.on_send:
            self.on_send()
        result = self.send_results.pop(0) if self.send_results else "0xreceipt"
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def call_count(self) -> int:
        return self.gas_price_calls + len(self.sent_bundles)


def failures(count: int, message: str = "relay unavailable") -> List[RelayError]:
    """Generate a list of relay failures."""
    return [RelayError(f"{message} #{i + 1}") for i in range(count)]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested waits."""

    def __init__(self):
        self.waits: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def queue_path(tmp_path) -> Path:
    return tmp_path / "queue.json"


@pytest.fixture
def test_config(tmp_path, queue_path) -> BatcherConfig:
    """Create a test configuration."""
    return BatcherConfig(
        relay_url="http://relay.test",
        entrypoint=ENTRYPOINT,
        queue_path=str(queue_path),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'rate.db'}",
        max_per_target_per_window=20,
        rate_window_seconds=60,
        log_level="DEBUG",
    )


@pytest.fixture
def queue_store(queue_path) -> QueueStore:
    return QueueStore(queue_path)


@pytest.fixture
def rate_store(test_config) -> RateWindowStore:
    return RateWindowStore(test_config)


@pytest.fixture
def mock_relay() -> MockRelay:
    return MockRelay()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
