"""
Abstract interface for relay (bundler) integration.

Defines the contract for the two remote calls the batcher needs.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from userop_batcher.core.operation import UserOperation


class RelayInterface(ABC):
    """
    Abstract interface for relay access.

    This interface defines the relay operations needed by the batcher:
    - Current gas price query
    - Bundle submission
    """

    async def connect(self) -> None:
        """Open any underlying connection."""

    async def disconnect(self) -> None:
        """Close any underlying connection."""

    @abstractmethod
    async def get_gas_price(self) -> int:
        """
        Get the current base fee.

        Returns:
            Base fee in wei

        Raises:
            RelayError: If the query fails
        """
        pass

    @abstractmethod
    async def send_bundle(self, ops: List[UserOperation], entrypoint: str) -> Any:
        """
        Submit operations as one bundle.

        Args:
            ops: Operations in submission order
            entrypoint: EntryPoint contract address

        Returns:
            Opaque receipt returned by the relay

        Raises:
            RelayError: If the relay rejects the bundle or cannot be reached
        """
        pass


class RelayError(Exception):
    """Base class for relay failures."""
    pass


class RelayConnectionError(RelayError):
    """Raised when the relay cannot be reached."""
    pass


class RelayHTTPError(RelayError):
    """Raised when the relay answers with a non-success HTTP status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class RelayRPCError(RelayError):
    """Raised when the relay answers with a JSON-RPC error object."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class RelayResponseError(RelayError):
    """Raised when the relay response cannot be interpreted."""
    pass
