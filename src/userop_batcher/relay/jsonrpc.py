"""
JSON-RPC relay adapter.

Talks to a bundler over HTTP using JSON-RPC 2.0.
"""

import itertools
from typing import Any, List, Optional

import httpx
import structlog

from userop_batcher.config import BatcherConfig, get_config
from userop_batcher.core.operation import UserOperation, parse_uint, InvalidOperationError
from userop_batcher.relay.interface import (
    RelayInterface,
    RelayConnectionError,
    RelayHTTPError,
    RelayRPCError,
    RelayResponseError,
)

logger = structlog.get_logger(__name__)

GAS_PRICE_METHOD = "eth_gasPrice"
SEND_BUNDLE_METHOD = "eth_sendUserOperationBundle"


class JsonRpcRelay(RelayInterface):
    """
    JSON-RPC relay adapter.

    Implements the RelayInterface with httpx.
    """

    def __init__(
        self,
        config: Optional[BatcherConfig] = None,
        url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the relay adapter.

        Args:
            config: Batcher configuration. Uses global config if not provided.
            url: Relay endpoint, overrides config.relay_url
            transport: Custom httpx transport (used by tests)
        """
        self.config = config or get_config()
        self.url = url or self.config.relay_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=self.config.relay_timeout_seconds,
            transport=self._transport,
        )
        logger.debug("relay_client_created", url=self.url)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("relay_client_closed")

    async def _call(self, method: str, params: list) -> Any:
        """Make a JSON-RPC call and return its result."""
        if not self._client:
            await self.connect()

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("relay_request_error", method=method, error=str(e))
            raise RelayConnectionError(f"RPC {method} failed: {e}")

        if not response.is_success:
            logger.warning(
                "relay_request_failed",
                method=method,
                status=response.status_code,
            )
            raise RelayHTTPError(
                f"RPC {method} failed: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise RelayResponseError(f"RPC {method} returned a non-JSON body")

        if not isinstance(body, dict):
            raise RelayResponseError(f"RPC {method} returned an unexpected body")

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                raise RelayRPCError(
                    f"RPC error: {error.get('message', error)}",
                    code=error.get("code"),
                    data=error.get("data"),
                )
            raise RelayRPCError(f"RPC error: {error}")

        if "result" not in body:
            raise RelayResponseError(f"RPC {method} returned no result")

        return body["result"]

    async def get_gas_price(self) -> int:
        """Query the current base fee."""
        result = await self._call(GAS_PRICE_METHOD, [])
        try:
            return parse_uint(GAS_PRICE_METHOD, result)
        except InvalidOperationError as e:
            raise RelayResponseError(str(e))

    async def send_bundle(self, ops: List[UserOperation], entrypoint: str) -> Any:
        """Submit a bundle of operations."""
        params = [[op.to_dict() for op in ops], entrypoint]
        result = await self._call(SEND_BUNDLE_METHOD, params)
        logger.debug("relay_bundle_accepted", size=len(ops), result=result)
        return result
