"""
Relay Integration Layer.

Provides abstracted access to the bundler that receives user operation bundles.
"""

from userop_batcher.relay.interface import (
    RelayInterface,
    RelayError,
    RelayConnectionError,
    RelayHTTPError,
    RelayRPCError,
    RelayResponseError,
)
from userop_batcher.relay.jsonrpc import JsonRpcRelay

__all__ = [
    "RelayInterface",
    "RelayError",
    "RelayConnectionError",
    "RelayHTTPError",
    "RelayRPCError",
    "RelayResponseError",
    "JsonRpcRelay",
]
