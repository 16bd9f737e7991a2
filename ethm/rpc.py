"""Minimal Ethereum JSON-RPC client (block number, peer count)."""

import itertools
import logging

import requests
from requests.exceptions import RequestException

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """Raised when a JSON-RPC call fails or returns an unusable result."""


class RpcClient:
    """Talks JSON-RPC 2.0 over HTTP to a single node.

    Args:
        url: Endpoint, e.g. ``"http://localhost:8545"``.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, url: str, timeout: float = 5.0) -> None:
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._session = requests.Session()
        # The node is local; never route through an environment proxy.
        self._session.trust_env = False

    def block_number(self) -> int:
        """Return the node's latest block height (``eth_blockNumber``)."""
        return _parse_quantity(self.call("eth_blockNumber"), "eth_blockNumber")

    def peer_count(self) -> int:
        """Return the number of connected peers (``net_peerCount``)."""
        return _parse_quantity(self.call("net_peerCount"), "net_peerCount")

    def call(self, method: str, params: list | None = None) -> object:
        """Send one JSON-RPC request and return its ``result`` member.

        Raises:
            RpcError: On transport failure, HTTP error status, a JSON-RPC
                ``error`` member, or a response without ``result``.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except RequestException as exc:
            raise RpcError(f"{method} request to {self.url} failed: {exc}") from exc
        except ValueError as exc:
            raise RpcError(f"{method} returned invalid JSON: {exc}") from exc

        if not isinstance(body, dict):
            raise RpcError(f"{method} returned an unexpected payload: {body!r}")
        if body.get("error"):
            error = body["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise RpcError(f"{method} failed: {message}")
        if "result" not in body:
            raise RpcError(f"{method} response has no result")

        logger.debug("%s -> %r", method, body["result"])
        return body["result"]

    def close(self) -> None:
        self._session.close()


def _parse_quantity(value: object, method: str) -> int:
    """Decode a JSON-RPC hex quantity (``"0x1b4"``) into an ``int``."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16)
        except ValueError:
            pass
    raise RpcError(f"{method} returned a non-numeric result: {value!r}")
