"""Multi-endpoint JSON-RPC gateway with round-robin failover.

Each logical call starts at the next cursor position and walks the endpoint
pool (wrapping) until one answers. Rate-limit, timeout and connection
failures move on to the next endpoint; anything else (a revert, a malformed
request) is raised straight away.
"""

import itertools
import logging
import threading

import httpx

from .constants import HTTP_TIMEOUT, RPC_ENDPOINTS
from .errors import (
    AllNodesFailedError,
    GatewayDialError,
    RPCError,
    TransactionNotFoundError,
)
from .models import TransactionReceipt

logger = logging.getLogger(__name__)

_RETRYABLE_MARKERS = (
    "429",
    "rate limit",
    "too many requests",
    "rate exceeded",
    "timeout",
    "timed out",
    "connection",
    "network",
    "dial",
)


def is_retryable_error(exc: BaseException) -> bool:
    """True for rate-limit, timeout and connectivity failures."""
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _RETRYABLE_MARKERS)


class CallCounter:
    """Thread-safe monotonically increasing counter."""

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


def _block_tag(block) -> str:
    if block is None:
        return "latest"
    if isinstance(block, int):
        return hex(block)
    return block


class _Endpoint:
    """One dialed JSON-RPC node."""

    def __init__(self, url: str, timeout: float):
        parsed = httpx.URL(url)
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise GatewayDialError(f"unsupported RPC URL: {url}")
        self.url = url
        self._http = httpx.Client(timeout=timeout)
        self._ids = itertools.count(1)

    def request(self, method: str, params: list):
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        resp = self._http.post(self.url, json=payload)
        if resp.status_code != 200:
            raise RPCError(f"HTTP {resp.status_code}: {resp.text[:200]}", code=resp.status_code)
        data = resp.json()
        err = data.get("error")
        if err:
            message = err.get("message", str(err)) if isinstance(err, dict) else str(err)
            code = err.get("code") if isinstance(err, dict) else None
            raise RPCError(message, code=code)
        return data.get("result")

    def close(self) -> None:
        self._http.close()


class ChainGateway:
    """Single logical chain-read interface over a pool of RPC endpoints.

    Args:
        endpoints: RPC URLs. At least one must dial.
        timeout: Per-request timeout in seconds.
        counter: Optional shared CallCounter; one is created per gateway otherwise.
        logger: Logger for failover and dial messages.
    """

    def __init__(
        self,
        endpoints: list[str],
        timeout: float = HTTP_TIMEOUT,
        counter: CallCounter | None = None,
        logger: logging.Logger = logger,
    ):
        self._logger = logger
        self._endpoints: list[_Endpoint] = []
        failed: list[str] = []
        for url in endpoints:
            try:
                self._endpoints.append(_Endpoint(url, timeout))
            except (GatewayDialError, httpx.InvalidURL) as exc:
                failed.append(f"{url}: {exc}")

        if not self._endpoints:
            raise GatewayDialError(f"failed to connect to any RPC node: {failed}")
        if failed:
            self._logger.warning(
                "%d of %d RPC endpoints failed to dial: %s",
                len(failed), len(endpoints), "; ".join(failed),
            )

        self.counter = counter or CallCounter()
        self._cursor = 0
        self._cursor_lock = threading.Lock()

    @classmethod
    def for_chain(cls, chain_id: int, endpoints: list[str] | None = None, **kwargs) -> "ChainGateway":
        """Build a gateway from the configured endpoint list for *chain_id*."""
        urls = endpoints or RPC_ENDPOINTS.get(chain_id)
        if not urls:
            raise GatewayDialError(f"no RPC URLs configured for chain ID {chain_id}")
        return cls(urls, **kwargs)

    def __repr__(self) -> str:
        return f"ChainGateway(endpoints={len(self._endpoints)})"

    @property
    def endpoint_urls(self) -> list[str]:
        return [e.url for e in self._endpoints]

    # ------------------------------------------------------------------
    # Failover core
    # ------------------------------------------------------------------

    def _next_index(self) -> int:
        with self._cursor_lock:
            index = self._cursor
            self._cursor += 1
        return index % len(self._endpoints)

    def _call(self, method: str, params: list):
        n = len(self._endpoints)
        start = self._next_index()
        last_error: Exception | None = None

        for i in range(n):
            endpoint = self._endpoints[(start + i) % n]
            count = self.counter.increment()
            try:
                return endpoint.request(method, params)
            except (httpx.HTTPError, RPCError, ValueError) as exc:
                if not is_retryable_error(exc):
                    raise
                last_error = exc
                self._logger.warning(
                    "RPC #%d %s failed on %s (%d/%d): %s",
                    count, method, endpoint.url, i + 1, n, exc,
                )

        raise AllNodesFailedError(
            f"all RPC nodes failed, last error: {last_error}", last_error=last_error,
        ) from last_error

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def call_contract(
        self,
        to: str,
        data: bytes,
        block=None,
        from_address: str | None = None,
        gas: int | None = None,
        value: int | None = None,
    ) -> bytes:
        """eth_call. Returns the raw return data."""
        call = {"to": to, "data": "0x" + data.hex()}
        if from_address:
            call["from"] = from_address
        if gas is not None:
            call["gas"] = hex(gas)
        if value:
            call["value"] = hex(value)
        result = self._call("eth_call", [call, _block_tag(block)])
        return bytes.fromhex((result or "0x")[2:])

    def balance_at(self, address: str, block=None) -> int:
        """Native balance in wei."""
        return int(self._call("eth_getBalance", [address, _block_tag(block)]), 16)

    def estimate_gas(self, to: str, data: bytes, from_address: str | None = None) -> int:
        call = {"to": to, "data": "0x" + data.hex()}
        if from_address:
            call["from"] = from_address
        return int(self._call("eth_estimateGas", [call]), 16)

    def transaction_receipt(self, tx_hash: str) -> TransactionReceipt:
        raw = self._call("eth_getTransactionReceipt", [tx_hash])
        if raw is None:
            raise TransactionNotFoundError(f"receipt not found: {tx_hash}")
        return TransactionReceipt.from_rpc(raw)

    def transaction_by_hash(self, tx_hash: str) -> dict:
        raw = self._call("eth_getTransactionByHash", [tx_hash])
        if raw is None:
            raise TransactionNotFoundError(f"transaction not found: {tx_hash}")
        return raw

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        for endpoint in self._endpoints:
            endpoint.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
