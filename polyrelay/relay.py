"""Relay submission protocol: nonce, authenticated /submit, receipt polling.

The relay pays gas and replays a signed envelope through the caller's proxy
or Safe wallet. Nonces are fetched fresh for every batch and never cached.
Submissions are not retried automatically; only the nonce fetch is.
"""

import logging
import re
import time

import httpx

from .auth import build_builder_headers, dumps_spaced, validate_creds
from .constants import (
    RELAY_NONCE_MAX_RETRIES,
    RELAY_NONCE_TIMEOUT,
    RELAY_SUBMIT_TIMEOUT,
    RELAYER_URL,
    TRANSACTION_POLL_INTERVAL,
    TRANSACTION_WAIT_TIMEOUT,
)
from .errors import (
    ReceiptTimeoutError,
    RelayError,
    RelayFailedError,
    RelayHTTPError,
    RelayNonceError,
    RelayPendingError,
    RPCError,
    SafeSignatureError,
    TransactionNotFoundError,
    TransactionRevertedError,
)
from .gateway import CallCounter
from .models import ProxyRelayBody, SafeRelayBody, TransactionReceipt, hex_to_bytes
from .retry import with_retry
from .wallet import Wallet

logger = logging.getLogger(__name__)

FAILED_STATES = {"STATE_FAILED", "FAILED", "failed"}
_HASH_FIELDS = ("transactionHash", "txHash", "hash")
_ERROR_FIELDS = ("error", "message", "errorMessage", "reason")
_REVERT_RE = re.compile(r'(?:revert|execution reverted)(?::\s*)?([^"]+)')
_PREVIEW_LEN = 500


class _NonceResponseError(RelayError):
    """Unusable nonce response (non-200, bad JSON, missing nonce). Retried."""


def parse_nonce(payload) -> int:
    """Accept {"nonce": "7"} or {"nonce": 7}; the nonce must be a non-negative integer."""
    raw = payload.get("nonce") if isinstance(payload, dict) else None
    nonce = None
    if isinstance(raw, bool):
        pass
    elif isinstance(raw, int):
        nonce = raw
    elif isinstance(raw, float) and raw.is_integer():
        nonce = int(raw)
    elif isinstance(raw, str):
        try:
            nonce = int(raw.strip())
        except ValueError:
            pass
    if nonce is None or nonce < 0:
        raise _NonceResponseError(f"invalid nonce in response: {payload!r}")
    return nonce


def _failure_message(payload: dict) -> str:
    message = ""
    details: list[str] = []
    for key in _ERROR_FIELDS:
        value = payload.get(key)
        if isinstance(value, str) and value:
            message = value
            break
    else:
        nested = payload.get("error")
        if isinstance(nested, dict):
            message = str(nested.get("message", ""))
            if nested.get("code"):
                details.append(f"code: {nested['code']}")
    if isinstance(payload.get("details"), dict):
        details.extend(f"{k}: {v}" for k, v in payload["details"].items())
    message = message or "transaction submission failed"
    if details:
        message = f"{message} ({', '.join(details)})"
    return message


def parse_submit_response(payload) -> str:
    """Return the transaction hash of an accepted submission.

    Raises RelayFailedError for a terminal failure state (SafeSignatureError
    when the relay reports GS026), RelayPendingError when the relay is still
    processing and has no hash yet, RelayError when the response is unusable.
    """
    if not isinstance(payload, dict):
        raise RelayError(f"unexpected relay response: {payload!r}")

    state = payload.get("state")
    if isinstance(state, str) and state in FAILED_STATES:
        message = _failure_message(payload)
        transaction_id = str(payload.get("transactionID", ""))
        text = f"relay submission failed (state: {state}, transactionID: {transaction_id}): {message}"
        if "GS026" in text:
            raise SafeSignatureError(text)
        raise RelayFailedError(text, state=state, transaction_id=transaction_id)

    for key in _HASH_FIELDS:
        if key in payload and isinstance(payload[key], str):
            tx_hash = payload[key]
            if not tx_hash:
                raise RelayError(f"transaction hash is empty in response: {payload!r}")
            return tx_hash

    if isinstance(state, str) and state:
        raise RelayPendingError(
            f"relay still processing, no transaction hash yet (state: {state})", state=state,
        )
    raise RelayError(f"no transaction hash in response: {payload!r}")


def explain_revert(error_text: str, tx_hash: str) -> str:
    """Turn a simulated-call error into a readable revert reason."""
    if "GS026" in error_text:
        return (
            f"Gnosis Safe GS026: invalid owner signature. The signature v value is "
            f"wrong or the signer is not a Safe owner (txHash: {tx_hash})"
        )
    if "revert" in error_text:
        match = _REVERT_RE.search(error_text)
        detail = match.group(1).strip() if match else error_text
        return f"transaction reverted: {detail} (txHash: {tx_hash})"
    return f"transaction failed: {error_text} (txHash: {tx_hash})"


class RelayClient:
    """Client for the gasless relay service.

    Args:
        wallet: Wallet context (base address, gateway for receipts).
        builder_creds: Builder API credentials (apiKey, secret, passphrase).
        relay_url: Relay base URL.
        counter: Optional CallCounter; one per client by default.
    """

    def __init__(
        self,
        wallet: Wallet,
        builder_creds: dict,
        relay_url: str = RELAYER_URL,
        counter: CallCounter | None = None,
        nonce_max_retries: int = RELAY_NONCE_MAX_RETRIES,
        poll_interval: float = TRANSACTION_POLL_INTERVAL,
        wait_timeout: float = TRANSACTION_WAIT_TIMEOUT,
        logger: logging.Logger = logger,
    ):
        self.wallet = wallet
        self._creds = validate_creds(builder_creds, "builder")
        self.relay_url = relay_url
        self.counter = counter or CallCounter()
        self.nonce_max_retries = nonce_max_retries
        self.poll_interval = poll_interval
        self.wait_timeout = wait_timeout
        self._logger = logger
        self._http = httpx.Client(base_url=relay_url, timeout=RELAY_SUBMIT_TIMEOUT)

    def __repr__(self) -> str:
        return f"RelayClient(url={self.relay_url}, address={self.wallet.base_address})"

    # ------------------------------------------------------------------
    # Nonce
    # ------------------------------------------------------------------

    def _fetch_nonce(self, wallet_type: str) -> int:
        count = self.counter.increment()
        self._logger.info("Relay #%d GET /nonce (type=%s)", count, wallet_type)
        resp = self._http.get(
            "/nonce",
            params={"address": self.wallet.base_address, "type": wallet_type},
            timeout=RELAY_NONCE_TIMEOUT,
        )
        if resp.status_code != 200:
            raise _NonceResponseError(f"relay returned error: HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise _NonceResponseError(f"failed to decode nonce response: {exc}") from exc
        nonce = parse_nonce(payload)
        self._logger.info("Relay #%d nonce=%d (type=%s)", count, nonce, wallet_type)
        return nonce

    def get_nonce(self, wallet_type: str) -> int:
        """Fetch the relay nonce for PROXY or SAFE, retrying with doubling backoff."""
        retryable = (_NonceResponseError, httpx.TimeoutException, httpx.NetworkError)
        try:
            return with_retry(
                lambda: self._fetch_nonce(wallet_type),
                max_attempts=self.nonce_max_retries,
                backoff_base=2.0,
                retry_on=retryable,
                logger=self._logger,
                label="relay nonce",
            )
        except retryable as exc:
            raise RelayNonceError(
                f"failed to get nonce after {self.nonce_max_retries} attempts: {exc}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RelayNonceError(f"failed to get nonce: {exc}") from exc

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, body: ProxyRelayBody | SafeRelayBody | dict) -> str:
        """POST the envelope to /submit. Returns the transaction hash."""
        payload = body.to_dict() if hasattr(body, "to_dict") else body
        body_str = dumps_spaced(payload)
        count = self.counter.increment()

        if len(body_str) > _PREVIEW_LEN:
            self._logger.debug("Relay #%d body (first %d chars): %s...", count, _PREVIEW_LEN, body_str[:_PREVIEW_LEN])
        else:
            self._logger.debug("Relay #%d body: %s", count, body_str)

        headers = {"Content-Type": "application/octet-stream"}
        headers.update(build_builder_headers(self._creds, "POST", "/submit", body_str))

        self._logger.info("Relay #%d POST /submit (type=%s)", count, payload.get("type"))
        try:
            resp = self._http.post("/submit", content=body_str.encode(), headers=headers)
        except httpx.HTTPError as exc:
            raise RelayError(f"failed to submit transaction: {exc}") from exc

        if resp.status_code != 200:
            text = resp.text
            snippet = text[:200] + ("..." if len(text) > 200 else "")
            self._logger.error("Relay #%d submit failed: HTTP %d", count, resp.status_code)
            if "GS026" in text:
                raise SafeSignatureError(f"relay rejected Safe signature (GS026): {snippet}")
            raise RelayHTTPError(f"relay returned error: HTTP {resp.status_code}: {snippet}", resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise RelayError(f"failed to decode relay response: {exc}") from exc

        try:
            tx_hash = parse_submit_response(data)
        except RelayPendingError as exc:
            self._logger.warning("Relay #%d %s", count, exc)
            raise
        except RelayError as exc:
            self._logger.error("Relay #%d %s", count, exc)
            raise

        self._logger.info("Relay #%d accepted, tx %s", count, tx_hash)
        return tx_hash

    def execute(self, body: ProxyRelayBody | SafeRelayBody) -> TransactionReceipt:
        """Submit and wait for the receipt."""
        tx_hash = self.submit(body)
        receipt = self.wait_for_receipt(tx_hash)
        self._logger.info("Transaction %s confirmed in block %d", tx_hash, receipt.block_number)
        return receipt

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Poll for the receipt until mined or the deadline passes."""
        start = time.monotonic()
        deadline = start + self.wait_timeout
        attempt = 0
        while True:
            attempt += 1
            try:
                receipt = self.wallet.gateway.transaction_receipt(tx_hash)
            except TransactionNotFoundError:
                now = time.monotonic()
                if now >= deadline:
                    self._logger.error("Timed out after %.0fs waiting for %s", now - start, tx_hash)
                    raise ReceiptTimeoutError(
                        f"transaction {tx_hash} not mined within {self.wait_timeout:.0f}s", tx_hash,
                    ) from None
                if attempt % 10 == 0:
                    self._logger.info(
                        "Waiting for %s (attempt %d, %.0fs elapsed)", tx_hash, attempt, now - start,
                    )
                time.sleep(self.poll_interval)
                continue
            except RPCError as exc:
                self._logger.error("Receipt lookup failed for %s: %s", tx_hash, exc)
                raise

            if receipt.status == 0:
                message = self.diagnose_revert(tx_hash, receipt)
                self._logger.error("%s", message)
                if "GS026" in message:
                    raise SafeSignatureError(message, tx_hash)
                raise TransactionRevertedError(message, tx_hash)
            return receipt

    def diagnose_revert(self, tx_hash: str, receipt: TransactionReceipt) -> str:
        """Best-effort revert reason: replay the call at the block before inclusion."""
        gateway = self.wallet.gateway
        try:
            tx = gateway.transaction_by_hash(tx_hash)
        except (RPCError, httpx.HTTPError):
            return f"transaction failed; could not fetch transaction details (txHash: {tx_hash})"

        try:
            gateway.call_contract(
                tx.get("to"),
                hex_to_bytes(tx.get("input", "0x")),
                block=max(receipt.block_number - 1, 0),
                from_address=tx.get("from"),
                gas=int(tx["gas"], 16) if tx.get("gas") else None,
                value=int(tx.get("value", "0x0"), 16),
            )
        except (RPCError, httpx.HTTPError) as exc:
            return explain_revert(str(exc), tx_hash)

        return (
            f"transaction failed but the replayed call succeeded; target {tx.get('to')} "
            f"(txHash: {tx_hash}). For Safe wallets check the owner signature"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
