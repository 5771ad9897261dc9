"""Polymarket CLOB REST client: batched order submission, cancels, order listing."""

import logging
import time

import httpx

from .auth import build_l2_headers, derive_api_key, dumps_spaced, validate_creds
from .constants import (
    CLOB_BASE_URL,
    DEFAULT_TICK_SIZE,
    END_CURSOR,
    HTTP_TIMEOUT,
    INITIAL_CURSOR,
    MAX_ORDERS_PER_BATCH,
)
from .errors import ClobError, ValidationError
from .models import OrderArgs
from .order import build_signed_order, order_to_json
from .wallet import Wallet

logger = logging.getLogger(__name__)

_RETRYABLE_CODES = {429, 500, 502, 503, 504}

_INVALID_SIGNATURE = "invalid signature"


def _orderbook_missing(error_msg: str) -> bool:
    # Market past settlement; expected for expiring tokens.
    return "the orderbook" in error_msg and "does not exist" in error_msg


def _chunks(items: list, size: int):
    for i in range(0, len(items), size):
        yield i, items[i:i + size]


class ClobClient:
    """Synchronous client for the Polymarket CLOB API.

    Args:
        wallet: Wallet context. Orders are funded by ``wallet.funder`` and
            signed by the wallet's owner key.
        api_creds: API credentials dict with keys apiKey, secret, passphrase.
            If None, credentials are derived automatically via L1 auth.
        base_url: CLOB API base URL.
        max_retries: Number of retries on transient HTTP errors.
        base_delay: Initial backoff delay in seconds, doubled per retry.
    """

    def __init__(
        self,
        wallet: Wallet,
        api_creds: dict | None = None,
        base_url: str = CLOB_BASE_URL,
        max_retries: int = 3,
        base_delay: float = 1.0,
        logger: logging.Logger = logger,
    ):
        self.wallet = wallet
        self.base_url = base_url
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._logger = logger

        if api_creds is None:
            api_creds = derive_api_key(wallet.signer, base_url=base_url)
        self._creds = validate_creds(api_creds, "CLOB API")

        self._http = httpx.Client(base_url=base_url, timeout=HTTP_TIMEOUT)

    def __repr__(self) -> str:
        return f"ClobClient(address={self.address})"

    @property
    def address(self) -> str:
        return self.wallet.base_address

    @property
    def api_key(self) -> str:
        return self._creds["apiKey"]

    # ------------------------------------------------------------------
    # Low-level request
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        body: dict | list | None = None,
        auth: bool = True,
        params: dict | None = None,
    ) -> dict | list:
        # HMAC covers the path only; query params are not signed.
        body_str = dumps_spaced(body) if body is not None else ""
        resp = None

        for attempt in range(self.max_retries + 1):
            # Build headers inside retry loop so HMAC timestamp is fresh
            headers = {
                "Content-Type": "application/json",
                "User-Agent": "py_clob_client",
                "Accept": "*/*",
                "Connection": "keep-alive",
            }
            if auth:
                headers.update(
                    build_l2_headers(self._creds, self.address, method, path, body_str)
                )

            delay = self.base_delay * (2**attempt)
            try:
                resp = self._http.request(
                    method,
                    path,
                    params=params,
                    content=body_str.encode() if body_str else None,
                    headers=headers,
                )
            except httpx.TimeoutException as exc:
                if attempt < self.max_retries:
                    self._logger.warning(
                        "CLOB timeout on %s %s, retry %d/%d in %.1fs",
                        method, path, attempt + 1, self.max_retries, delay,
                    )
                    time.sleep(delay)
                    continue
                raise ClobError(f"{method} {path} timed out after {attempt + 1} attempts") from exc
            except httpx.HTTPError as exc:
                raise ClobError(f"{method} {path} failed: {exc}") from exc

            if resp.status_code in _RETRYABLE_CODES and attempt < self.max_retries:
                self._logger.warning(
                    "CLOB %d on %s %s, retry %d/%d in %.1fs",
                    resp.status_code, method, path, attempt + 1, self.max_retries, delay,
                )
                time.sleep(delay)
                continue
            break

        if resp.status_code >= 400:
            self._logger.error("CLOB %d %s %s: %s", resp.status_code, method, path, resp.text[:500])
            raise ClobError(
                f"CLOB {resp.status_code} on {method} {path}: {resp.text[:200]}",
                resp.status_code,
            )
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise ClobError(f"invalid JSON from {method} {path}: {resp.text[:200]}", resp.status_code) from exc

    # ------------------------------------------------------------------
    # Market parameters
    # ------------------------------------------------------------------

    def get_tick_size(self, token_id: str) -> str:
        """Fetch minimum tick size for a token, falling back to the default."""
        try:
            resp = self._request("GET", "/tick-size", auth=False, params={"token_id": token_id})
            return str(resp.get("minimum_tick_size", DEFAULT_TICK_SIZE))
        except ClobError as exc:
            self._logger.warning(
                "Could not fetch tick_size for %s: %s (using %s)", token_id[:16], exc, DEFAULT_TICK_SIZE,
            )
            return DEFAULT_TICK_SIZE

    def get_neg_risk(self, token_id: str) -> bool:
        """Check if a token uses the neg-risk exchange, falling back to False."""
        try:
            resp = self._request("GET", "/neg-risk", auth=False, params={"token_id": token_id})
            return bool(resp.get("neg_risk", False))
        except ClobError as exc:
            self._logger.warning("Could not fetch neg_risk for %s: %s (using False)", token_id[:16], exc)
            return False

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def _order_payload(self, args: OrderArgs, flip_neg_risk: bool) -> dict:
        tick_size = args.tick_size or DEFAULT_TICK_SIZE
        neg_risk = bool(args.neg_risk)
        if flip_neg_risk:
            neg_risk = not neg_risk

        self._logger.debug(
            "Signing order: token=%s tickSize=%s negRisk=%s", args.token_id, tick_size, neg_risk,
        )
        signed = build_signed_order(
            self.wallet.signer,
            neg_risk=neg_risk,
            maker=self.wallet.funder,
            token_id=args.token_id,
            side=args.side,
            price=args.price,
            size=args.size,
            tick_size=tick_size,
            signature_type=self.wallet.signature_type,
            fee_rate_bps=args.fee_rate_bps,
            expiration=args.expiration,
        )
        return order_to_json(signed, self.api_key, args.order_type)

    def _post_batch(
        self,
        orders: list[OrderArgs],
        payloads: list[dict] | None = None,
        is_retry: bool = False,
    ) -> list[dict]:
        """Post at most one batch. Orders failing with an invalid signature are
        resubmitted once with the neg-risk flag flipped, unless this is already
        the retry call."""
        if len(orders) > MAX_ORDERS_PER_BATCH:
            raise ValidationError(
                f"batch size cannot exceed {MAX_ORDERS_PER_BATCH}, got {len(orders)}"
            )

        if payloads is None:
            payloads = [self._order_payload(o, flip_neg_risk=is_retry) for o in orders]
        resp = self._request("POST", "/orders", body=payloads)
        if not isinstance(resp, list):
            raise ClobError(f"unexpected /orders response: {str(resp)[:200]}")
        if len(resp) != len(orders):
            raise ClobError(f"/orders returned {len(resp)} results for {len(orders)} orders")
        if not all(isinstance(result, dict) for result in resp):
            raise ClobError(f"malformed /orders results: {str(resp)[:200]}")

        failed = []
        missing_books = 0
        for i, result in enumerate(resp):
            error_msg = result.get("errorMsg") or ""
            if _INVALID_SIGNATURE in error_msg:
                failed.append(i)
            elif _orderbook_missing(error_msg):
                missing_books += 1
        if missing_books:
            self._logger.info("%d order(s) skipped: orderbook does not exist", missing_books)

        if failed and not is_retry:
            self._retry_failed(orders, resp, failed)
        return resp

    def _retry_failed(self, orders: list[OrderArgs], resp: list[dict], failed: list[int]) -> None:
        self._logger.debug("Retrying %d order(s) with neg-risk flag flipped", len(failed))
        try:
            retry_resp = self._post_batch([orders[i] for i in failed], is_retry=True)
        except ClobError as exc:
            self._logger.error("Order retry failed: %s", exc)
            return

        for idx, retried in zip(failed, retry_resp):
            new_error = retried.get("errorMsg") or ""
            if not new_error:
                resp[idx] = retried
            else:
                resp[idx] = {
                    **resp[idx],
                    "errorMsg": f"retry failed: {new_error} (original error: {resp[idx].get('errorMsg')})",
                }

    def post_orders(self, orders: list[OrderArgs]) -> list[dict]:
        """Sign and submit *orders* in batches of at most 15.

        Every order is signed before the first request, so a bad order raises
        ValidationError with nothing sent. Returns one result per order, in
        input order. A batch that fails as a whole yields
        ``{"success": False, "errorMsg": ...}`` for each of its orders; later
        batches are still sent.
        """
        if not orders:
            raise ValidationError("no orders to post")
        payloads = [self._order_payload(args, flip_neg_risk=False) for args in orders]

        results: list[dict] = []
        total = (len(orders) + MAX_ORDERS_PER_BATCH - 1) // MAX_ORDERS_PER_BATCH
        for start, batch in _chunks(orders, MAX_ORDERS_PER_BATCH):
            batch_num = start // MAX_ORDERS_PER_BATCH + 1
            self._logger.debug(
                "Posting batch %d/%d (orders %d-%d)", batch_num, total, start + 1, start + len(batch),
            )
            t0 = time.monotonic()
            try:
                results.extend(self._post_batch(batch, payloads[start:start + len(batch)]))
            except ClobError as exc:
                self._logger.error("Batch %d/%d failed: %s", batch_num, total, exc)
                results.extend(
                    {"success": False, "errorMsg": f"batch submission failed: {exc}"} for _ in batch
                )
                continue
            elapsed = time.monotonic() - t0
            if elapsed > 5.0:
                self._logger.warning("Batch %d/%d took %.1fs", batch_num, total, elapsed)
        return results

    def post_order(self, order: OrderArgs) -> dict:
        """Sign and submit a single order."""
        results = self.post_orders([order])
        if not results:
            raise ClobError("no response from server")
        return results[0]

    def cancel_orders(self, order_ids: list[str]) -> dict:
        """Cancel open orders by ID."""
        if not order_ids:
            return {"canceled": [], "not_canceled": {}}
        return self._request("DELETE", "/orders", body=list(order_ids))

    def cancel_order(self, order_id: str) -> dict:
        """Cancel an open order by its ID."""
        return self.cancel_orders([order_id])

    def cancel_all(self) -> dict:
        """Cancel all open orders."""
        return self._request("DELETE", "/cancel-all")

    def cancel_market_orders(self, condition_id: str) -> dict:
        """Cancel every open order in one market."""
        return self._request("DELETE", "/cancel-market-orders", body={"condition_id": condition_id})

    def get_orders(
        self,
        order_id: str | None = None,
        market: str | None = None,
        asset_id: str | None = None,
    ) -> list[dict]:
        """Fetch all open orders for the authenticated user, following cursors."""
        params = {}
        if order_id:
            params["id"] = order_id
        if market:
            params["market"] = market
        if asset_id:
            params["asset_id"] = asset_id

        orders: list[dict] = []
        cursor = INITIAL_CURSOR
        while cursor != END_CURSOR:
            page = self._request("GET", "/data/orders", params={**params, "next_cursor": cursor})
            orders.extend(page.get("data") or [])
            cursor = page.get("next_cursor") or END_CURSOR
        return orders

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
