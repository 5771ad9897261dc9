"""Proxy and Safe meta-transaction builder.

Per batch: build call data, fetch a fresh relay nonce, wrap the calls in the
wallet's envelope, compute the signable hash, sign, and hand back the relay
body ready for submission.
"""

import logging

from eth_utils import keccak

from .constants import (
    DEFAULT_GAS_ESTIMATE,
    GAS_ESTIMATE_EXTRA,
    GAS_ESTIMATE_MULTIPLIER,
    PROXY_FACTORY,
    RELAY_ADDRESS,
    RELAY_HUB,
    SAFE_MULTISEND,
)
from .encoding import (
    address_bytes,
    encode_get_transaction_hash,
    encode_multisend,
    encode_proxy,
    u256,
)
from .errors import RPCError, SafeTransactionHashError, ValidationError
from .models import (
    Operation,
    ProxyCall,
    ProxyRelayBody,
    SafeCall,
    SafeRelayBody,
    SignatureType,
)
from .relay import RelayClient
from .signer import signed_message_hash
from .wallet import Wallet

logger = logging.getLogger(__name__)

_PROXY_STRUCT_PREFIX = b"rlx:"

# Safe expects eth_sign style v (27/28 + 4)
_SAFE_V_REMAP = {0x00: 0x1F, 0x1B: 0x1F, 0x01: 0x20, 0x1C: 0x20}


def create_proxy_struct(
    from_address: str,
    to: str,
    data: bytes,
    tx_fee: int,
    gas_price: int,
    gas_limit: int,
    nonce: int,
    relay_hub: str,
    relay: str,
) -> bytes:
    """Raw (unhashed) proxy struct the relay hub verifies.

    "rlx:" | from(20) | to(20) | data | fee(32) | gasPrice(32) | gasLimit(32)
    | nonce(32) | relayHub(20) | relay(20)
    """
    return (
        _PROXY_STRUCT_PREFIX
        + address_bytes(from_address)
        + address_bytes(to)
        + data
        + u256(tx_fee)
        + u256(gas_price)
        + u256(gas_limit)
        + u256(nonce)
        + address_bytes(relay_hub)
        + address_bytes(relay)
    )


def gas_limit_from_estimate(estimate: int) -> int:
    """1.3x the estimate plus a fixed 100k headroom."""
    return estimate * GAS_ESTIMATE_MULTIPLIER // 100 + GAS_ESTIMATE_EXTRA


def adjust_safe_signature_v(signature: bytes) -> bytes:
    """Remap the final v byte: {00, 1b} -> 1f, {01, 1c} -> 20. Other values pass through."""
    if len(signature) != 65:
        raise ValidationError(f"signature must be 65 bytes, got {len(signature)}")
    v = signature[-1]
    return signature[:-1] + bytes([_SAFE_V_REMAP.get(v, v)])


def create_safe_multisend_transaction(calls: list[SafeCall]) -> tuple[str, bytes, Operation]:
    """Collapse *calls* into one Safe transaction (to, data, operation).

    A single call goes out as a plain CALL. Several calls are packed into
    multiSend and delegate-called from the Safe.
    """
    if not calls:
        raise ValidationError("no transactions to batch")
    if len(calls) == 1:
        return calls[0].to, bytes(calls[0].data), Operation.CALL
    return SAFE_MULTISEND, encode_multisend(calls), Operation.DELEGATE_CALL


class TransactionBuilder:
    """Turns a list of inner calls into a signed relay envelope.

    Args:
        wallet: Wallet context (signer, wallet mode, gateway, proxy address).
        relay: Relay client used for the per-batch nonce.
        relay_hub: Relay hub address committed to in the proxy struct.
        relay_address: Relay operator address committed to in the proxy struct.
    """

    def __init__(
        self,
        wallet: Wallet,
        relay: RelayClient,
        relay_hub: str = RELAY_HUB,
        relay_address: str = RELAY_ADDRESS,
        logger: logging.Logger = logger,
    ):
        self.wallet = wallet
        self.relay = relay
        self.relay_hub = relay_hub
        self.relay_address = relay_address
        self._logger = logger

    def build(self, calls: list[ProxyCall], metadata: str) -> ProxyRelayBody | SafeRelayBody:
        """Dispatch on the wallet mode."""
        if not calls:
            raise ValidationError("no transactions to execute")
        mode = self.wallet.signature_type
        if mode == SignatureType.PROXY:
            return self.build_proxy_body(calls, metadata)
        if mode == SignatureType.SAFE:
            return self.build_safe_body([SafeCall.from_proxy_call(c) for c in calls], metadata)
        raise ValidationError(f"gasless relay needs a PROXY or SAFE wallet, not {mode.name}")

    # ------------------------------------------------------------------
    # Proxy wallets
    # ------------------------------------------------------------------

    def estimate_proxy_gas(self, encoded: bytes, n_calls: int) -> int:
        """Gas estimate for the proxy factory call, with a logged fixed fallback."""
        try:
            return self.wallet.gateway.estimate_gas(
                PROXY_FACTORY, encoded, from_address=self.wallet.base_address,
            )
        except RPCError as exc:
            fallback = DEFAULT_GAS_ESTIMATE * n_calls
            self._logger.warning(
                "Gas estimation failed (%s), using fallback estimate %d for %d call(s)",
                exc, fallback, n_calls,
            )
            return fallback

    def build_proxy_body(self, calls: list[ProxyCall], metadata: str) -> ProxyRelayBody:
        nonce = self.relay.get_nonce("PROXY")
        encoded = encode_proxy(calls)
        gas_limit = gas_limit_from_estimate(self.estimate_proxy_gas(encoded, len(calls)))
        gas_price = 0
        relayer_fee = 0

        struct = create_proxy_struct(
            self.wallet.base_address,
            PROXY_FACTORY,
            encoded,
            relayer_fee,
            gas_price,
            gas_limit,
            nonce,
            self.relay_hub,
            self.relay_address,
        )
        digest = signed_message_hash(keccak(struct))
        signature = self.wallet.signer.sign_recoverable(digest)

        self._logger.debug(
            "Proxy batch: %d call(s), %d bytes, nonce=%d, gasLimit=%d",
            len(calls), len(encoded), nonce, gas_limit,
        )
        return ProxyRelayBody(
            data="0x" + encoded.hex(),
            from_address=self.wallet.base_address,
            metadata=metadata,
            nonce=str(nonce),
            proxy_wallet=self.wallet.proxy_address(),
            signature="0x" + signature.hex(),
            gas_price=str(gas_price),
            gas_limit=str(gas_limit),
            relayer_fee=str(relayer_fee),
            relay_hub=self.relay_hub,
            relay=self.relay_address,
            to=PROXY_FACTORY,
        )

    # ------------------------------------------------------------------
    # Safe wallets
    # ------------------------------------------------------------------

    def safe_transaction_hash(
        self, safe: str, to: str, data: bytes, operation: Operation, nonce: int,
    ) -> bytes:
        """Ask the Safe for its transaction hash (zero gas/refund config)."""
        call_data = encode_get_transaction_hash(to, 0, data, int(operation), nonce)
        try:
            result = self.wallet.gateway.call_contract(safe, call_data)
        except RPCError as exc:
            raise SafeTransactionHashError(f"failed to call getTransactionHash on {safe}: {exc}") from exc
        if len(result) < 32:
            raise SafeTransactionHashError(
                f"getTransactionHash on {safe} returned {len(result)} bytes, expected 32",
            )
        return result[:32]

    def build_safe_body(self, calls: list[SafeCall], metadata: str) -> SafeRelayBody:
        nonce = self.relay.get_nonce("SAFE")
        to, data, operation = create_safe_multisend_transaction(calls)
        safe = self.wallet.proxy_address()

        tx_hash = self.safe_transaction_hash(safe, to, data, operation, nonce)
        signature = adjust_safe_signature_v(
            self.wallet.signer.sign_recoverable(signed_message_hash(tx_hash))
        )

        self._logger.debug(
            "Safe batch: %d call(s), operation=%d, nonce=%d", len(calls), operation, nonce,
        )
        return SafeRelayBody(
            data="0x" + data.hex(),
            from_address=self.wallet.base_address,
            metadata=metadata,
            nonce=str(nonce),
            proxy_wallet=safe,
            signature="0x" + signature.hex(),
            operation=str(int(operation)),
            to=to,
        )
