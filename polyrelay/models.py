"""Data model shared by the encoder, transaction builder, relay and CLOB client."""

import re
from dataclasses import dataclass, field
from enum import IntEnum

from .constants import ZERO_ADDRESS
from .errors import ValidationError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class SignatureType(IntEnum):
    """Wallet mode. Decides order maker/signer and which relay path is used."""

    EOA = 0
    PROXY = 1
    SAFE = 2


class Operation(IntEnum):
    """Safe operation code."""

    CALL = 0
    DELEGATE_CALL = 1


# Proxy call type code: 1 = plain call
CALL_TYPE_CODE = 1

SIDE_BUY = "BUY"
SIDE_SELL = "SELL"


def validate_address(value: str, name: str = "address") -> str:
    if not isinstance(value, str) or not _ADDRESS_RE.match(value):
        raise ValidationError(f"invalid {name}: {value!r}")
    return value


def validate_hash(value: str, name: str = "hash") -> str:
    if not isinstance(value, str) or not _HASH_RE.match(value):
        raise ValidationError(f"invalid {name}: {value!r}")
    return value


def hex_to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise ValidationError(f"invalid hex data: {value[:20]!r}") from exc


@dataclass(frozen=True)
class ProxyCall:
    """One inner call executed by a proxy wallet."""

    to: str
    data: bytes
    value: int = 0
    type_code: int = CALL_TYPE_CODE


@dataclass(frozen=True)
class SafeCall:
    """One inner call executed by a Safe wallet."""

    to: str
    data: bytes
    operation: Operation = Operation.CALL
    value: int = 0

    @classmethod
    def from_proxy_call(cls, call: ProxyCall) -> "SafeCall":
        return cls(to=call.to, data=call.data, operation=Operation.CALL, value=call.value)


# -- Relay envelopes ---------------------------------------------------------
# Key order of to_dict() is part of the wire format: the relay recomputes the
# HMAC over the exact serialization.

@dataclass
class ProxyRelayBody:
    data: str
    from_address: str
    metadata: str
    nonce: str
    proxy_wallet: str
    signature: str
    gas_price: str
    gas_limit: str
    relayer_fee: str
    relay_hub: str
    relay: str
    to: str

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "from": self.from_address,
            "metadata": self.metadata,
            "nonce": self.nonce,
            "proxyWallet": self.proxy_wallet,
            "signature": self.signature,
            "signatureParams": {
                "gasPrice": self.gas_price,
                "gasLimit": self.gas_limit,
                "relayerFee": self.relayer_fee,
                "relayHub": self.relay_hub,
                "relay": self.relay,
            },
            "to": self.to,
            "type": "PROXY",
        }


@dataclass
class SafeRelayBody:
    data: str
    from_address: str
    metadata: str
    nonce: str
    proxy_wallet: str
    signature: str
    operation: str
    to: str
    base_gas: str = "0"
    gas_price: str = "0"
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS
    safe_txn_gas: str = "0"

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "from": self.from_address,
            "metadata": self.metadata,
            "nonce": self.nonce,
            "proxyWallet": self.proxy_wallet,
            "signature": self.signature,
            "signatureParams": {
                "baseGas": self.base_gas,
                "gasPrice": self.gas_price,
                "gasToken": self.gas_token,
                "operation": self.operation,
                "refundReceiver": self.refund_receiver,
                "safeTxnGas": self.safe_txn_gas,
            },
            "to": self.to,
            "type": "SAFE",
        }


# -- Orders ------------------------------------------------------------------

@dataclass
class OrderArgs:
    token_id: str
    price: float
    size: float
    side: str
    fee_rate_bps: int = 0
    tick_size: str | None = None
    neg_risk: bool | None = None
    order_type: str = "GTC"
    expiration: int = 0


# -- Receipts ----------------------------------------------------------------

@dataclass(frozen=True)
class Log:
    address: str
    topics: tuple[str, ...]
    data: str
    log_index: int

    @classmethod
    def from_rpc(cls, raw: dict) -> "Log":
        return cls(
            address=raw.get("address", ""),
            topics=tuple(raw.get("topics", [])),
            data=raw.get("data", "0x"),
            log_index=int(raw.get("logIndex", "0x0"), 16),
        )


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int
    block_hash: str
    status: int
    gas_used: int
    effective_gas_price: int
    from_address: str
    to_address: str | None
    logs: tuple[Log, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, raw: dict) -> "TransactionReceipt":
        """Build from an eth_getTransactionReceipt result (hex-quantity fields)."""
        return cls(
            tx_hash=raw["transactionHash"],
            block_number=int(raw["blockNumber"], 16),
            block_hash=raw.get("blockHash", ""),
            status=int(raw.get("status", "0x0"), 16),
            gas_used=int(raw.get("gasUsed", "0x0"), 16),
            effective_gas_price=int(raw.get("effectiveGasPrice", "0x0"), 16),
            from_address=raw.get("from", ""),
            to_address=raw.get("to"),
            logs=tuple(Log.from_rpc(entry) for entry in raw.get("logs", [])),
        )
