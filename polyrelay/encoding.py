"""Call-data encoders for ConditionalTokens, the neg-risk adapter, proxy and Safe wallets.

Two strategies live side by side. Functions whose wire format matches the
Solidity ABI go through ``eth_abi.encode``. The neg-risk adapter calls and the
split/merge variants keep the byte layouts the relay ecosystem settled on
(amount word directly after the partition offset), so they are laid out by
hand. Their selectors are fixed constants; do not re-derive them.
"""

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from .constants import HASH_ZERO, USDC_ADDRESS, ZERO_ADDRESS
from .errors import ValidationError
from .models import ProxyCall, SafeCall, hex_to_bytes, validate_address, validate_hash

# Standard ABI selectors
REDEEM_SELECTOR = keccak(b"redeemPositions(address,bytes32,bytes32,uint256[])")[:4]
SPLIT_SELECTOR = keccak(b"splitPosition(address,bytes32,bytes32,uint256[],uint256)")[:4]
MERGE_SELECTOR = keccak(b"mergePositions(address,bytes32,bytes32,uint256[],uint256)")[:4]
GET_TRANSACTION_HASH_SELECTOR = keccak(
    b"getTransactionHash(address,uint256,bytes,uint8,uint256,uint256,uint256,address,address,uint256)"
)[:4]
COMPUTE_PROXY_ADDRESS_SELECTOR = keccak(b"computeProxyAddress(address)")[:4]
GET_POLY_PROXY_WALLET_SELECTOR = keccak(b"getPolyProxyWalletAddress(address)")[:4]
BALANCE_OF_SELECTOR = keccak(b"balanceOf(address)")[:4]
BALANCE_OF_TOKEN_SELECTOR = keccak(b"balanceOf(address,uint256)")[:4]
MULTISEND_SELECTOR = keccak(b"multiSend(bytes)")[:4]

# Literal selectors
PROXY_SELECTOR = bytes.fromhex("415565b0")  # proxy((uint8,address,uint256,bytes)[])
NEG_RISK_REDEEM_SELECTOR = bytes.fromhex("dbeccb23")
NEG_RISK_SPLIT_SELECTOR = bytes.fromhex("a8c4e5c4")
NEG_RISK_MERGE_SELECTOR = bytes.fromhex("c5b2b0c4")

# Binary market partition: YES | NO
BINARY_PARTITION = (1, 2)


def u256(value: int) -> bytes:
    """32-byte big-endian word."""
    if value < 0:
        raise ValidationError(f"uint256 cannot be negative: {value}")
    return value.to_bytes(32, "big")


def address_word(address: str) -> bytes:
    """Address left-padded to a 32-byte word."""
    return b"\x00" * 12 + address_bytes(address)


def address_bytes(address: str) -> bytes:
    """Raw 20 address bytes."""
    return hex_to_bytes(validate_address(address))


def _condition_bytes(condition_id: str) -> bytes:
    return hex_to_bytes(validate_hash(condition_id, "condition id"))


# -- ConditionalTokens / neg-risk adapter ------------------------------------

def encode_redeem(condition_id: str) -> bytes:
    """redeemPositions(USDC, 0x0, conditionId, [1, 2]) on ConditionalTokens."""
    return REDEEM_SELECTOR + encode(
        ["address", "bytes32", "bytes32", "uint256[]"],
        [USDC_ADDRESS, hex_to_bytes(HASH_ZERO), _condition_bytes(condition_id), list(BINARY_PARTITION)],
    )


def encode_redeem_neg_risk(condition_id: str, amounts: list[int]) -> bytes:
    """Neg-risk adapter redeem: conditionId | 0x40 | len | amounts..."""
    if not amounts:
        raise ValidationError("amounts array is empty")
    data = NEG_RISK_REDEEM_SELECTOR + _condition_bytes(condition_id) + u256(0x40) + u256(len(amounts))
    for amount in amounts:
        data += u256(amount)
    return data


def _encode_partition_call(selector: bytes, condition_id: str, amount: int) -> bytes:
    data = selector
    data += address_word(USDC_ADDRESS)
    data += hex_to_bytes(HASH_ZERO)
    data += _condition_bytes(condition_id)
    data += u256(0xA0)  # partition offset
    data += u256(amount)  # amount sits before the partition body
    data += u256(len(BINARY_PARTITION))
    for index_set in BINARY_PARTITION:
        data += u256(index_set)
    return data


def encode_split(condition_id: str, amount: int) -> bytes:
    return _encode_partition_call(SPLIT_SELECTOR, condition_id, amount)


def encode_merge(condition_id: str, amount: int) -> bytes:
    return _encode_partition_call(MERGE_SELECTOR, condition_id, amount)


def encode_split_neg_risk(condition_id: str, amount: int) -> bytes:
    return NEG_RISK_SPLIT_SELECTOR + _condition_bytes(condition_id) + u256(amount)


def encode_merge_neg_risk(condition_id: str, amount: int) -> bytes:
    return NEG_RISK_MERGE_SELECTOR + _condition_bytes(condition_id) + u256(amount)


# -- Views -------------------------------------------------------------------

def encode_balance_of(owner: str) -> bytes:
    """ERC-20 balanceOf(owner)."""
    return BALANCE_OF_SELECTOR + encode(["address"], [validate_address(owner)])


def encode_balance_of_token(owner: str, token_id: int) -> bytes:
    """ERC-1155 balanceOf(owner, id)."""
    return BALANCE_OF_TOKEN_SELECTOR + encode(["address", "uint256"], [validate_address(owner), token_id])


def encode_compute_proxy_address(owner: str) -> bytes:
    return COMPUTE_PROXY_ADDRESS_SELECTOR + encode(["address"], [validate_address(owner)])


def encode_get_poly_proxy_wallet_address(owner: str) -> bytes:
    return GET_POLY_PROXY_WALLET_SELECTOR + encode(["address"], [validate_address(owner)])


def encode_get_transaction_hash(
    to: str,
    value: int,
    data: bytes,
    operation: int,
    nonce: int,
    safe_tx_gas: int = 0,
    base_gas: int = 0,
    gas_price: int = 0,
    gas_token: str = ZERO_ADDRESS,
    refund_receiver: str = ZERO_ADDRESS,
) -> bytes:
    """Safe getTransactionHash(...) with the relay's zeroed gas/refund config by default."""
    return GET_TRANSACTION_HASH_SELECTOR + encode(
        [
            "address",  # to
            "uint256",  # value
            "bytes",    # data
            "uint8",    # operation
            "uint256",  # safeTxGas
            "uint256",  # baseGas
            "uint256",  # gasPrice
            "address",  # gasToken
            "address",  # refundReceiver
            "uint256",  # nonce
        ],
        [to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, nonce],
    )


def decode_address(result: bytes) -> str:
    """Decode a single ABI-encoded address return value (checksummed)."""
    if len(result) < 32:
        raise ValidationError(f"short address return data: {len(result)} bytes")
    return to_checksum_address(result[12:32])


def decode_uint(result: bytes) -> int:
    if len(result) < 32:
        raise ValidationError(f"short uint256 return data: {len(result)} bytes")
    return int.from_bytes(result[:32], "big")


# -- Wallet envelopes --------------------------------------------------------

def encode_proxy(calls: list[ProxyCall]) -> bytes:
    """proxy((uint8,address,uint256,bytes)[]) with the hand-rolled tuple layout.

    Each tuple is preceded by its offset, computed as 0x20 * (N + 1) plus the
    length of everything encoded so far (selector and header included).
    Inner call data is appended raw, without padding.
    """
    if not calls:
        raise ValidationError("no calls to encode")
    n = len(calls)
    data = PROXY_SELECTOR + u256(0x20) + u256(n)
    for call in calls:
        data += u256(0x20 * (n + 1) + len(data))
        inner = hex_to_bytes(call.data)
        data += u256(call.type_code)
        data += address_word(call.to)
        data += u256(call.value)
        data += u256(0x60)
        data += u256(len(inner))
        data += inner
    return data


def pack_multisend(calls: list[SafeCall]) -> bytes:
    """Concatenate op(1) | to(20) | value(32) | len(32) | data per call."""
    packed = b""
    for call in calls:
        data = hex_to_bytes(call.data)
        packed += bytes([int(call.operation)])
        packed += address_bytes(call.to)
        packed += u256(call.value)
        packed += u256(len(data))
        packed += data
    return packed


def encode_multisend(calls: list[SafeCall]) -> bytes:
    """multiSend(bytes) around the packed transactions."""
    if not calls:
        raise ValidationError("no calls to encode")
    return MULTISEND_SELECTOR + encode(["bytes"], [pack_multisend(calls)])

