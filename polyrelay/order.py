"""CLOB order amounts, construction and EIP-712 signing."""

import secrets
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

from eth_abi import encode
from eth_utils import keccak

from .constants import (
    CTF_EXCHANGE,
    MIN_ORDER_SIZE,
    NEG_RISK_CTF_EXCHANGE,
    ORDER_DOMAIN,
    TOKEN_DECIMALS,
    ZERO_ADDRESS,
)
from .errors import ValidationError
from .models import SIDE_BUY, SIDE_SELL, SignatureType
from .signer import Signer

# Side encoding for the Order struct
_SIDE_MAP = {SIDE_BUY: 0, SIDE_SELL: 1}

_TOKEN_UNIT = Decimal(10) ** TOKEN_DECIMALS

# EIP-712 type hashes (precomputed keccak256 of type strings)
_DOMAIN_TYPE_HASH = keccak(
    b"EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
_ORDER_TYPE_HASH = keccak(
    b"Order(uint256 salt,address maker,address signer,address taker,"
    b"uint256 tokenId,uint256 makerAmount,uint256 takerAmount,"
    b"uint256 expiration,uint256 nonce,uint256 feeRateBps,"
    b"uint8 side,uint8 signatureType)"
)

# Domain name and version hashes
_NAME_HASH = keccak(ORDER_DOMAIN["name"].encode())
_VERSION_HASH = keccak(ORDER_DOMAIN["version"].encode())


@dataclass(frozen=True)
class RoundConfig:
    price: int
    size: int
    amount: int


# Decimal precision per tick size: larger tick, fewer amount decimals
ROUNDING_CONFIG = {
    "0.1": RoundConfig(price=1, size=2, amount=3),
    "0.01": RoundConfig(price=2, size=2, amount=4),
    "0.001": RoundConfig(price=3, size=2, amount=5),
    "0.0001": RoundConfig(price=4, size=2, amount=6),
}


# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------

def _dec(x) -> Decimal:
    return x if isinstance(x, Decimal) else Decimal(str(x))


def _quantum(digits: int) -> Decimal:
    return Decimal(1).scaleb(-digits)


def round_normal(x, digits: int) -> Decimal:
    """Round half-up to *digits* decimals."""
    return _dec(x).quantize(_quantum(digits), rounding=ROUND_HALF_UP)


def round_down(x, digits: int) -> Decimal:
    return _dec(x).quantize(_quantum(digits), rounding=ROUND_FLOOR)


def round_up(x, digits: int) -> Decimal:
    return _dec(x).quantize(_quantum(digits), rounding=ROUND_CEILING)


def decimal_places(x) -> int:
    exponent = _dec(x).normalize().as_tuple().exponent
    return max(0, -exponent)


def to_token_decimals(x) -> int:
    """Human amount -> 6-decimal integer units, half-up."""
    return int((_dec(x) * _TOKEN_UNIT).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _round_amount(raw: Decimal, precision: int) -> Decimal:
    # Round up at precision + 4 first so values like 2.2999999 land on 2.3
    # instead of being truncated.
    if decimal_places(raw) > precision:
        raw = round_up(raw, precision + 4)
        if decimal_places(raw) > precision:
            raw = round_down(raw, precision)
    return raw


def rounding_config(tick_size: str) -> RoundConfig:
    try:
        return ROUNDING_CONFIG[str(tick_size)]
    except KeyError:
        raise ValidationError(f"unsupported tick size: {tick_size}") from None


def validate_price(price, tick_size: str) -> None:
    """Price must sit inside [tick, 1 - tick]."""
    tick = _dec(tick_size)
    p = _dec(price)
    if p < tick or p > 1 - tick:
        raise ValidationError(f"price ({price}) must be in range [{tick}, {1 - tick}]")


def get_order_amounts(side: str, size, price, tick_size: str) -> tuple[int, int]:
    """Return (maker_amount, taker_amount) in token units.

    BUY: taker receives size shares, maker pays size * price USDC.
    SELL: roles swap.
    """
    config = rounding_config(tick_size)
    raw_price = round_normal(price, config.price)
    shares = round_down(size, config.size)
    notional = _round_amount(shares * raw_price, config.amount)

    side = side.upper()
    if side == SIDE_BUY:
        return to_token_decimals(notional), to_token_decimals(shares)
    if side == SIDE_SELL:
        return to_token_decimals(shares), to_token_decimals(notional)
    raise ValidationError(f"invalid side: {side!r}")


# ---------------------------------------------------------------------------
# EIP-712
# ---------------------------------------------------------------------------

def _generate_salt() -> int:
    """Random salt; kept below 2**53 because it travels as a JSON integer."""
    return secrets.randbelow(2**53)


def _compute_domain_separator(neg_risk: bool, chain_id: int) -> bytes:
    """Compute the EIP-712 domain separator."""
    exchange = NEG_RISK_CTF_EXCHANGE if neg_risk else CTF_EXCHANGE
    return keccak(
        encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [_DOMAIN_TYPE_HASH, _NAME_HASH, _VERSION_HASH, chain_id, exchange],
        )
    )


def _compute_struct_hash(order: dict) -> bytes:
    """Compute the EIP-712 struct hash for an Order."""
    return keccak(
        encode(
            [
                "bytes32",  # typeHash
                "uint256",  # salt
                "address",  # maker
                "address",  # signer
                "address",  # taker
                "uint256",  # tokenId
                "uint256",  # makerAmount
                "uint256",  # takerAmount
                "uint256",  # expiration
                "uint256",  # nonce
                "uint256",  # feeRateBps
                "uint8",    # side
                "uint8",    # signatureType
            ],
            [
                _ORDER_TYPE_HASH,
                order["salt"],
                order["maker"],
                order["signer"],
                order["taker"],
                order["tokenId"],
                order["makerAmount"],
                order["takerAmount"],
                order["expiration"],
                order["nonce"],
                order["feeRateBps"],
                order["side"],
                order["signatureType"],
            ],
        )
    )


def order_digest(order: dict, neg_risk: bool, chain_id: int) -> bytes:
    # keccak256("\x19\x01" || domainSeparator || structHash)
    return keccak(
        b"\x19\x01" + _compute_domain_separator(neg_risk, chain_id) + _compute_struct_hash(order)
    )


def build_order(
    maker: str,
    signer: str,
    token_id: str,
    side: str,
    price: float,
    size: float,
    tick_size: str,
    signature_type: SignatureType | int = SignatureType.EOA,
    fee_rate_bps: int = 0,
    expiration: int = 0,
    nonce: int = 0,
    taker: str = ZERO_ADDRESS,
) -> dict:
    """Construct an Order struct ready for EIP-712 signing.

    Args:
        maker: Funding address (proxy/Safe wallet, or the EOA itself).
        signer: Address whose key signs the order.
        token_id: Conditional token ID.
        side: "BUY" or "SELL".
        price: Price per share, inside [tick, 1 - tick].
        size: Shares. Sizes below the exchange minimum are raised to it.
        tick_size: Market tick size; picks the rounding precision.

    Returns:
        Dict with all 12 Order fields.
    """
    rounding_config(tick_size)
    validate_price(price, tick_size)
    side = side.upper()
    if side not in _SIDE_MAP:
        raise ValidationError(f"invalid side: {side!r}")
    try:
        token = int(token_id)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid token ID: {token_id!r}") from None
    if token < 0:
        raise ValidationError(f"invalid token ID: {token_id!r}")
    if _dec(size) < MIN_ORDER_SIZE:
        size = MIN_ORDER_SIZE
    maker_amount, taker_amount = get_order_amounts(side, size, price, tick_size)

    return {
        "salt": _generate_salt(),
        "maker": maker,
        "signer": signer,
        "taker": taker,
        "tokenId": token,
        "makerAmount": maker_amount,
        "takerAmount": taker_amount,
        "expiration": expiration,
        "nonce": nonce,
        "feeRateBps": fee_rate_bps,
        "side": _SIDE_MAP[side],
        "signatureType": int(signature_type),
    }


def sign_order(order: dict, signer: Signer, neg_risk: bool = False) -> str:
    """Sign an Order struct via EIP-712 and return the 0x-prefixed hex signature."""
    return signer.sign_typed_digest(order_digest(order, neg_risk, signer.chain_id))


def build_signed_order(signer: Signer, neg_risk: bool = False, **kwargs) -> dict:
    """Build and sign an order in one step.

    Returns the order dict augmented with a 'signature' field.
    """
    order = build_order(signer=signer.address, **kwargs)
    return {**order, "signature": sign_order(order, signer, neg_risk=neg_risk)}


def order_to_json(signed: dict, owner: str, order_type: str = "GTC") -> dict:
    """Wire form for POST /orders. Salt and signatureType stay integers."""
    return {
        "order": {
            "salt": signed["salt"],
            "tokenId": str(signed["tokenId"]),
            "makerAmount": str(signed["makerAmount"]),
            "takerAmount": str(signed["takerAmount"]),
            "side": SIDE_BUY if signed["side"] == 0 else SIDE_SELL,
            "expiration": str(signed["expiration"]),
            "nonce": str(signed["nonce"]),
            "feeRateBps": str(signed["feeRateBps"]),
            "signatureType": signed["signatureType"],
            "maker": signed["maker"],
            "taker": signed["taker"],
            "signer": signed["signer"],
            "signature": signed["signature"],
        },
        "owner": owner,
        "orderType": order_type,
    }
