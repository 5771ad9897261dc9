"""Gasless position actions: redeem, split and merge through the relay."""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal

from .builder import TransactionBuilder
from .constants import CONDITIONAL_TOKENS, NEG_RISK_ADAPTER, RELAYER_URL, TOKEN_DECIMALS
from .encoding import (
    encode_merge,
    encode_merge_neg_risk,
    encode_redeem,
    encode_redeem_neg_risk,
    encode_split,
    encode_split_neg_risk,
)
from .errors import ValidationError
from .models import ProxyCall, TransactionReceipt, validate_hash
from .relay import RelayClient
from .wallet import Wallet

logger = logging.getLogger(__name__)

_UNIT = Decimal(10) ** TOKEN_DECIMALS


@dataclass
class RedeemPosition:
    condition_id: str
    amounts: list[float] = field(default_factory=list)
    neg_risk: bool = False


def to_base_units(amount) -> int:
    """Human amount -> 6-decimal integer units, truncating dust."""
    return int((Decimal(str(amount)) * _UNIT).to_integral_value(rounding=ROUND_DOWN))


def _positive_units(amount) -> int:
    units = to_base_units(amount)
    if units <= 0:
        raise ValidationError(f"amount must be positive, got: {amount}")
    return units


class GaslessClient:
    """Redeem / split / merge via the relay, signed by the wallet's owner key.

    Args:
        wallet: Wallet context in PROXY or SAFE mode.
        builder_creds: Builder API credentials for relay authentication.
        relay_url: Relay base URL.
        relay: Pre-built RelayClient (tests, shared counters).
    """

    def __init__(
        self,
        wallet: Wallet,
        builder_creds: dict | None = None,
        relay_url: str = RELAYER_URL,
        relay: RelayClient | None = None,
        logger: logging.Logger = logger,
    ):
        self.wallet = wallet
        self.relay = relay or RelayClient(wallet, builder_creds, relay_url=relay_url)
        self.builder = TransactionBuilder(wallet, self.relay)
        self._logger = logger

    def __repr__(self) -> str:
        return f"GaslessClient(wallet={self.wallet!r})"

    def execute_batch(self, calls: list[ProxyCall], metadata: str) -> TransactionReceipt:
        """Sign *calls* as one meta-transaction, submit, and wait for the receipt."""
        body = self.builder.build(calls, metadata)
        self._logger.info(
            "Submitting %d call(s) [%s] via %s wallet",
            len(calls), metadata, self.wallet.signature_type.name,
        )
        return self.relay.execute(body)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def redeem_positions(self, positions: list[RedeemPosition]) -> TransactionReceipt:
        """Redeem resolved positions in one batch."""
        if not positions:
            raise ValidationError("no positions to redeem")

        calls = []
        for i, pos in enumerate(positions):
            validate_hash(pos.condition_id, f"position {i} condition id")
            if not pos.amounts:
                raise ValidationError(f"position {i}: amounts array is empty")
            if pos.neg_risk:
                if any(a < 0 for a in pos.amounts):
                    raise ValidationError(f"position {i}: neg-risk amounts cannot be negative: {pos.amounts}")
                if not any(a > 0 for a in pos.amounts):
                    raise ValidationError(f"position {i}: neg-risk redeem needs at least one positive amount")
                units = [to_base_units(a) for a in pos.amounts]
                calls.append(ProxyCall(to=NEG_RISK_ADAPTER, data=encode_redeem_neg_risk(pos.condition_id, units)))
            else:
                calls.append(ProxyCall(to=CONDITIONAL_TOKENS, data=encode_redeem(pos.condition_id)))

        return self.execute_batch(calls, "redeem")

    def split_position(self, condition_id: str, amount: float, neg_risk: bool = False) -> TransactionReceipt:
        """Split USDC into a YES + NO token pair."""
        units = _positive_units(amount)
        if neg_risk:
            call = ProxyCall(to=NEG_RISK_ADAPTER, data=encode_split_neg_risk(condition_id, units))
        else:
            call = ProxyCall(to=CONDITIONAL_TOKENS, data=encode_split(condition_id, units))
        return self.execute_batch([call], "split")

    def merge_positions(self, condition_id: str, amount: float, neg_risk: bool = False) -> TransactionReceipt:
        """Merge a YES + NO token pair back into USDC."""
        units = _positive_units(amount)
        if neg_risk:
            call = ProxyCall(to=NEG_RISK_ADAPTER, data=encode_merge_neg_risk(condition_id, units))
        else:
            call = ProxyCall(to=CONDITIONAL_TOKENS, data=encode_merge(condition_id, units))
        return self.execute_batch([call], "merge")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.relay.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
