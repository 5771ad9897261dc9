"""Wallet context: signer, wallet mode, chain gateway and the derived proxy address."""

import logging
import threading
from decimal import Decimal

from .constants import (
    CONDITIONAL_TOKENS,
    CTF_EXCHANGE,
    SAFE_PROXY_FACTORY,
    TOKEN_DECIMALS,
    USDC_ADDRESS,
)
from .encoding import (
    decode_address,
    decode_uint,
    encode_balance_of,
    encode_balance_of_token,
    encode_compute_proxy_address,
    encode_get_poly_proxy_wallet_address,
)
from .errors import ValidationError
from .gateway import ChainGateway
from .models import SignatureType
from .signer import Signer

logger = logging.getLogger(__name__)

_WEI = Decimal(10) ** 18
_TOKEN_UNIT = Decimal(10) ** TOKEN_DECIMALS


class Wallet:
    """Everything the relay, builder and CLOB client need to know about the caller.

    The proxy address is resolved lazily on first use and cached: the
    exchange's getPolyProxyWalletAddress for proxy wallets, the Safe
    factory's computeProxyAddress for Safe wallets, the base address for EOA.
    """

    def __init__(
        self,
        signer: Signer,
        signature_type: SignatureType | int,
        gateway: ChainGateway,
        logger: logging.Logger = logger,
    ):
        try:
            self.signature_type = SignatureType(signature_type)
        except ValueError:
            raise ValidationError(f"unsupported signature type: {signature_type}") from None
        self.signer = signer
        self.gateway = gateway
        self._logger = logger
        self._proxy_address: str | None = None
        self._lock = threading.Lock()
        if self.signature_type == SignatureType.EOA:
            self._proxy_address = signer.address

    def __repr__(self) -> str:
        return f"Wallet(address={self.base_address}, type={self.signature_type.name})"

    @property
    def base_address(self) -> str:
        return self.signer.address

    @property
    def chain_id(self) -> int:
        return self.signer.chain_id

    # ------------------------------------------------------------------
    # Proxy / Safe addresses
    # ------------------------------------------------------------------

    def poly_proxy_wallet_address(self, owner: str | None = None) -> str:
        result = self.gateway.call_contract(
            CTF_EXCHANGE, encode_get_poly_proxy_wallet_address(owner or self.base_address),
        )
        return decode_address(result)

    def safe_address(self, owner: str | None = None) -> str:
        result = self.gateway.call_contract(
            SAFE_PROXY_FACTORY, encode_compute_proxy_address(owner or self.base_address),
        )
        return decode_address(result)

    def proxy_address(self) -> str:
        """Address that holds funds and acts as order maker."""
        with self._lock:
            if self._proxy_address is None:
                if self.signature_type == SignatureType.PROXY:
                    self._proxy_address = self.poly_proxy_wallet_address()
                else:
                    self._proxy_address = self.safe_address()
                self._logger.info(
                    "Resolved %s wallet %s for %s",
                    self.signature_type.name, self._proxy_address, self.base_address,
                )
            return self._proxy_address

    @property
    def funder(self) -> str:
        return self.proxy_address()

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def pol_balance(self, address: str | None = None) -> Decimal:
        """Native POL balance (18 decimals)."""
        wei = self.gateway.balance_at(address or self.base_address)
        return Decimal(wei) / _WEI

    def usdc_balance(self, address: str | None = None) -> Decimal:
        """USDC.e balance of *address* (defaults to the funder)."""
        result = self.gateway.call_contract(USDC_ADDRESS, encode_balance_of(address or self.funder))
        return Decimal(decode_uint(result)) / _TOKEN_UNIT

    def token_balance(self, token_id: str, address: str | None = None) -> Decimal:
        """Conditional-token balance of *address* (defaults to the funder)."""
        try:
            token = int(token_id)
        except (TypeError, ValueError):
            raise ValidationError(f"invalid token ID: {token_id!r}") from None
        result = self.gateway.call_contract(
            CONDITIONAL_TOKENS, encode_balance_of_token(address or self.funder, token),
        )
        return Decimal(decode_uint(result)) / _TOKEN_UNIT
