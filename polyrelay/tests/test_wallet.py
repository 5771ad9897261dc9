"""Tests for polyrelay.wallet."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from polyrelay.constants import CONDITIONAL_TOKENS, CTF_EXCHANGE, SAFE_PROXY_FACTORY, USDC_ADDRESS
from polyrelay.encoding import (
    encode_balance_of,
    encode_balance_of_token,
    encode_compute_proxy_address,
    encode_get_poly_proxy_wallet_address,
)
from polyrelay.errors import ValidationError
from polyrelay.models import SignatureType
from polyrelay.signer import Signer
from polyrelay.wallet import Wallet

_TEST_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
_SIGNER = Signer(_TEST_KEY, 137)
_PROXY = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def _word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def _address_result(address: str) -> bytes:
    return b"\x00" * 12 + bytes.fromhex(address[2:])


def _make_wallet(signature_type=SignatureType.PROXY):
    gateway = MagicMock()
    gateway.call_contract.return_value = _address_result(_PROXY)
    return Wallet(_SIGNER, signature_type, gateway), gateway


class TestProxyAddress:
    def test_eoa_uses_base_address(self):
        wallet, gateway = _make_wallet(SignatureType.EOA)
        assert wallet.proxy_address() == _SIGNER.address
        assert wallet.funder == _SIGNER.address
        gateway.call_contract.assert_not_called()

    def test_proxy_resolved_via_exchange(self):
        wallet, gateway = _make_wallet(SignatureType.PROXY)
        assert wallet.proxy_address() == _PROXY
        gateway.call_contract.assert_called_once_with(
            CTF_EXCHANGE, encode_get_poly_proxy_wallet_address(_SIGNER.address),
        )

    def test_safe_resolved_via_factory(self):
        wallet, gateway = _make_wallet(SignatureType.SAFE)
        assert wallet.proxy_address() == _PROXY
        gateway.call_contract.assert_called_once_with(
            SAFE_PROXY_FACTORY, encode_compute_proxy_address(_SIGNER.address),
        )

    def test_cached(self):
        wallet, gateway = _make_wallet(SignatureType.SAFE)
        wallet.proxy_address()
        wallet.proxy_address()
        assert wallet.funder == _PROXY
        assert gateway.call_contract.call_count == 1

    def test_int_signature_type(self):
        wallet, _ = _make_wallet(2)
        assert wallet.signature_type is SignatureType.SAFE

    def test_invalid_signature_type(self):
        with pytest.raises(ValidationError):
            Wallet(_SIGNER, 7, MagicMock())

    def test_chain_id_from_signer(self):
        wallet, _ = _make_wallet()
        assert wallet.chain_id == 137
        assert wallet.base_address == _SIGNER.address


class TestBalances:
    def test_pol_balance(self):
        wallet, gateway = _make_wallet()
        gateway.balance_at.return_value = 2 * 10**18 + 5 * 10**17
        assert wallet.pol_balance() == Decimal("2.5")
        gateway.balance_at.assert_called_once_with(_SIGNER.address)

    def test_usdc_balance_of_funder(self):
        wallet, gateway = _make_wallet(SignatureType.EOA)
        gateway.call_contract.return_value = _word(12_340_000)
        assert wallet.usdc_balance() == Decimal("12.34")
        gateway.call_contract.assert_called_once_with(USDC_ADDRESS, encode_balance_of(_SIGNER.address))

    def test_token_balance(self):
        wallet, gateway = _make_wallet(SignatureType.EOA)
        gateway.call_contract.return_value = _word(5_000_000)
        assert wallet.token_balance("123", _PROXY) == Decimal("5")
        gateway.call_contract.assert_called_once_with(
            CONDITIONAL_TOKENS, encode_balance_of_token(_PROXY, 123),
        )

    def test_token_balance_invalid_id(self):
        wallet, _ = _make_wallet(SignatureType.EOA)
        with pytest.raises(ValidationError):
            wallet.token_balance("not-a-number")
