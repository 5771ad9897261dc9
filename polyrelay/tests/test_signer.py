"""Tests for polyrelay.signer: raw digest, signed-message and EIP-712 signing."""

import pytest
from eth_account import Account
from eth_account.messages import defunct_hash_message, encode_defunct, encode_typed_data
from eth_utils import keccak

from polyrelay.errors import ValidationError
from polyrelay.signer import Signer, signed_message_hash

# Deterministic test key (DO NOT use with real funds)
_TEST_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
_TEST_ADDRESS = Account.from_key(_TEST_KEY).address


class TestSignerInit:
    def test_address(self):
        signer = Signer(_TEST_KEY, 137)
        assert signer.address == _TEST_ADDRESS
        assert signer.chain_id == 137

    def test_key_without_prefix(self):
        assert Signer(_TEST_KEY[2:], 137).address == _TEST_ADDRESS

    def test_invalid_key(self):
        with pytest.raises(ValidationError):
            Signer("0xnothex", 137)

    def test_repr_hides_key(self):
        assert _TEST_KEY[2:] not in repr(Signer(_TEST_KEY, 137))


class TestSignedMessageHash:
    def test_matches_eth_account(self):
        payload = keccak(b"hello")
        assert signed_message_hash(payload) == bytes(defunct_hash_message(primitive=payload))

    def test_length_prefix_is_decimal(self):
        payload = b"x" * 100
        expected = keccak(b"\x19Ethereum Signed Message:\n100" + payload)
        assert signed_message_hash(payload) == expected


class TestSign:
    def test_sign_is_64_bytes(self):
        signer = Signer(_TEST_KEY, 137)
        assert len(signer.sign(keccak(b"digest"))) == 64

    def test_recoverable_v(self):
        signer = Signer(_TEST_KEY, 137)
        sig = signer.sign_recoverable(keccak(b"digest"))
        assert len(sig) == 65
        assert sig[64] in (27, 28)

    def test_recoverable_prefix_matches_plain(self):
        signer = Signer(_TEST_KEY, 137)
        digest = keccak(b"digest")
        assert signer.sign_recoverable(digest)[:64] == signer.sign(digest)

    def test_rejects_short_digest(self):
        with pytest.raises(ValidationError):
            Signer(_TEST_KEY, 137).sign(b"\x01" * 31)

    def test_deterministic(self):
        signer = Signer(_TEST_KEY, 137)
        digest = keccak(b"digest")
        assert signer.sign(digest) == signer.sign(digest)


class TestSignMessage:
    def test_recovers_to_signer(self):
        signer = Signer(_TEST_KEY, 137)
        payload = keccak(b"proxy struct")
        sig = signer.sign_message(payload)
        recovered = Account.recover_message(encode_defunct(primitive=payload), signature=sig)
        assert recovered == _TEST_ADDRESS

    def test_typed_digest_is_hex(self):
        signer = Signer(_TEST_KEY, 137)
        digest = keccak(b"order")
        assert signer.sign_typed_digest(digest) == "0x" + signer.sign_recoverable(digest).hex()


class TestSignTypedData:
    def test_recovers_to_signer(self):
        signer = Signer(_TEST_KEY, 137)
        domain = {"name": "ClobAuthDomain", "version": "1", "chainId": 137}
        types = {
            "ClobAuth": [
                {"name": "address", "type": "address"},
                {"name": "timestamp", "type": "string"},
                {"name": "nonce", "type": "uint256"},
                {"name": "message", "type": "string"},
            ]
        }
        message = {"address": _TEST_ADDRESS, "timestamp": "1700000000", "nonce": 0, "message": "hi"}
        sig = signer.sign_typed_data(domain, types, message)
        assert sig.startswith("0x") and len(sig) == 132

        signable = encode_typed_data(domain_data=domain, message_types=types, message_data=message)
        assert Account.recover_message(signable, signature=sig) == _TEST_ADDRESS
