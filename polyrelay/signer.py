"""Local ECDSA signer (secp256k1) over pre-hashed 32-byte digests."""

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak

from .errors import ValidationError

_SIGNED_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"


def signed_message_hash(payload: bytes) -> bytes:
    """keccak256 of the Ethereum signed-message envelope around *payload*."""
    return keccak(_SIGNED_MESSAGE_PREFIX + str(len(payload)).encode() + payload)


class Signer:
    """Wraps a private key; exposes its address and raw hash signing.

    Args:
        private_key: Hex private key, with or without 0x prefix.
        chain_id: Chain the signatures are meant for.
    """

    def __init__(self, private_key: str, chain_id: int):
        try:
            self._account = Account.from_key(private_key)
        except Exception as exc:
            raise ValidationError(f"invalid private key: {exc}") from exc
        self.chain_id = chain_id

    def __repr__(self) -> str:
        return f"Signer(address={self.address}, chain_id={self.chain_id})"

    @property
    def address(self) -> str:
        return self._account.address

    def _sign(self, digest: bytes):
        if len(digest) != 32:
            raise ValidationError(f"digest must be 32 bytes, got {len(digest)}")
        return self._account.unsafe_sign_hash(digest)

    def sign(self, digest: bytes) -> bytes:
        """Return the 64-byte r || s signature of *digest*."""
        signed = self._sign(digest)
        return signed.r.to_bytes(32, "big") + signed.s.to_bytes(32, "big")

    def sign_recoverable(self, digest: bytes) -> bytes:
        """Return the 65-byte r || s || v signature with v in {27, 28}."""
        signed = self._sign(digest)
        v = signed.v
        if v < 27:
            v += 27
        return signed.r.to_bytes(32, "big") + signed.s.to_bytes(32, "big") + bytes([v])

    def sign_message(self, payload: bytes) -> bytes:
        """Sign the signed-message envelope of *payload* (personal_sign)."""
        return self.sign_recoverable(signed_message_hash(payload))

    def sign_typed_digest(self, digest: bytes) -> str:
        """Sign an EIP-712 digest. Returns a 0x-prefixed hex signature."""
        return "0x" + self.sign_recoverable(digest).hex()

    def sign_typed_data(self, domain: dict, types: dict, message: dict) -> str:
        """Full EIP-712 signing from domain/types/message. Returns 0x-hex."""
        signable = encode_typed_data(domain_data=domain, message_types=types, message_data=message)
        signed = self._account.sign_message(signable)
        return "0x" + bytes(signed.signature).hex()
