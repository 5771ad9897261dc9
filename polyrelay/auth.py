"""CLOB and relay authentication: L1 API key derivation, L2/builder HMAC headers."""

import base64
import hashlib
import hmac
import json
import logging
import time

import httpx

from .constants import CLOB_BASE_URL, HTTP_TIMEOUT
from .errors import ClobError, ValidationError
from .signer import Signer

logger = logging.getLogger(__name__)

_AUTH_TYPES = {
    "ClobAuth": [
        {"name": "address", "type": "address"},
        {"name": "timestamp", "type": "string"},
        {"name": "nonce", "type": "uint256"},
        {"name": "message", "type": "string"},
    ]
}

_AUTH_MESSAGE = "This message attests that I control the given wallet"

_CREDS_KEYS = ("apiKey", "secret", "passphrase")


def dumps_spaced(body) -> str:
    """Serialize *body* the way the relay and CLOB recompute it for HMAC.

    One space after every ``:`` and ``,`` and insertion order kept:
    ``{"a":1,"b":[1,2]}`` becomes ``{"a": 1, "b": [1, 2]}``.
    """
    return json.dumps(body)


def validate_creds(creds: dict | None, label: str = "API") -> dict:
    if not creds or any(not creds.get(k) for k in _CREDS_KEYS):
        present = {k: bool(creds and creds.get(k)) for k in _CREDS_KEYS}
        raise ValidationError(f"{label} credentials incomplete: {present}")
    return creds


def build_l1_headers(signer: Signer, nonce: int = 0) -> dict:
    """Sign a ClobAuth EIP-712 message and return the L1 header set."""
    ts = str(int(time.time()))
    domain = {"name": "ClobAuthDomain", "version": "1", "chainId": signer.chain_id}
    message = {
        "address": signer.address,
        "timestamp": ts,
        "nonce": nonce,
        "message": _AUTH_MESSAGE,
    }
    return {
        "POLY_ADDRESS": signer.address,
        "POLY_SIGNATURE": signer.sign_typed_data(domain, _AUTH_TYPES, message),
        "POLY_TIMESTAMP": ts,
        "POLY_NONCE": str(nonce),
    }


def derive_api_key(
    signer: Signer,
    base_url: str = CLOB_BASE_URL,
    nonce: int = 0,
    http: httpx.Client | None = None,
) -> dict:
    """Obtain API credentials. Tries to create first, falls back to deriving existing.

    Returns dict with keys: apiKey, secret, passphrase.
    """
    own_client = http is None
    http = http or httpx.Client(base_url=base_url, timeout=HTTP_TIMEOUT)
    try:
        resp = http.post("/auth/api-key", headers=build_l1_headers(signer, nonce))
        if resp.status_code == 200:
            return resp.json()
        logger.info("API key creation returned %d, deriving existing key", resp.status_code)

        resp = http.get("/auth/derive-api-key", headers=build_l1_headers(signer, nonce))
        if resp.status_code == 200:
            return resp.json()
        raise ClobError(f"Auth failed ({resp.status_code}): {resp.text[:200]}", resp.status_code)
    finally:
        if own_client:
            http.close()


def build_hmac_signature(
    secret: str, timestamp: str, method: str, path: str, body: str = ""
) -> str:
    """Compute HMAC-SHA256 signature for L2 request authentication."""
    message = timestamp + method + path
    if body:
        message += body
    key = base64.urlsafe_b64decode(secret)
    sig = hmac.new(key, message.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(sig).decode()


def build_l2_headers(creds: dict, address: str, method: str, path: str, body: str = "") -> dict:
    """L2 headers for an authenticated CLOB request."""
    ts = str(int(time.time()))
    return {
        "POLY_ADDRESS": address,
        "POLY_SIGNATURE": build_hmac_signature(creds["secret"], ts, method, path, body),
        "POLY_TIMESTAMP": ts,
        "POLY_API_KEY": creds["apiKey"],
        "POLY_PASSPHRASE": creds["passphrase"],
    }


def build_builder_headers(creds: dict, method: str, path: str, body: str = "") -> dict:
    """Builder-program L2 headers, as the relay expects them on /submit."""
    ts = str(int(time.time()))
    return {
        "POLY_BUILDER_API_KEY": creds["apiKey"],
        "POLY_BUILDER_PASSPHRASE": creds["passphrase"],
        "POLY_BUILDER_SIGNATURE": build_hmac_signature(creds["secret"], ts, method, path, body),
        "POLY_BUILDER_TIMESTAMP": ts,
    }
