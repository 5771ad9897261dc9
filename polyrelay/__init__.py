"""Polymarket gasless relay client: proxy/Safe meta-transactions and CLOB order batching."""

from .client import ClobClient
from .gasless import GaslessClient, RedeemPosition
from .gateway import ChainGateway
from .models import OrderArgs, SignatureType
from .signer import Signer
from .wallet import Wallet

__all__ = [
    "ChainGateway",
    "ClobClient",
    "GaslessClient",
    "OrderArgs",
    "RedeemPosition",
    "SignatureType",
    "Signer",
    "Wallet",
]
