"""Polymarket relay + CLOB constants: chains, URLs, addresses, EIP-712 types."""

# Chains
POLYGON = 137
AMOY = 80002

# URLs
CLOB_BASE_URL = "https://clob.polymarket.com"
RELAYER_URL = "https://relayer-v2.polymarket.com"

POLYGON_RPC_MAINNET = "https://rpc-mainnet.matic.quiknode.pro"
POLYGON_RPC_AMOY = "https://rpc-amoy.polygon.technology"

# Endpoint pools for the chain gateway, tried round-robin
RPC_ENDPOINTS = {
    POLYGON: [
        POLYGON_RPC_MAINNET,
        "https://polygon-rpc.com",
        "https://polygon-bor-rpc.publicnode.com",
    ],
    AMOY: [
        POLYGON_RPC_AMOY,
    ],
}

# Contract addresses (Polygon)
CTF_EXCHANGE = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
NEG_RISK_CTF_EXCHANGE = "0xC5d563A36AE78145C45a50134d48A1215220f80a"
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
CONDITIONAL_TOKENS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
NEG_RISK_ADAPTER = "0xd91E80cF2E7be2e162c6513ceD06f1dD0dA35296"
PROXY_FACTORY = "0xaB45c5A4B0c941a2F231C04C3f49182e1A254052"
SAFE_PROXY_FACTORY = "0xaacFeEa03eb1561C4e67d661e40682Bd20E3541b"
SAFE_MULTISEND = "0xA238CBeb142c10Ef7Ad8442C6D1f9E89e07e7761"

# Relay hub / relay operator the proxy struct commits to
RELAY_HUB = "0xD216153c06E857cD7f72665E0aF1d7D82172F494"
RELAY_ADDRESS = "0x7db63fe6d62eb73fb01f8009416f4c2bb4fbda6a"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
HASH_ZERO = "0x" + "00" * 32

# Relay protocol
RELAY_NONCE_MAX_RETRIES = 3
RELAY_NONCE_TIMEOUT = 30.0
RELAY_SUBMIT_TIMEOUT = 60.0
HTTP_TIMEOUT = 30.0

# Receipt polling
TRANSACTION_POLL_INTERVAL = 2.0
TRANSACTION_WAIT_TIMEOUT = 300.0

# Gas (proxy path)
DEFAULT_GAS_ESTIMATE = 10_000_000
GAS_ESTIMATE_MULTIPLIER = 130  # percent
GAS_ESTIMATE_EXTRA = 100_000

# Orders
MAX_ORDERS_PER_BATCH = 15
MIN_ORDER_SIZE = 5
DEFAULT_TICK_SIZE = "0.001"
END_CURSOR = "LTE="
INITIAL_CURSOR = "MA=="

# USDC and outcome tokens both have 6 decimals
TOKEN_DECIMALS = 6

# EIP-712 domain
ORDER_DOMAIN = {
    "name": "Polymarket CTF Exchange",
    "version": "1",
    "chainId": POLYGON,
}
