"""Polymarket gasless relay CLI. Run with: python3 -m polyrelay <command>"""

import argparse
import json
import logging
import sys

from .config import Config
from .errors import PolyrelayError, ValidationError
from .models import SignatureType

logger = logging.getLogger(__name__)


def _load_config(args) -> Config:
    cfg = Config.load(args.config_dir)
    if args.private_key:
        cfg.private_key = args.private_key
    if args.signature_type is not None:
        cfg.signature_type = args.signature_type
    if not cfg.private_key:
        print("Error: set POLY_PRIVATE_KEY env var or pass --private-key")
        sys.exit(1)
    cfg.validate()
    return cfg


def _get_wallet(cfg: Config):
    from .gateway import ChainGateway
    from .signer import Signer
    from .wallet import Wallet

    signer = Signer(cfg.private_key, cfg.chain_id)
    gateway = ChainGateway.for_chain(cfg.chain_id, cfg.rpc_endpoints())
    return Wallet(signer, cfg.signature_type, gateway)


def _get_gasless(args):
    """Relay client for redeem / split / merge (requires builder creds)."""
    from .gasless import GaslessClient

    cfg = _load_config(args)
    creds = cfg.load_builder_creds(args.config_dir)
    if creds is None:
        print(f"Error: builder creds not found ({cfg.builder_creds_file}); set POLY_BUILDER_CREDS_FILE")
        sys.exit(1)
    return GaslessClient(_get_wallet(cfg), builder_creds=creds, relay_url=cfg.relay_url)


def _get_client(args):
    """Authenticated CLOB client. Derives API creds when no creds file is present."""
    from .client import ClobClient

    cfg = _load_config(args)
    creds = cfg.load_api_creds(args.config_dir)
    if creds is not None:
        logger.info("Loaded API creds from %s", cfg.creds_file)
    return ClobClient(_get_wallet(cfg), api_creds=creds, base_url=cfg.clob_url)


def _print_receipt(receipt) -> None:
    print(f"tx:     {receipt.tx_hash}")
    print(f"block:  {receipt.block_number}")
    print(f"status: {'success' if receipt.succeeded else 'reverted'}")
    print(f"gas:    {receipt.gas_used}")


# -- Commands ----------------------------------------------------------------

def cmd_address(args):
    """Show the signer and its proxy / Safe wallet address."""
    wallet = _get_wallet(_load_config(args))
    print(f"signer: {wallet.base_address}")
    print(f"wallet: {wallet.proxy_address()} ({wallet.signature_type.name})")


def cmd_balance(args):
    """Show POL, USDC.e and optionally a conditional-token balance."""
    wallet = _get_wallet(_load_config(args))
    print(f"POL:    {wallet.pol_balance()}")
    print(f"USDC.e: {wallet.usdc_balance()}")
    if args.token_id:
        print(f"token:  {wallet.token_balance(args.token_id)}")


def cmd_nonce(args):
    """Fetch the current relay nonce for the wallet."""
    with _get_gasless(args) as gasless:
        if gasless.wallet.signature_type == SignatureType.EOA:
            raise ValidationError("relay nonces exist only for PROXY or SAFE wallets; use --signature-type 1 or 2")
        wallet_type = gasless.wallet.signature_type.name
        print(gasless.relay.get_nonce(wallet_type))


def cmd_redeem(args):
    """Redeem resolved positions through the relay."""
    from .gasless import RedeemPosition

    amounts = [float(a) for a in args.amounts.split(",")]
    positions = [
        RedeemPosition(condition_id=cid, amounts=amounts, neg_risk=args.neg_risk)
        for cid in args.condition_ids
    ]
    with _get_gasless(args) as gasless:
        _print_receipt(gasless.redeem_positions(positions))


def cmd_split(args):
    """Split USDC.e into a YES + NO token pair."""
    with _get_gasless(args) as gasless:
        _print_receipt(gasless.split_position(args.condition_id, args.amount, neg_risk=args.neg_risk))


def cmd_merge(args):
    """Merge a YES + NO token pair back into USDC.e."""
    with _get_gasless(args) as gasless:
        _print_receipt(gasless.merge_positions(args.condition_id, args.amount, neg_risk=args.neg_risk))


def cmd_orders(args):
    """List open orders."""
    with _get_client(args) as client:
        orders = client.get_orders(market=args.market, asset_id=args.token_id)
        if not orders:
            print("No open orders.")
            return
        for o in orders:
            print(f"  {o.get('id', '?')}  {o.get('side', '?')}  "
                  f"price={o.get('price', '?')}  size={o.get('original_size', '?')}")
        print(f"\n{len(orders)} open order(s)")


def cmd_order(args):
    """Place a limit order."""
    from .models import OrderArgs

    order = OrderArgs(
        token_id=args.token_id,
        side=args.side.upper(),
        price=args.price,
        size=args.size,
        tick_size=args.tick_size,
        neg_risk=args.neg_risk,
    )
    with _get_client(args) as client:
        print(json.dumps(client.post_order(order), indent=2))


def cmd_cancel(args):
    """Cancel an order, a market's orders, or all orders."""
    with _get_client(args) as client:
        if args.order_id == "all":
            result = client.cancel_all()
        elif args.market:
            result = client.cancel_market_orders(args.order_id)
        else:
            result = client.cancel_order(args.order_id)
        print(json.dumps(result, indent=2))


def cmd_derive(args):
    """Derive API credentials from private key (L1 auth)."""
    from .auth import derive_api_key
    from .signer import Signer

    cfg = _load_config(args)
    creds = derive_api_key(Signer(cfg.private_key, cfg.chain_id), base_url=cfg.clob_url)
    print(json.dumps(creds, indent=2))

    if args.save:
        with open(args.save, "w") as f:
            json.dump(creds, f, indent=2)
        print(f"\nSaved to {args.save}")


# -- CLI setup ---------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python3 -m polyrelay",
        description="Polymarket gasless relay and CLOB client",
    )
    parser.add_argument("--private-key", help="Ethereum private key (or set POLY_PRIVATE_KEY)")
    parser.add_argument("--signature-type", type=int, choices=[0, 1, 2],
                        help="0 EOA, 1 proxy, 2 Safe (or set POLY_SIGNATURE_TYPE)")
    parser.add_argument("--config-dir", default=".", help="Directory holding config.json and creds")
    sub = parser.add_subparsers(dest="command", required=True)

    # address
    p = sub.add_parser("address", help="Show signer and wallet addresses")
    p.set_defaults(func=cmd_address)

    # balance
    p = sub.add_parser("balance", help="Show wallet balances")
    p.add_argument("--token-id", help="Also show this conditional token balance")
    p.set_defaults(func=cmd_balance)

    # nonce
    p = sub.add_parser("nonce", help="Show the relay nonce")
    p.set_defaults(func=cmd_nonce)

    # redeem
    p = sub.add_parser("redeem", help="Redeem resolved positions")
    p.add_argument("condition_ids", nargs="+")
    p.add_argument("--amounts", required=True, help="Comma-separated per-outcome amounts held")
    p.add_argument("--neg-risk", action="store_true")
    p.set_defaults(func=cmd_redeem)

    # split / merge
    for name, func, text in (("split", cmd_split, "Split USDC.e into outcome tokens"),
                             ("merge", cmd_merge, "Merge outcome tokens into USDC.e")):
        p = sub.add_parser(name, help=text)
        p.add_argument("condition_id")
        p.add_argument("amount", type=float)
        p.add_argument("--neg-risk", action="store_true")
        p.set_defaults(func=func)

    # orders
    p = sub.add_parser("orders", help="List open orders")
    p.add_argument("--market", help="Filter by condition ID")
    p.add_argument("--token-id", help="Filter by token ID")
    p.set_defaults(func=cmd_orders)

    # order
    p = sub.add_parser("order", help="Place a limit order")
    p.add_argument("token_id")
    p.add_argument("side", choices=["buy", "sell", "BUY", "SELL"])
    p.add_argument("price", type=float)
    p.add_argument("size", type=float)
    p.add_argument("--tick-size", choices=["0.1", "0.01", "0.001", "0.0001"])
    p.add_argument("--neg-risk", action="store_true")
    p.set_defaults(func=cmd_order)

    # cancel
    p = sub.add_parser("cancel", help="Cancel order(s)")
    p.add_argument("order_id", help="Order ID, condition ID with --market, or 'all'")
    p.add_argument("--market", action="store_true", help="Treat order_id as a condition ID")
    p.set_defaults(func=cmd_cancel)

    # derive
    p = sub.add_parser("derive", help="Derive API creds from private key")
    p.add_argument("--save", metavar="FILE", help="Save creds to JSON file")
    p.set_defaults(func=cmd_derive)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    cfg_level = Config.load(args.config_dir).log_level
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(message)s",
        level=getattr(logging, cfg_level.upper(), logging.INFO),
    )
    try:
        args.func(args)
    except PolyrelayError as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
