"""
pmtrade - command line entry point

Usage:
    pmtrade quote --mint <outcome mint> --amount 50 [--address <wallet>]
    pmtrade buy --market <ticker> --mint <outcome mint> --amount 50 --side YES
    pmtrade balance [--address <wallet>]
    pmtrade positions [--address <wallet>]

Wallet: SOLANA_PRIVATE_KEY (base58, 64 bytes) or --keypair-file (JSON array).
Read-only commands only need --address.
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from loguru import logger

from .adapters import (
    DFlowMarketsApi,
    DFlowTradeApi,
    KeypairSigningGateway,
    SolanaLedger,
    load_keypair,
    load_keypair_file,
)
from .application import BalanceReconciler, OrderStatusPoller, PositionMatcher, TradeExecutor
from .config import TradeConfig, load_config
from .domain.amounts import format_stable_amount
from .domain.models import TradePhase
from .logging import configure_logging


def _load_signer(args, config: TradeConfig, require_key: bool) -> KeypairSigningGateway:
    keypair = None
    if args.keypair_file:
        keypair = load_keypair_file(args.keypair_file)
    else:
        private_key = os.getenv("SOLANA_PRIVATE_KEY", "")
        if private_key or require_key:
            keypair = load_keypair(private_key)
    return KeypairSigningGateway(keypair, config.rpc_url)


def _wallet_address(args, signer: KeypairSigningGateway) -> str:
    address = args.address or signer.address
    if not address:
        raise ValueError("No wallet: pass --address or set SOLANA_PRIVATE_KEY")
    return address


async def command_quote(args, config: TradeConfig) -> int:
    signer = _load_signer(args, config, require_key=False)
    api = DFlowTradeApi(config)
    try:
        quote = await api.get_quote(args.mint, args.amount, _wallet_address(args, signer))
    finally:
        await api.close()

    print(f"mode:          {quote.execution_mode.value}")
    print(f"in (USDC):     {format_stable_amount(quote.in_amount, places=2)}")
    print(f"out (raw):     {quote.out_amount}")
    print(f"price impact:  {quote.price_impact_pct}%")
    if quote.order_id:
        print(f"order id:      {quote.order_id}")
    for step in quote.route:
        print(f"  route: {step.label} ({step.percent}%)")
    return 0


async def command_buy(args, config: TradeConfig) -> int:
    signer = _load_signer(args, config, require_key=True)
    api = DFlowTradeApi(config)
    ledger = SolanaLedger(config)
    balance = BalanceReconciler(ledger)
    poller = OrderStatusPoller(
        api.get_order_status,
        max_attempts=config.poll_max_attempts,
        interval_seconds=config.poll_interval_seconds,
    )
    executor = TradeExecutor(api, signer, ledger, poller, balance, config)
    try:
        await executor.on_wallet_available()
        affordable = balance.can_afford(args.amount)
        if affordable is False:
            logger.warning(f"BUY | balance {executor.cached_balance} USDC is below {args.amount}")
        signature = await executor.buy(args.market, args.mint, args.amount, args.side)
    finally:
        await api.close()
        await ledger.close()
        await signer.close()

    state = executor.state
    if state.phase is TradePhase.SUCCEEDED:
        print(f"succeeded: {signature}")
        if executor.cached_balance is not None:
            print(f"balance:   {executor.cached_balance} USDC")
        return 0
    print(f"failed: {state.last_error}", file=sys.stderr)
    return 1


async def command_balance(args, config: TradeConfig) -> int:
    signer = _load_signer(args, config, require_key=False)
    ledger = SolanaLedger(config)
    try:
        value = await BalanceReconciler(ledger).get_balance(_wallet_address(args, signer))
    finally:
        await ledger.close()
    print(f"{value} USDC")
    return 0


async def command_positions(args, config: TradeConfig) -> int:
    signer = _load_signer(args, config, require_key=False)
    ledger = SolanaLedger(config)
    catalog = DFlowMarketsApi(config)
    try:
        snapshot = await PositionMatcher(ledger, catalog, config).refresh_positions(
            _wallet_address(args, signer)
        )
    finally:
        await ledger.close()
        await catalog.close()

    if not snapshot.ok:
        print(f"error: {snapshot.error}", file=sys.stderr)
        return 1
    if not snapshot.active_positions:
        print("no open positions")
    for p in snapshot.active_positions:
        print(
            f"{p.market_id:<32} {p.side.value:<3} shares={p.share_amount} "
            f"mark={p.mark_price:.4f} value={p.current_value:.2f}  {p.market_title}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pmtrade",
        description="Prediction-market trading on Solana via DFlow",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", default=None, help="Path to settings TOML")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-dir", default=None, help="Also write daily log files here")
    parser.add_argument("--keypair-file", default=None, help="JSON keypair file instead of SOLANA_PRIVATE_KEY")

    subparsers = parser.add_subparsers(dest="command")

    parser_quote = subparsers.add_parser("quote", help="Preview a buy quote")
    parser_quote.add_argument("--mint", required=True, help="Outcome token mint")
    parser_quote.add_argument("--amount", required=True, help="USDC amount")
    parser_quote.add_argument("--address", default=None)

    parser_buy = subparsers.add_parser("buy", help="Buy an outcome token")
    parser_buy.add_argument("--market", required=True, help="Market ticker")
    parser_buy.add_argument("--mint", required=True, help="Outcome token mint")
    parser_buy.add_argument("--amount", required=True, help="USDC amount")
    parser_buy.add_argument("--side", required=True, choices=["YES", "NO", "yes", "no"])

    parser_balance = subparsers.add_parser("balance", help="USDC balance")
    parser_balance.add_argument("--address", default=None)

    parser_positions = subparsers.add_parser("positions", help="Open prediction-market positions")
    parser_positions.add_argument("--address", default=None)

    return parser


COMMANDS = {
    "quote": command_quote,
    "buy": command_buy,
    "balance": command_balance,
    "positions": command_positions,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command not in COMMANDS:
        parser.print_help()
        return 2

    configure_logging(args.log_level, args.log_dir)
    try:
        config = load_config(args.config)
        return asyncio.run(COMMANDS[args.command](args, config))
    except ValueError as e:
        # never echoes key material: load_keypair messages are key-free
        print(f"FATAL: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"CLI | {args.command} failed | {type(e).__name__}: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
