"""
Main entry point for the DEX flash-swap arbitrage bot.
"""
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .chain_client import ChainClient
from .config import (
    Settings,
    build_oracle,
    build_venues,
    load_amounts,
    load_config,
    load_paths,
    load_tokens,
    resolve_path,
)
from .hop_quoter import HopQuoter
from .path_evaluator import PathEvaluator, PathResult, pair_paths
from .tokens import Amount, PrecisionViolation, Token
from .trader import Trader
from .utils import format_amount, get_terminal_colors

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('arbitrage_bot.log')
    ]
)
logger = logging.getLogger(__name__)

colors = get_terminal_colors()

SCAN_INTERVAL_SECONDS = 5.0


def opportunities_to_json(opportunities: Sequence[PathResult]) -> List[Dict[str, Any]]:
    """
    Ranked opportunities as [{"path": [symbols], "profit": "$x.xxxx"}].

    Profit is the reference-currency figure when available, otherwise the
    loan-token profit with its symbol.
    """
    entries = []
    for opp in opportunities:
        if opp.reference_profit is not None:
            profit = f"${format_amount(opp.reference_profit, with_symbol=False)}"
        else:
            profit = format_amount(opp.profit)
        entries.append({
            "path": [token.symbol for token in opp.token_path],
            "profit": profit
        })
    return entries


def write_opportunities(opportunities: Sequence[PathResult], output_path: Path) -> None:
    with open(output_path, 'w') as f:
        json.dump(opportunities_to_json(opportunities), f, indent=2)
    logger.info(f"Wrote {len(opportunities)} opportunities to {output_path}")


def resolve_amounts(
    start_tokens: Sequence[Token],
    amount: Optional[str],
    configured: Dict[Token, Amount]
) -> Dict[Token, Amount]:
    """
    Loan amount per start token.

    An explicit amount (whole tokens) applies to every start token; otherwise
    the configured amounts are used.
    """
    if amount is None:
        return dict(configured)
    return {token: token.from_display(amount) for token in start_tokens}


async def log_account_balances(
    chain: ChainClient,
    trader: Trader,
    paths: Sequence[Sequence[Token]]
) -> None:
    """
    Log the wallet's ETH and path-token balances, then the largest flash
    loan available for every start token.
    """
    path_tokens: List[Token] = []
    for path in paths:
        for token in path:
            if token not in path_tokens:
                path_tokens.append(token)

    if chain.account is not None:
        balance = await chain.get_balance()
        logger.info(f"Wallet {chain.address} balance: {balance / 1e18:.4f} ETH")
        for token in path_tokens:
            token_balance = await chain.get_token_balance(token)
            logger.info(f"  {colors['YELLOW']}{format_amount(token_balance)}{colors['RESET']}")

    start_tokens = []
    for path in paths:
        if path[0] not in start_tokens:
            start_tokens.append(path[0])
    for token in start_tokens:
        pair_token = trader.pair_for(token)
        if pair_token is None:
            continue
        max_amount = await chain.max_flash_amount(token, pair_token, trader.fee_tier)
        if max_amount is not None:
            logger.info(f"Max flash loan amount of {token.symbol}: {colors['CYAN']}{format_amount(max_amount)}{colors['RESET']}")


async def run_round(
    trader: Trader,
    paths: Sequence[Sequence[Token]],
    amounts: Dict[Token, Amount],
    pairs: bool,
    output_path: Optional[Path]
) -> None:
    """One pass over all paths."""
    if pairs:
        opportunities = await trader.scan_opportunities(paths, amounts, max_opportunities=len(paths))
        if output_path is not None:
            write_opportunities(opportunities, output_path)
        if trader.mode != 'scan':
            for opp in opportunities:
                await trader.process_result(opp)
        return

    for path in paths:
        amount_in = amounts.get(path[0])
        if amount_in is None:
            logger.warning(f"No loan amount for {path[0].symbol}, skipping path")
            continue
        await trader.evaluate_and_execute(amount_in, path)


async def main(
    mode: Optional[str] = None,
    path: Optional[List[str]] = None,
    amount: Optional[str] = None,
    pairs: bool = False,
    once: bool = False,
    output: str = 'output.json',
    interval: float = SCAN_INTERVAL_SECONDS
):
    """Main function."""
    logger.info("Starting DEX Flash-Swap Arbitrage Bot")

    # Load configuration (.env first, Settings reads the environment)
    config = load_config()
    settings = Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)
    mode = (mode or settings.mode).lower()

    tokens = load_tokens(config)
    if not tokens:
        logger.error("No tokens configured in config.json")
        return

    # Work list
    if pairs:
        base_symbol = path[0] if path else config.get('flash', {}).get('pair_token', 'WETH')
        base = resolve_path([base_symbol], tokens)[0]
        paths = pair_paths(base, list(tokens.values()))
    elif path:
        paths = [resolve_path(path, tokens)]
    else:
        paths = load_paths(config, tokens)
    if not paths:
        logger.error("No paths to evaluate: pass --path or configure 'paths' in config.json")
        return

    amounts = resolve_amounts([p[0] for p in paths], amount, load_amounts(config, tokens))

    if mode in ('simulate', 'live') and not settings.flash_swap_contract:
        logger.error(f"FLASH_SWAP_CONTRACT required for {mode} mode")
        return
    if mode == 'live' and not settings.private_key:
        logger.error("Wallet required for live trading")
        return

    flash_config = config.get('flash', {})
    chain = ChainClient(
        settings.rpc_url,
        private_key=settings.private_key,
        fallback_rpc_url=settings.rpc_url_fallback,
        flash_swap_address=settings.flash_swap_contract,
        univ3_factory_address=settings.univ3_factory,
        gas_limit=int(flash_config.get('gas_limit', 2_000_000))
    )

    venues = build_venues(config, settings, chain.w3)
    hop_quoter = HopQuoter(venues, quote_timeout=settings.quote_timeout)
    oracle = build_oracle(config, settings, tokens, chain.w3)
    evaluator = PathEvaluator(hop_quoter, loan_fee_rate=settings.loan_fee_rate, oracle=oracle)

    pair_token = tokens.get(str(flash_config.get('pair_token', 'WETH')).upper())
    fallback_pair_token = tokens.get(str(flash_config.get('fallback_pair_token', 'DAI')).upper())
    trader = Trader(
        evaluator,
        chain,
        mode=mode,
        pair_token=pair_token,
        fallback_pair_token=fallback_pair_token,
        fee_tier=int(flash_config.get('fee_tier', 500))
    )

    logger.info(
        f"Mode: {colors['CYAN']}{mode.upper()}{colors['RESET']} | "
        f"Venues: {colors['CYAN']}{', '.join(v.venue_id for v in venues)}{colors['RESET']} | "
        f"Paths: {colors['CYAN']}{len(paths)}{colors['RESET']} | "
        f"Loan fee: {colors['YELLOW']}{float(settings.loan_fee_rate) * 100:.2f}%{colors['RESET']}"
    )

    await log_account_balances(chain, trader, paths)

    if mode == 'live':
        # STRICT WARNING: Live mode sends real transactions
        logger.warning("=" * 60)
        logger.warning("LIVE MODE ENABLED - REAL TRANSACTIONS WILL BE SENT!")
        logger.warning("=" * 60)
        logger.warning("Starting live mode in 3 seconds... Press Ctrl+C to cancel")
        await asyncio.sleep(3)

    output_path = Path(output) if pairs else None
    try:
        while True:
            try:
                await run_round(trader, paths, amounts, pairs, output_path)
            except PrecisionViolation:
                raise
            except Exception as e:
                if once:
                    raise
                logger.error(f"Error in scan loop: {e}")

            if once:
                break
            await asyncio.sleep(interval)
    finally:
        # Cleanup
        for venue in venues:
            close = getattr(venue, 'close', None)
            if close is not None:
                await close()
        await chain.close()
        logger.info("Bot stopped")
