"""
Main trading module that orchestrates flash-swap arbitrage.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .chain_client import ChainClient
from .flash_swap import FlashSwapRequest, NotProfitable, build_request
from .hop_quoter import HopResult
from .path_evaluator import PathEvaluator, PathResult, PathState
from .tokens import Amount, Token
from .utils import format_amount, get_terminal_colors
from .venues import VenueQuote

# Get terminal colors (empty if output is redirected)
colors = get_terminal_colors()

logger = logging.getLogger(__name__)

MODES = ('scan', 'simulate', 'live')


@dataclass
class TradeOutcome:
    """What happened to one evaluated path."""
    result: PathResult
    request: Optional[FlashSwapRequest] = None
    simulated: bool = False
    simulation_error: Optional[str] = None
    tx_hash: Optional[str] = None
    skipped_reason: Optional[str] = None

    @property
    def executed(self) -> bool:
        return self.tx_hash is not None


class Trader:
    """Main trading orchestrator."""

    def __init__(
        self,
        evaluator: PathEvaluator,
        chain_client: Optional[ChainClient] = None,
        mode: str = 'scan',  # 'scan', 'simulate', or 'live'
        pair_token: Optional[Token] = None,
        fallback_pair_token: Optional[Token] = None,
        fee_tier: int = 500
    ):
        mode = mode.lower()
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}. Use: scan, simulate, or live")
        if mode != 'scan':
            if chain_client is None:
                raise ValueError(f"Chain client required for {mode} mode")
            if pair_token is None:
                raise ValueError(f"Flash pair token required for {mode} mode")
        self.evaluator = evaluator
        self.chain = chain_client
        self.mode = mode
        self.pair_token = pair_token
        self.fallback_pair_token = fallback_pair_token
        self.fee_tier = fee_tier
        self.trade_in_progress = False  # Protection against parallel trades

    def pair_for(self, loan_token: Token) -> Optional[Token]:
        """Flash pool partner: the configured pair token, or the fallback when the loan is that token."""
        if self.pair_token is not None and loan_token != self.pair_token:
            return self.pair_token
        return self.fallback_pair_token

    def _format_hop_table(self, result: PathResult) -> str:
        """
        Per-hop table: input amount, each venue's output, winner underlined.

        Example:
            1. 10.0000 WETH -> DAI
                 uniswap    17980.1200 DAI
                 sushiswap  N/A (revert)
        """
        lines = []
        width = max((len(self._venue_label(q)) for hop in result.hops for q in hop.quotes), default=0)
        for i, hop in enumerate(result.hops, 1):
            lines.append(
                f"  {i}. {colors['YELLOW']}{format_amount(hop.amount_in)}{colors['RESET']} "
                f"-> {colors['CYAN']}{hop.token_out.symbol}{colors['RESET']}"
            )
            for quote in hop.quotes:
                lines.append(self._format_quote_line(hop, quote, width))
        return "\n".join(lines)

    @staticmethod
    def _venue_label(quote: VenueQuote) -> str:
        """Venue id, plus the underlying DEX when an aggregator reports one: 0x (Uniswap_V3)."""
        if quote.source and quote.source != quote.venue_id:
            return f"{quote.venue_id} ({quote.source})"
        return quote.venue_id

    def _format_quote_line(self, hop: HopResult, quote: VenueQuote, width: int) -> str:
        name = self._venue_label(quote).ljust(width)
        if quote.is_absent:
            return f"       {colors['DIM']}{name}  N/A ({quote.error}){colors['RESET']}"
        value = format_amount(quote.amount_out)
        if hop.resolved and quote is hop.best_quote:
            return f"       {colors['UNDERLINE']}{name}{colors['RESET']}  {colors['GREEN']}{value}{colors['RESET']}"
        return f"       {name}  {value}"

    def _format_profit(self, result: PathResult) -> str:
        if result.profit is None:
            return f"{colors['RED']}unresolved{colors['RESET']}"
        profit_color = colors['GREEN'] if result.profitable else colors['RED']
        text = f"{profit_color}{format_amount(result.profit)}{colors['RESET']} ({result.profit_bps} bps)"
        if result.reference_profit is not None:
            text += f" ({profit_color}{format_amount(result.reference_profit)}{colors['RESET']})"
        return text

    def report(self, result: PathResult) -> None:
        """Log the evaluation of one path."""
        logger.info(
            f"Path: {colors['CYAN']}{result.describe()}{colors['RESET']} | "
            f"Input: {colors['YELLOW']}{format_amount(result.amount_in)}{colors['RESET']} | "
            f"Fee: {colors['YELLOW']}{format_amount(result.fee_amount)}{colors['RESET']}\n"
            f"{self._format_hop_table(result)}"
        )
        if result.state == PathState.UNRESOLVED:
            unresolved = result.hops[-1]
            logger.info(
                f"{colors['RED']}No liquidity for {unresolved.token_in.symbol}->{unresolved.token_out.symbol}, "
                f"path unresolved{colors['RESET']}"
            )
            return
        logger.info(
            f"Output: {colors['YELLOW']}{format_amount(result.amount_out)}{colors['RESET']} | "
            f"Profit: {self._format_profit(result)} | "
            f"Estimate gas: {result.gas_estimate or 'n/a'}"
        )

    async def _check_flash_liquidity(self, amount_in: Amount, pair_token: Token) -> Optional[str]:
        """Reason to refuse the loan, or None when the pool can lend it (or its size is unknown)."""
        max_amount = await self.chain.max_flash_amount(amount_in.token, pair_token, self.fee_tier)
        if max_amount is None:
            return None
        if amount_in.raw > max_amount.raw:
            return (
                f"loan {format_amount(amount_in)} exceeds flash pool liquidity "
                f"{format_amount(max_amount)}"
            )
        return None

    async def evaluate_and_execute(self, amount_in: Amount, token_path: Sequence[Token]) -> TradeOutcome:
        """
        Evaluate one path and, depending on mode, simulate or send the flash swap.

        Venue and hop failures never raise here; they show up as an
        unresolved or unprofitable result.
        """
        result = await self.evaluator.evaluate_path(amount_in, token_path)
        self.report(result)
        return await self.process_result(result)

    async def process_result(self, result: PathResult) -> TradeOutcome:
        """Act on an already evaluated path according to mode."""
        outcome = TradeOutcome(result=result)
        if not result.profitable:
            outcome.skipped_reason = result.state.value
            return outcome

        logger.info(
            f"{colors['GREEN']}Opportunity found:{colors['RESET']} {colors['CYAN']}{result.describe()}{colors['RESET']} | "
            f"Profit: {self._format_profit(result)}"
        )
        if self.mode == 'scan':
            return outcome

        if self.trade_in_progress:
            logger.warning("Trade already in progress, skipping opportunity")
            outcome.skipped_reason = "trade_in_progress"
            return outcome

        pair_token = self.pair_for(result.loan_token)
        if pair_token is None:
            logger.warning(f"No flash pair token for {result.loan_token.symbol}, skipping")
            outcome.skipped_reason = "no_pair_token"
            return outcome

        # A loan of the base pair token borrows against the fallback partner, listed first
        pair_first = result.loan_token == self.pair_token

        self.trade_in_progress = True
        try:
            refusal = await self._check_flash_liquidity(result.amount_in, pair_token)
            if refusal:
                logger.warning(f"{colors['RED']}Flash loan refused:{colors['RESET']} {refusal}")
                outcome.skipped_reason = "insufficient_flash_liquidity"
                return outcome

            try:
                outcome.request = build_request(result)
            except NotProfitable as e:
                logger.warning(f"Opportunity rejected: {e}")
                outcome.skipped_reason = "not_profitable"
                return outcome
            except ValueError as e:
                logger.warning(f"{colors['RED']}Cannot build flash swap:{colors['RESET']} {e}")
                outcome.skipped_reason = "no_execution_data"
                return outcome

            outcome.simulation_error = await self.chain.simulate_flash_swap(
                outcome.request, pair_token, pair_first=pair_first
            )
            outcome.simulated = True
            if outcome.simulation_error is not None:
                logger.warning(
                    f"{colors['RED']}Simulation failed:{colors['RESET']} {colors['YELLOW']}{outcome.simulation_error}{colors['RESET']}"
                )
                return outcome
            logger.info(f"Simulation successful for {colors['CYAN']}{result.describe()}{colors['RESET']}")

            if self.mode == 'live':
                outcome.tx_hash = await self.chain.send_flash_swap(
                    outcome.request, pair_token, pair_first=pair_first
                )
                if outcome.tx_hash:
                    logger.info(f"Flash swap submitted: {colors['CYAN']}{outcome.tx_hash}{colors['RESET']}")
                else:
                    logger.warning(f"{colors['RED']}Flash swap was not sent{colors['RESET']}")
            return outcome
        finally:
            self.trade_in_progress = False

    async def scan_opportunities(
        self,
        paths: Sequence[Sequence[Token]],
        amounts_by_token: Dict[Token, Amount],
        max_opportunities: int = 10
    ) -> List[PathResult]:
        """Evaluate paths and log the ranked profitable ones (read-only)."""
        opportunities = await self.evaluator.find_opportunities(
            paths,
            amounts_by_token,
            max_opportunities=max_opportunities,
            on_path_evaluated=self.report
        )

        count = len(opportunities)
        count_color = colors['GREEN'] if count > 0 else colors['RED']
        logger.info(f"Found {count_color}{count}{colors['RESET']} opportunities")
        for i, opp in enumerate(opportunities, 1):
            logger.info(f"  {i}. {colors['CYAN']}{opp.describe()}{colors['RESET']} | Profit: {self._format_profit(opp)}")
        return opportunities
