"""
Arbitrage path evaluation.
Walks a token cycle hop by hop, picking the best venue for each hop, and nets
the result against the flash-loan fee.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .hop_quoter import HopQuoter, HopResult
from .oracle import PriceOracle
from .profit import DEFAULT_LOAN_FEE_RATE, compute_fee, compute_profit, profit_bps, to_reference_currency
from .tokens import Amount, PrecisionViolation, Token
from .utils import get_terminal_colors

logger = logging.getLogger(__name__)
colors = get_terminal_colors()


class PathState(Enum):
    RESOLVED_PROFITABLE = "resolved-profitable"
    RESOLVED_UNPROFITABLE = "resolved-unprofitable"
    UNRESOLVED = "unresolved"


@dataclass
class PathResult:
    """
    Outcome of evaluating one cycle.

    amount_out and profit are None when the path is unresolved. profit is in
    token_path[0] base units; reference_profit is informational only.
    """
    token_path: List[Token]
    hops: List[HopResult]
    amount_in: Amount
    fee_amount: Amount
    state: PathState
    amount_out: Optional[Amount] = None
    profit: Optional[Amount] = None
    reference_profit: Optional[Amount] = None
    gas_estimate: int = 0  # summed from venues that report gas; 0 when none do

    @property
    def profitable(self) -> bool:
        return self.state == PathState.RESOLVED_PROFITABLE

    @property
    def resolved(self) -> bool:
        return self.state != PathState.UNRESOLVED

    @property
    def loan_token(self) -> Token:
        return self.token_path[0]

    @property
    def profit_bps(self) -> int:
        if self.profit is None:
            return 0
        return profit_bps(self.amount_in, self.profit)

    def describe(self) -> str:
        """Symbol route with the winning venue per hop, e.g. WETH -[uni]-> DAI -[0x]-> WETH."""
        parts = [self.token_path[0].symbol]
        for hop in self.hops:
            venue = hop.best_quote.venue_id if hop.resolved else "?"
            parts.append(f"-[{venue}]-> {hop.token_out.symbol}")
        return " ".join(parts)


def normalize_path(token_path: Sequence[Token]) -> List[Token]:
    """
    Return the open form of a cycle.

    [A, B, A] and [A, B] both describe A -> B -> A. Repeated consecutive
    tokens and paths shorter than two tokens are rejected.
    """
    tokens = list(token_path)
    if len(tokens) > 2 and tokens[0] == tokens[-1]:
        tokens = tokens[:-1]
    if len(tokens) < 2:
        raise ValueError("Path must contain at least two distinct tokens")
    for i, token in enumerate(tokens):
        nxt = tokens[(i + 1) % len(tokens)]
        if token == nxt:
            raise ValueError(f"Path has a hop from {token.symbol} to itself")
    return tokens


def pair_paths(base: Token, tokens: Sequence[Token]) -> List[List[Token]]:
    """Two-token cycles [base, t] for every other token."""
    return [[base, token] for token in tokens if token != base]


class PathEvaluator:
    """Evaluates arbitrage cycles across all configured venues."""

    def __init__(
        self,
        hop_quoter: HopQuoter,
        loan_fee_rate: Fraction = DEFAULT_LOAN_FEE_RATE,
        oracle: Optional[PriceOracle] = None
    ):
        self.hop_quoter = hop_quoter
        self.loan_fee_rate = loan_fee_rate
        self.oracle = oracle

    async def evaluate_path(self, amount_in: Amount, token_path: Sequence[Token]) -> PathResult:
        """
        Evaluate one cycle.

        Hops run strictly in order since each hop sells the previous hop's
        output. The first hop without liquidity stops the walk.

        Args:
            amount_in: Flash-loan amount in token_path[0]
            token_path: Cycle of tokens, open ([A, B]) or closed ([A, B, A])

        Returns:
            PathResult in one of the three PathState terminal states
        """
        tokens = normalize_path(token_path)
        if amount_in.token != tokens[0]:
            raise PrecisionViolation(
                f"Input is {amount_in.token.symbol} but path starts at {tokens[0].symbol}"
            )
        if amount_in.raw <= 0:
            raise ValueError(f"Input amount must be positive, got {amount_in.raw}")

        fee_amount = compute_fee(amount_in, self.loan_fee_rate)
        hops: List[HopResult] = []
        current_amount = amount_in

        for i, token_in in enumerate(tokens):
            token_out = tokens[(i + 1) % len(tokens)]
            hop = await self.hop_quoter.quote_best_hop(current_amount, token_in, token_out)
            hops.append(hop)

            if not hop.resolved:
                logger.debug(
                    f"Hop {i + 1} unresolved ({token_in}->{token_out}), "
                    f"skipping remaining {len(tokens) - i - 1} hop(s)"
                )
                return PathResult(
                    token_path=tokens,
                    hops=hops,
                    amount_in=amount_in,
                    fee_amount=fee_amount,
                    state=PathState.UNRESOLVED
                )
            current_amount = hop.amount_out

        amount_out = current_amount
        profit = compute_profit(amount_in, amount_out, fee_amount)
        state = PathState.RESOLVED_PROFITABLE if profit.is_positive() else PathState.RESOLVED_UNPROFITABLE
        gas_estimate = sum(hop.best_quote.gas or 0 for hop in hops)

        result = PathResult(
            token_path=tokens,
            hops=hops,
            amount_in=amount_in,
            fee_amount=fee_amount,
            state=state,
            amount_out=amount_out,
            profit=profit,
            gas_estimate=gas_estimate
        )
        result.reference_profit = await self._reference_profit(profit)
        return result

    async def _reference_profit(self, profit: Amount) -> Optional[Amount]:
        if self.oracle is None:
            return None
        price = await self.oracle.get_price(profit.token)
        return to_reference_currency(profit, self.oracle.reference_token, price)

    async def find_opportunities(
        self,
        paths: Sequence[Sequence[Token]],
        amounts_by_token: Dict[Token, Amount],
        max_opportunities: int = 10,
        on_opportunity_found: Optional[Callable[[PathResult], Awaitable[bool]]] = None,
        on_path_evaluated: Optional[Callable[[PathResult], None]] = None
    ) -> List[PathResult]:
        """
        Evaluate several paths and return the profitable ones, best first.

        Paths are checked one after another. A path whose start token has no
        configured amount is skipped.

        Args:
            paths: Token cycles to evaluate
            amounts_by_token: Loan amount per start token
            max_opportunities: Maximum number of results to return
            on_opportunity_found: Awaited for each profitable path; returning
                False stops the search
            on_path_evaluated: Called with every evaluated path, profitable or not

        Returns:
            Profitable PathResults ranked by reference profit, then profit bps
        """
        opportunities: List[PathResult] = []
        logger.info(f"{colors['DIM']}Evaluating {len(paths)} paths for arbitrage opportunities...{colors['RESET']}")

        for path in paths:
            amount_in = amounts_by_token.get(path[0])
            if amount_in is None or amount_in.raw <= 0:
                logger.debug(f"No loan amount configured for {path[0].symbol}, skipping")
                continue

            result = await self.evaluate_path(amount_in, path)
            if on_path_evaluated:
                on_path_evaluated(result)
            if not result.profitable:
                logger.debug(f"Path {result.describe()} rejected: {result.state.value}")
                continue

            opportunities.append(result)
            if on_opportunity_found:
                try:
                    should_continue = await on_opportunity_found(result)
                except Exception as e:
                    logger.error(f"Error in on_opportunity_found callback: {e}", exc_info=True)
                    should_continue = True
                if not should_continue:
                    logger.info("Callback requested to stop searching")
                    break

        opportunities.sort(key=_ranking_key, reverse=True)
        return opportunities[:max_opportunities]


def _ranking_key(result: PathResult):
    # Results with a reference figure rank above those without
    if result.reference_profit is not None:
        return (1, result.reference_profit.raw, result.profit_bps)
    return (0, 0, result.profit_bps)
