"""
Flash-swap request assembly.
"""
from dataclasses import dataclass
from typing import List

from .path_evaluator import PathResult, PathState


class NotProfitable(Exception):
    """Raised when a flash swap is requested for a path that is not profitable."""


@dataclass(frozen=True)
class FlashSwapRequest:
    """
    Arguments for the flash-swap contract.

    token_path, spenders, routers and calldatas line up by hop index; the
    contract executes them in this order.
    """
    loan_token: str
    loan_amount: int
    token_path: List[str]
    spenders: List[str]
    routers: List[str]
    calldatas: List[str]

    def __post_init__(self):
        n = len(self.token_path)
        if not (len(self.spenders) == len(self.routers) == len(self.calldatas) == n):
            raise ValueError(
                f"Swap data is not aligned: {n} tokens, {len(self.spenders)} spenders, "
                f"{len(self.routers)} routers, {len(self.calldatas)} calldatas"
            )


def build_request(path_result: PathResult) -> FlashSwapRequest:
    """
    Build the flash-swap call for a profitable path.

    Raises:
        NotProfitable: if the path is unresolved or not profitable
        ValueError: if a winning quote carries no execution data
    """
    if path_result.state != PathState.RESOLVED_PROFITABLE:
        raise NotProfitable(
            f"Cannot build flash swap for {path_result.describe()}: {path_result.state.value}"
        )

    spenders, routers, calldatas = [], [], []
    for i, hop in enumerate(path_result.hops):
        quote = hop.best_quote
        if not (quote.spender and quote.router and quote.calldata):
            raise ValueError(
                f"Hop {i + 1} ({hop.token_in}->{hop.token_out}) via {quote.venue_id} has no execution data"
            )
        spenders.append(quote.spender)
        routers.append(quote.router)
        calldatas.append(quote.calldata)

    return FlashSwapRequest(
        loan_token=path_result.loan_token.address,
        loan_amount=path_result.amount_in.raw,
        token_path=[token.address for token in path_result.token_path],
        spenders=spenders,
        routers=routers,
        calldatas=calldatas
    )
