"""
Best-venue selection for a single hop.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .tokens import Amount, PrecisionViolation, Token
from .venues import VenueClient, VenueQuote

logger = logging.getLogger(__name__)

NO_VENUE = "none"


@dataclass
class HopResult:
    """All venue quotes for one hop plus the winner."""
    token_in: Token
    token_out: Token
    amount_in: Amount
    best_quote: VenueQuote
    quotes: List[VenueQuote] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return not self.best_quote.is_absent

    @property
    def amount_out(self) -> Optional[Amount]:
        return self.best_quote.amount_out


def select_best_quote(quotes: Sequence[VenueQuote]) -> VenueQuote:
    """
    Pick the quote with the largest output.

    quotes must be in venue priority order: on equal outputs the earlier venue
    wins. Returns an absent "no_liquidity" quote when nothing priced the hop.
    """
    best = None
    for quote in quotes:
        if quote.is_absent:
            continue
        if best is None or quote.amount_out.raw > best.amount_out.raw:
            best = quote
    if best is None:
        return VenueQuote.absent(NO_VENUE, "no_liquidity")
    return best


class HopQuoter:
    """Fans one hop out to every configured venue and keeps the best price."""

    def __init__(self, venues: Sequence[VenueClient], quote_timeout: float = 5.0):
        self.venues = list(venues)
        self.quote_timeout = quote_timeout

    async def _quote_venue(
        self,
        venue: VenueClient,
        amount_in: Amount,
        token_in: Token,
        token_out: Token
    ) -> VenueQuote:
        try:
            quote = await asyncio.wait_for(
                venue.quote_hop(amount_in, token_in, token_out),
                timeout=self.quote_timeout
            )
        except asyncio.TimeoutError:
            logger.debug(f"{venue.venue_id}: quote timeout after {self.quote_timeout}s ({token_in}->{token_out})")
            return VenueQuote.absent(venue.venue_id, "timeout")
        except PrecisionViolation:
            raise
        except Exception as e:
            logger.error(f"{venue.venue_id}: unexpected error quoting {token_in}->{token_out}: {e}")
            return VenueQuote.absent(venue.venue_id, "unexpected")

        if quote.amount_out is not None and quote.amount_out.token != token_out:
            raise PrecisionViolation(
                f"{venue.venue_id} returned {quote.amount_out.token.symbol} for a {token_out.symbol} hop"
            )
        return quote

    async def quote_best_hop(self, amount_in: Amount, token_in: Token, token_out: Token) -> HopResult:
        """
        Quote a hop on all venues concurrently.

        Args:
            amount_in: Input amount, must be denominated in token_in
            token_in: Token sold on this hop
            token_out: Token bought on this hop

        Returns:
            HopResult; best_quote is absent when no venue had liquidity
        """
        if amount_in.token != token_in:
            raise PrecisionViolation(
                f"Hop input is {amount_in.token.symbol} but hop sells {token_in.symbol}"
            )

        # gather keeps venue order, so selection does not depend on completion order
        tasks = [
            asyncio.ensure_future(self._quote_venue(venue, amount_in, token_in, token_out))
            for venue in self.venues
        ]
        try:
            quotes = list(await asyncio.gather(*tasks))
        except BaseException:
            # Do not leave sibling quotes running
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        best = select_best_quote(quotes)

        if best.is_absent:
            failed = ", ".join(f"{q.venue_id}={q.error}" for q in quotes) or "no venues configured"
            logger.debug(f"No liquidity for {token_in}->{token_out}: {failed}")
        else:
            logger.debug(f"Best venue for {token_in}->{token_out}: {best.venue_id} out={best.amount_out.raw}")

        return HopResult(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            best_quote=best,
            quotes=quotes
        )
