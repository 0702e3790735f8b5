"""
Reference-currency price sources.

Prices are exact Fractions of whole reference tokens per whole token. A missing
price is never an error: callers get None and the reference figure is skipped.
"""
import logging
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Dict, Optional, Sequence

from web3 import AsyncWeb3, Web3

from .tokens import Token

logger = logging.getLogger(__name__)

CHAINLINK_AGGREGATOR_ABI = [
    {
        "name": "latestRoundData",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "roundId", "type": "uint80"},
            {"name": "answer", "type": "int256"},
            {"name": "startedAt", "type": "uint256"},
            {"name": "updatedAt", "type": "uint256"},
            {"name": "answeredInRound", "type": "uint80"},
        ],
    },
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
]


class PriceOracle:
    """Base price source against a fixed reference token."""

    def __init__(self, reference_token: Token):
        self.reference_token = reference_token

    async def get_price(self, token: Token) -> Optional[Fraction]:
        if token == self.reference_token:
            return Fraction(1)
        return await self._fetch_price(token)

    async def _fetch_price(self, token: Token) -> Optional[Fraction]:
        raise NotImplementedError


class StaticOracle(PriceOracle):
    """Fixed prices from config.json / .env, keyed by token symbol."""

    def __init__(self, reference_token: Token, prices: Dict[str, str]):
        super().__init__(reference_token)
        self.prices: Dict[str, Fraction] = {}
        for symbol, value in prices.items():
            try:
                price = Fraction(Decimal(str(value)))
            except (InvalidOperation, ValueError):
                raise ValueError(f"Invalid static price for {symbol}: {value!r}")
            if price <= 0:
                raise ValueError(f"Static price for {symbol} must be positive, got {value}")
            self.prices[symbol.upper()] = price

    async def _fetch_price(self, token: Token) -> Optional[Fraction]:
        price = self.prices.get(token.symbol.upper())
        if price is None:
            logger.debug(f"No static price configured for {token.symbol}")
        return price


class ChainlinkOracle(PriceOracle):
    """
    Chainlink aggregator feeds (TOKEN / reference), one feed address per symbol.

    Assumes the reference token tracks the feed's quote currency (e.g. USDT
    for */USD feeds).
    """

    def __init__(self, reference_token: Token, w3: AsyncWeb3, feeds: Dict[str, str]):
        super().__init__(reference_token)
        self.w3 = w3
        self.feeds = {
            symbol.upper(): w3.eth.contract(
                address=Web3.to_checksum_address(address),
                abi=CHAINLINK_AGGREGATOR_ABI
            )
            for symbol, address in feeds.items()
        }

    async def _fetch_price(self, token: Token) -> Optional[Fraction]:
        feed = self.feeds.get(token.symbol.upper())
        if feed is None:
            logger.debug(f"No Chainlink feed configured for {token.symbol}")
            return None

        try:
            _, answer, _, _, _ = await feed.functions.latestRoundData().call()
            feed_decimals = await feed.functions.decimals().call()
        except Exception as e:
            logger.warning(f"Chainlink price unavailable for {token.symbol}: {e}")
            return None

        if answer <= 0:
            logger.warning(f"Chainlink returned non-positive price for {token.symbol}: {answer}")
            return None
        return Fraction(answer, 10 ** feed_decimals)


class ChainedOracle(PriceOracle):
    """Tries each oracle in order and returns the first price found."""

    def __init__(self, reference_token: Token, oracles: Sequence[PriceOracle]):
        super().__init__(reference_token)
        self.oracles = list(oracles)

    async def _fetch_price(self, token: Token) -> Optional[Fraction]:
        for oracle in self.oracles:
            price = await oracle.get_price(token)
            if price is not None:
                return price
        logger.warning(f"Oracle unavailable for {token.symbol}: reference profit will not be reported")
        return None
