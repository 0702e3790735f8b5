"""
Pytest configuration and fixtures for DEX arbitrage bot tests.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from dexarb.tokens import Amount, Token
from dexarb.venues import VenueClient, VenueKind, VenueQuote

UNISWAP_ROUTER = "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"
SUSHISWAP_ROUTER = "0xd9e1cE17f2641f24aE83637ab66a2cca9C378B9F"
FLASH_CONTRACT = "0x00000000000000000000000000000000000000F1"


class FakeVenue(VenueClient):
    """
    In-memory venue with fixed outputs per (token_in, token_out) symbol pair.

    A rate may be an int (raw output), a callable of the raw input, or an
    exception instance to raise.
    """
    kind = VenueKind.ROUTER

    def __init__(self, venue_id, rates=None, delay=0.0, router=UNISWAP_ROUTER, source=None, gas=None):
        super().__init__(venue_id)
        self.source = source or venue_id
        self.gas = gas
        self.rates = rates or {}
        self.delay = delay
        self.router_address = router
        self.calls = []

    async def quote_hop(self, amount_in, token_in, token_out):
        self.calls.append((amount_in, token_in, token_out))
        if self.delay:
            await asyncio.sleep(self.delay)
        rate = self.rates.get((token_in.symbol, token_out.symbol))
        if rate is None:
            return VenueQuote.absent(self.venue_id, "no_route")
        if isinstance(rate, Exception):
            raise rate
        raw = rate(amount_in.raw) if callable(rate) else rate
        return VenueQuote(
            venue_id=self.venue_id,
            amount_out=Amount(token_out, raw),
            spender=self.router_address,
            router=self.router_address,
            calldata="0x38ed1739",
            gas=self.gas,
            source=self.source
        )


@pytest.fixture
def weth():
    """WETH (18 decimals)."""
    return Token("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "WETH", 18)


@pytest.fixture
def dai():
    """DAI (18 decimals)."""
    return Token("0x6B175474E89094C44Da98b954EedeAC495271d0F", "DAI", 18)


@pytest.fixture
def usdc():
    """USDC (6 decimals)."""
    return Token("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", 6)


@pytest.fixture
def usdt():
    """USDT (6 decimals), the default reference token."""
    return Token("0xdAC17F958D2ee523a2206206994597C13D831ec7", "USDT", 6)


@pytest.fixture
def ten_weth(weth):
    """10 WETH in base units."""
    return Amount(weth, 10 * 10**18)


@pytest.fixture
def venue_factory():
    """Build FakeVenue instances."""
    return FakeVenue


@pytest.fixture
def mock_w3():
    """AsyncWeb3 stand-in whose eth.contract returns a fresh MagicMock."""
    w3 = MagicMock()
    w3.eth.contract = MagicMock(side_effect=lambda address, abi: MagicMock(address=address, abi=abi))
    return w3


@pytest.fixture
def mock_chain_client():
    """Create a mock ChainClient for testing."""
    client = AsyncMock()
    client.max_flash_amount.return_value = None
    client.simulate_flash_swap.return_value = None
    client.send_flash_swap.return_value = "0xabc123"
    return client
