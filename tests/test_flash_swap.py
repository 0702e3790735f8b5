"""
Tests for flash_swap.py
"""
from fractions import Fraction

import pytest

from dexarb.flash_swap import FlashSwapRequest, NotProfitable, build_request
from dexarb.hop_quoter import HopQuoter
from dexarb.path_evaluator import PathEvaluator, PathState
from dexarb.tokens import Amount
from dexarb.venues import VenueQuote

from conftest import SUSHISWAP_ROUTER, UNISWAP_ROUTER

FEE_RATE = Fraction(5, 10000)


@pytest.fixture
def venues(venue_factory):
    return [
        venue_factory("uniswap", {("WETH", "DAI"): 18000 * 10**18, ("DAI", "WETH"): 10_010 * 10**15}),
        venue_factory(
            "sushiswap",
            {("WETH", "DAI"): 18050 * 10**18, ("DAI", "WETH"): 10_030 * 10**15},
            router=SUSHISWAP_ROUTER
        ),
    ]


async def _evaluate(venues, amount_in, path):
    return await PathEvaluator(HopQuoter(venues), FEE_RATE).evaluate_path(amount_in, path)


class TestBuildRequest:
    """Tests for build_request."""

    @pytest.mark.asyncio
    async def test_profitable_path(self, venues, weth, dai, ten_weth):
        """Test per-hop execution data follows the winning venues in hop order."""
        result = await _evaluate(venues, ten_weth, [weth, dai, weth])

        request = build_request(result)

        assert request.loan_token == weth.address
        assert request.loan_amount == 10 * 10**18
        assert request.token_path == [weth.address, dai.address]
        assert request.spenders == [SUSHISWAP_ROUTER, SUSHISWAP_ROUTER]
        assert request.routers == [SUSHISWAP_ROUTER, SUSHISWAP_ROUTER]
        assert len(request.calldatas) == 2

    @pytest.mark.asyncio
    async def test_unprofitable_path_raises(self, venue_factory, weth, dai, ten_weth):
        venues = [venue_factory("uniswap", {("WETH", "DAI"): 18000 * 10**18, ("DAI", "WETH"): 10**19})]
        result = await _evaluate(venues, ten_weth, [weth, dai])
        assert result.state == PathState.RESOLVED_UNPROFITABLE

        with pytest.raises(NotProfitable):
            build_request(result)

    @pytest.mark.asyncio
    async def test_unresolved_path_raises(self, venue_factory, weth, dai, ten_weth):
        """Test all venues absent on a hop makes the path unbuildable."""
        venues = [venue_factory("uniswap", {}), venue_factory("sushiswap", {})]
        result = await _evaluate(venues, ten_weth, [weth, dai])

        assert result.state == PathState.UNRESOLVED
        assert not result.profitable
        with pytest.raises(NotProfitable):
            build_request(result)

    @pytest.mark.asyncio
    async def test_quote_without_calldata_raises(self, venues, weth, dai, ten_weth):
        result = await _evaluate(venues, ten_weth, [weth, dai])
        hop = result.hops[0]
        hop.best_quote = VenueQuote("quote-only", amount_out=hop.best_quote.amount_out)

        with pytest.raises(ValueError, match="no execution data"):
            build_request(result)


class TestFlashSwapRequest:
    """Tests for FlashSwapRequest."""

    def test_misaligned_lists_rejected(self, weth, dai):
        with pytest.raises(ValueError, match="not aligned"):
            FlashSwapRequest(
                loan_token=weth.address,
                loan_amount=1,
                token_path=[weth.address, dai.address],
                spenders=[UNISWAP_ROUTER],
                routers=[UNISWAP_ROUTER, UNISWAP_ROUTER],
                calldatas=["0x", "0x"]
            )

    def test_amount_is_exact(self, weth, dai):
        raw = 123456789012345678901
        request = FlashSwapRequest(weth.address, Amount(weth, raw).raw, [weth.address], ["a"], ["b"], ["0x"])
        assert request.loan_amount == raw
