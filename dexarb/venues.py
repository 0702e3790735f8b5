"""
Venue quote clients for on-chain liquidity sources.

Every venue answers one question: how much token_out does amount_in of
token_in buy right now. Ordinary failures (revert, RPC error) come back as an
absent quote; they never raise.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from web3 import AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3Exception

from .tokens import Amount, Token

logger = logging.getLogger(__name__)

# Uniswap V2 router (and forks: Sushiswap, Shibaswap, DefiSwap)
ROUTER_V2_ABI = [
    {
        "name": "getAmountsOut",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "path", "type": "address[]"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    },
    {
        "name": "swapExactTokensForTokens",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOutMin", "type": "uint256"},
            {"name": "path", "type": "address[]"},
            {"name": "to", "type": "address"},
            {"name": "deadline", "type": "uint256"},
        ],
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
    },
]

# Uniswap V3 Quoter (v1): returns a bare uint256
QUOTER_V3_ABI = [
    {
        "name": "quoteExactInputSingle",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "tokenOut", "type": "address"},
            {"name": "fee", "type": "uint24"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "sqrtPriceLimitX96", "type": "uint160"},
        ],
        "outputs": [{"name": "amountOut", "type": "uint256"}],
    },
]

SWAP_ROUTER_V3_ABI = [
    {
        "name": "exactInputSingle",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "recipient", "type": "address"},
                    {"name": "deadline", "type": "uint256"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "amountOutMinimum", "type": "uint256"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
                "name": "params",
                "type": "tuple",
            }
        ],
        "outputs": [{"name": "amountOut", "type": "uint256"}],
    },
]


class VenueKind(Enum):
    """Closed set of venue variants, chosen at configuration time."""
    ROUTER = "router"          # on-chain V2-style router
    AGGREGATOR = "aggregator"  # on-chain quoter contract + swap router
    HTTP = "http"              # off-chain aggregator API


@dataclass
class VenueQuote:
    """
    One venue's answer for one hop.

    amount_out is None when the venue could not price the hop; 0 is a real
    quote. error holds a short classification ("revert", "timeout", ...).
    spender/router/calldata are what the flash-swap contract needs to execute
    this hop at exactly the quoted amounts.
    """
    venue_id: str
    amount_out: Optional[Amount] = None
    error: Optional[str] = None
    spender: Optional[str] = None
    router: Optional[str] = None
    calldata: Optional[str] = None
    gas: Optional[int] = None
    source: Optional[str] = None  # underlying DEX reported by an aggregator

    @property
    def is_absent(self) -> bool:
        return self.amount_out is None

    @classmethod
    def absent(cls, venue_id: str, error: str) -> 'VenueQuote':
        return cls(venue_id=venue_id, amount_out=None, error=error)


class VenueClient:
    """
    Base class for all venues.

    quote_hop() returns a VenueQuote for every ordinary pricing failure;
    only programming errors escape it.
    """
    kind: VenueKind

    def __init__(self, venue_id: str):
        if not venue_id:
            raise ValueError("Venue id is required")
        self.venue_id = venue_id

    async def quote_hop(self, amount_in: Amount, token_in: Token, token_out: Token) -> VenueQuote:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}({self.venue_id!r})"


class OnChainVenue(VenueClient):
    """Shared plumbing for venues quoted with a read-only eth_call."""

    def __init__(
        self,
        venue_id: str,
        w3: AsyncWeb3,
        recipient: Optional[str],
        deadline_seconds: int = 300
    ):
        super().__init__(venue_id)
        self.w3 = w3
        # Without a recipient the venue can quote but not build calldata
        self.recipient = Web3.to_checksum_address(recipient) if recipient else None
        self.deadline_seconds = deadline_seconds

    def _deadline(self) -> int:
        return int(time.time()) + self.deadline_seconds

    async def _call_amount_out(self, amount_in: Amount, token_in: Token, token_out: Token) -> int:
        raise NotImplementedError

    def _encode_swap(self, amount_in: Amount, amount_out: Amount, token_in: Token, token_out: Token) -> str:
        raise NotImplementedError

    @property
    def spender(self) -> str:
        raise NotImplementedError

    @property
    def router(self) -> str:
        raise NotImplementedError

    async def quote_hop(self, amount_in: Amount, token_in: Token, token_out: Token) -> VenueQuote:
        try:
            raw_out = await self._call_amount_out(amount_in, token_in, token_out)
        except (ContractLogicError, BadFunctionCallOutput) as e:
            logger.debug(f"{self.venue_id}: {token_in}->{token_out} reverted: {e}")
            return VenueQuote.absent(self.venue_id, "revert")
        except Web3Exception as e:
            logger.debug(f"{self.venue_id}: RPC error for {token_in}->{token_out}: {e}")
            return VenueQuote.absent(self.venue_id, "network")
        except Exception as e:
            # aiohttp/OSError from the provider land here
            logger.debug(f"{self.venue_id}: quote failed for {token_in}->{token_out}: {e}")
            return VenueQuote.absent(self.venue_id, "network")

        amount_out = Amount(token_out, int(raw_out))
        return VenueQuote(
            venue_id=self.venue_id,
            amount_out=amount_out,
            spender=self.spender,
            router=self.router,
            calldata=self._encode_swap(amount_in, amount_out, token_in, token_out) if self.recipient else None,
            source=self.venue_id
        )


class RouterVenue(OnChainVenue):
    """Uniswap-V2-style router: getAmountsOut / swapExactTokensForTokens."""
    kind = VenueKind.ROUTER

    def __init__(
        self,
        venue_id: str,
        w3: AsyncWeb3,
        router_address: str,
        recipient: Optional[str],
        deadline_seconds: int = 300
    ):
        super().__init__(venue_id, w3, recipient, deadline_seconds)
        if not router_address:
            raise ValueError(f"Venue {venue_id}: router address is required")
        self.router_address = Web3.to_checksum_address(router_address)
        self.contract = w3.eth.contract(address=self.router_address, abi=ROUTER_V2_ABI)

    @property
    def spender(self) -> str:
        return self.router_address

    @property
    def router(self) -> str:
        return self.router_address

    async def _call_amount_out(self, amount_in: Amount, token_in: Token, token_out: Token) -> int:
        amounts = await self.contract.functions.getAmountsOut(
            amount_in.raw, [token_in.address, token_out.address]
        ).call()
        return amounts[-1]

    def _encode_swap(self, amount_in: Amount, amount_out: Amount, token_in: Token, token_out: Token) -> str:
        return self.contract.encode_abi(
            "swapExactTokensForTokens",
            args=[
                amount_in.raw,
                amount_out.raw,
                [token_in.address, token_out.address],
                self.recipient,
                self._deadline(),
            ]
        )


class AggregatorVenue(OnChainVenue):
    """
    On-chain quoter contract paired with a swap router (Uniswap V3 style).

    Quotes with quoteExactInputSingle at a fixed fee tier and executes with
    exactInputSingle through the router.
    """
    kind = VenueKind.AGGREGATOR

    def __init__(
        self,
        venue_id: str,
        w3: AsyncWeb3,
        quoter_address: str,
        router_address: str,
        recipient: Optional[str],
        fee_tier: int = 3000,
        deadline_seconds: int = 300
    ):
        super().__init__(venue_id, w3, recipient, deadline_seconds)
        if not quoter_address or not router_address:
            raise ValueError(f"Venue {venue_id}: quoter and router addresses are required")
        self.quoter_address = Web3.to_checksum_address(quoter_address)
        self.router_address = Web3.to_checksum_address(router_address)
        self.fee_tier = int(fee_tier)
        self.quoter = w3.eth.contract(address=self.quoter_address, abi=QUOTER_V3_ABI)
        self.swap_router = w3.eth.contract(address=self.router_address, abi=SWAP_ROUTER_V3_ABI)

    @property
    def spender(self) -> str:
        return self.router_address

    @property
    def router(self) -> str:
        return self.router_address

    async def _call_amount_out(self, amount_in: Amount, token_in: Token, token_out: Token) -> int:
        return await self.quoter.functions.quoteExactInputSingle(
            token_in.address, token_out.address, self.fee_tier, amount_in.raw, 0
        ).call()

    def _encode_swap(self, amount_in: Amount, amount_out: Amount, token_in: Token, token_out: Token) -> str:
        return self.swap_router.encode_abi(
            "exactInputSingle",
            args=[(
                token_in.address,
                token_out.address,
                self.fee_tier,
                self.recipient,
                self._deadline(),
                amount_in.raw,
                amount_out.raw,
                0,
            )]
        )
