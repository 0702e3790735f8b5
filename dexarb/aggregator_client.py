"""
Off-chain aggregator API clients (0x, 1inch) used as HTTP venues.
"""
import asyncio
import logging
import time
from typing import Any, Dict, Optional

import httpx

from .tokens import Amount, Token
from .venues import VenueClient, VenueKind, VenueQuote

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Minimum-interval rate limiter shared by all requests of one client.
    """

    def __init__(self, requests_per_second: float = 1.0):
        """
        Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second (0 disables limiting)
        """
        self.requests_per_second = requests_per_second
        self.min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._last_request_time = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait until a request can be made."""
        async with self._lock:
            current_time = time.monotonic()
            time_since_last = current_time - self._last_request_time

            if time_since_last < self.min_interval:
                await asyncio.sleep(self.min_interval - time_since_last)

            self._last_request_time = time.monotonic()


class HttpAggregatorVenue(VenueClient):
    """
    Venue backed by an aggregator's swap-quote endpoint.

    The API returns both the price and ready-to-send calldata, so one GET
    gives everything the flash-swap contract needs for the hop.
    """
    kind = VenueKind.HTTP

    def __init__(
        self,
        venue_id: str,
        base_url: str,
        taker_address: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        requests_per_second: float = 1.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(venue_id)
        if not base_url:
            raise ValueError(f"Venue {venue_id}: base_url is required")
        self.base_url = base_url.rstrip('/')
        self.taker_address = taker_address
        self.api_key = api_key
        self.timeout = timeout
        self.rate_limiter = RateLimiter(requests_per_second=requests_per_second)
        self.client = client or httpx.AsyncClient(timeout=timeout, headers=self._headers())

    def _headers(self) -> Dict[str, str]:
        return {}

    @property
    def quote_url(self) -> str:
        raise NotImplementedError

    def _build_params(self, amount_in: Amount, token_in: Token, token_out: Token) -> Dict[str, Any]:
        raise NotImplementedError

    def _parse_response(self, data: Dict[str, Any], token_out: Token) -> VenueQuote:
        raise NotImplementedError

    async def close(self):
        await self.client.aclose()

    async def quote_hop(self, amount_in: Amount, token_in: Token, token_out: Token) -> VenueQuote:
        await self.rate_limiter.acquire()
        params = self._build_params(amount_in, token_in, token_out)
        start_time = time.time()

        try:
            response = await self.client.get(self.quote_url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                error = 'rate_limited'
                logger.warning(f"{self.venue_id}: rate limit exceeded (429)")
            elif status in (400, 404):
                # Aggregators answer 400/404 when there is no route for the pair
                error = 'no_route'
                logger.debug(f"{self.venue_id}: no route for {token_in}->{token_out} ({status})")
            else:
                error = 'http_error'
                logger.warning(f"{self.venue_id}: quote failed: {status} - {e.response.text}")
            return VenueQuote.absent(self.venue_id, error)
        except httpx.TimeoutException as e:
            logger.debug(f"{self.venue_id}: request timed out: {e}")
            return VenueQuote.absent(self.venue_id, 'timeout')
        except httpx.TransportError as e:
            logger.debug(f"{self.venue_id}: connection error (DNS/network): {e}")
            return VenueQuote.absent(self.venue_id, 'network')
        except ValueError as e:
            logger.warning(f"{self.venue_id}: response is not JSON: {e}")
            return VenueQuote.absent(self.venue_id, 'malformed')

        try:
            quote = self._parse_response(data, token_out)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"{self.venue_id}: malformed quote response: {e}")
            return VenueQuote.absent(self.venue_id, 'malformed')

        logger.debug(
            f"Quote from {self.venue_id} ({quote.source}): {token_in}->{token_out} "
            f"in={amount_in.raw} out={quote.amount_out.raw} took={time.time() - start_time:.2f}s"
        )
        return quote


class ZeroExVenue(HttpAggregatorVenue):
    """0x Swap API (/swap/v1/quote)."""

    DEFAULT_URL = "https://api.0x.org"

    def __init__(self, venue_id: str = "0x", base_url: Optional[str] = None, **kwargs):
        super().__init__(venue_id, base_url or self.DEFAULT_URL, **kwargs)

    def _headers(self) -> Dict[str, str]:
        return {"0x-api-key": self.api_key} if self.api_key else {}

    @property
    def quote_url(self) -> str:
        return f"{self.base_url}/swap/v1/quote"

    def _build_params(self, amount_in: Amount, token_in: Token, token_out: Token) -> Dict[str, Any]:
        params = {
            "sellToken": token_in.address,
            "buyToken": token_out.address,
            "sellAmount": str(amount_in.raw),
        }
        if self.taker_address:
            params["takerAddress"] = self.taker_address
            params["skipValidation"] = "true"
        return params

    def _parse_response(self, data: Dict[str, Any], token_out: Token) -> VenueQuote:
        orders = data.get("orders") or []
        if orders:
            source = orders[0].get("source")
        else:
            # Fall back to the source carrying the whole fill
            sources = [s for s in data.get("sources", []) if float(s.get("proportion", 0)) > 0]
            source = sources[0]["name"] if sources else None

        return VenueQuote(
            venue_id=self.venue_id,
            amount_out=Amount(token_out, int(data["buyAmount"])),
            spender=data["allowanceTarget"],
            router=data["to"],
            calldata=data["data"],
            gas=int(data["gas"]) if data.get("gas") is not None else None,
            source=source or self.venue_id
        )


class OneInchVenue(HttpAggregatorVenue):
    """1inch Swap API (/swap/v5.2/{chainId}/swap)."""

    DEFAULT_URL = "https://api.1inch.dev"

    def __init__(
        self,
        venue_id: str = "1inch",
        base_url: Optional[str] = None,
        chain_id: int = 1,
        slippage_percent: float = 1.0,
        **kwargs
    ):
        self.chain_id = chain_id
        self.slippage_percent = slippage_percent
        super().__init__(venue_id, base_url or self.DEFAULT_URL, **kwargs)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    @property
    def quote_url(self) -> str:
        return f"{self.base_url}/swap/v5.2/{self.chain_id}/swap"

    def _build_params(self, amount_in: Amount, token_in: Token, token_out: Token) -> Dict[str, Any]:
        params = {
            "src": token_in.address,
            "dst": token_out.address,
            "amount": str(amount_in.raw),
            "slippage": self.slippage_percent,
            "disableEstimate": "true",
        }
        if self.taker_address:
            params["from"] = self.taker_address
        return params

    def _parse_response(self, data: Dict[str, Any], token_out: Token) -> VenueQuote:
        # v4 responses call it toTokenAmount
        raw_out = data.get("toAmount", data.get("toTokenAmount"))
        if raw_out is None:
            raise KeyError("toAmount")
        tx = data["tx"]
        return VenueQuote(
            venue_id=self.venue_id,
            amount_out=Amount(token_out, int(raw_out)),
            spender=tx["to"],
            router=tx["to"],
            calldata=tx["data"],
            gas=int(tx["gas"]) if tx.get("gas") else None,
            source=self.venue_id
        )
