"""
Configuration loading: .env for endpoints and secrets, config.json for tokens,
venues, paths and oracle feeds.
"""
import json
import logging
import os
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, List, Optional

import dotenv
from web3 import AsyncWeb3

from .aggregator_client import OneInchVenue, ZeroExVenue
from .oracle import ChainedOracle, ChainlinkOracle, PriceOracle, StaticOracle
from .profit import DEFAULT_LOAN_FEE_RATE, parse_fee_rate
from .tokens import Amount, Token
from .venues import AggregatorVenue, RouterVenue, VenueClient, VenueKind

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).parent.parent


@dataclass
class Settings:
    """Runtime settings read from the environment."""
    rpc_url: str = "http://127.0.0.1:8545"
    rpc_url_fallback: Optional[str] = None
    private_key: Optional[str] = None
    flash_swap_contract: Optional[str] = None
    univ3_factory: Optional[str] = None
    zerox_api_key: Optional[str] = None
    oneinch_api_key: Optional[str] = None
    chain_id: int = 1
    loan_fee_rate: Fraction = DEFAULT_LOAN_FEE_RATE
    quote_timeout: float = 5.0
    reference_token: str = "USDT"
    mode: str = "scan"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            rpc_url=os.getenv('RPC_URL', 'http://127.0.0.1:8545'),
            rpc_url_fallback=os.getenv('RPC_URL_FALLBACK') or None,
            private_key=os.getenv('PRIVATE_KEY') or None,
            flash_swap_contract=os.getenv('FLASH_SWAP_CONTRACT') or None,
            univ3_factory=os.getenv('UNIV3_FACTORY') or None,
            zerox_api_key=os.getenv('ZEROX_API_KEY') or None,
            oneinch_api_key=os.getenv('ONEINCH_API_KEY') or None,
            chain_id=int(os.getenv('CHAIN_ID', '1')),
            loan_fee_rate=parse_fee_rate(os.getenv('LOAN_FEE_RATE', '0.0005')),
            quote_timeout=float(os.getenv('QUOTE_TIMEOUT_SECONDS', '5.0')),
            reference_token=os.getenv('REFERENCE_TOKEN', 'USDT').upper(),
            mode=os.getenv('MODE', 'scan').lower(),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper()
        )


def load_config(base_dir: Path = BASE_DIR) -> Dict[str, Any]:
    """Load .env into the environment and return config.json as a dict."""
    env_path = base_dir / '.env'
    if env_path.exists():
        dotenv.load_dotenv(env_path)
    else:
        logger.warning(f".env file not found at {env_path}")

    config_path = base_dir / 'config.json'
    if config_path.exists():
        with open(config_path, 'r') as f:
            return json.load(f)

    logger.warning(f"config.json not found at {config_path}")
    return {}


def load_tokens(config: Dict[str, Any]) -> Dict[str, Token]:
    """Token registry keyed by upper-case symbol."""
    tokens = {}
    for symbol, entry in config.get('tokens', {}).items():
        if 'address' not in entry or 'decimals' not in entry:
            raise ValueError(f"Token {symbol} needs 'address' and 'decimals'")
        tokens[symbol.upper()] = Token(
            address=entry['address'],
            symbol=symbol.upper(),
            decimals=entry['decimals']
        )
    return tokens


def resolve_path(symbols: List[str], tokens: Dict[str, Token]) -> List[Token]:
    """Map symbols to tokens, raising on unknown symbols."""
    path = []
    for symbol in symbols:
        token = tokens.get(symbol.upper())
        if token is None:
            raise ValueError(f"There's no {symbol.upper()} token in config.json")
        path.append(token)
    return path


def load_paths(config: Dict[str, Any], tokens: Dict[str, Token]) -> List[List[Token]]:
    return [resolve_path(symbols, tokens) for symbols in config.get('paths', [])]


def load_amounts(config: Dict[str, Any], tokens: Dict[str, Token]) -> Dict[Token, Amount]:
    """Loan amount per start token, given in whole tokens ("10" = 10 WETH)."""
    amounts = {}
    for symbol, value in config.get('amounts', {}).items():
        token = resolve_path([symbol], tokens)[0]
        amounts[token] = token.from_display(str(value))
    return amounts


def build_venues(
    config: Dict[str, Any],
    settings: Settings,
    w3: AsyncWeb3
) -> List[VenueClient]:
    """
    Instantiate venues in config order. Order is the tie-break priority.

    Raises:
        ValueError: on unknown kinds, unknown APIs or missing addresses
    """
    venues: List[VenueClient] = []
    recipient = settings.flash_swap_contract

    for entry in config.get('venues', []):
        venue_id = entry.get('id')
        try:
            kind = VenueKind(entry.get('kind'))
        except ValueError:
            raise ValueError(f"Venue {venue_id}: unknown kind {entry.get('kind')!r}")

        if kind == VenueKind.ROUTER:
            venue = RouterVenue(
                venue_id,
                w3,
                router_address=entry.get('router'),
                recipient=recipient,
                deadline_seconds=entry.get('deadline_seconds', 300)
            )
        elif kind == VenueKind.AGGREGATOR:
            venue = AggregatorVenue(
                venue_id,
                w3,
                quoter_address=entry.get('quoter'),
                router_address=entry.get('router'),
                recipient=recipient,
                fee_tier=entry.get('fee_tier', 3000),
                deadline_seconds=entry.get('deadline_seconds', 300)
            )
        else:
            api = entry.get('api', '').lower()
            common = dict(
                base_url=entry.get('base_url'),
                taker_address=recipient,
                requests_per_second=entry.get('requests_per_second', 1.0),
                timeout=settings.quote_timeout
            )
            if api == '0x':
                venue = ZeroExVenue(venue_id or '0x', api_key=settings.zerox_api_key, **common)
            elif api == '1inch':
                venue = OneInchVenue(
                    venue_id or '1inch',
                    chain_id=settings.chain_id,
                    api_key=settings.oneinch_api_key,
                    **common
                )
            else:
                raise ValueError(f"Venue {venue_id}: unknown http api {entry.get('api')!r}")

        if any(v.venue_id == venue.venue_id for v in venues):
            raise ValueError(f"Duplicate venue id {venue.venue_id}")
        venues.append(venue)

    if not venues:
        logger.warning("No venues configured in config.json")
    return venues


def build_oracle(
    config: Dict[str, Any],
    settings: Settings,
    tokens: Dict[str, Token],
    w3: AsyncWeb3
) -> Optional[PriceOracle]:
    """Chainlink feeds first, static prices second. None if the reference token is unknown."""
    reference = tokens.get(settings.reference_token)
    if reference is None:
        logger.warning(f"Reference token {settings.reference_token} not in config.json, reference profit disabled")
        return None

    oracle_config = config.get('oracle', {})
    oracles: List[PriceOracle] = []
    if oracle_config.get('chainlink'):
        oracles.append(ChainlinkOracle(reference, w3, oracle_config['chainlink']))
    if oracle_config.get('static'):
        oracles.append(StaticOracle(reference, oracle_config['static']))
    return ChainedOracle(reference, oracles)
