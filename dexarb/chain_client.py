"""
EVM RPC client for balance checks, flash-swap simulation, and transaction sending.
"""
import logging
from typing import Optional

from web3 import AsyncWeb3, Web3
from web3.providers import AsyncHTTPProvider

from .flash_swap import FlashSwapRequest
from .tokens import Amount, Token

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

ERC20_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

UNIV3_FACTORY_ABI = [
    {
        "name": "getPool",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "tokenA", "type": "address"},
            {"name": "tokenB", "type": "address"},
            {"name": "fee", "type": "uint24"},
        ],
        "outputs": [{"name": "pool", "type": "address"}],
    },
]

FLASH_SWAP_ABI = [
    {
        "name": "initUniFlashSwap",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "loanTokens", "type": "address[]"},
            {"name": "loanAmounts", "type": "uint256[]"},
            {"name": "tokenPath", "type": "address[]"},
            {"name": "spenders", "type": "address[]"},
            {"name": "routers", "type": "address[]"},
            {"name": "tradeDatas", "type": "bytes[]"},
        ],
        "outputs": [],
    },
]


class ChainClient:
    """Client for EVM RPC operations with failover support."""

    def __init__(
        self,
        rpc_url: str,
        private_key: Optional[str] = None,
        fallback_rpc_url: Optional[str] = None,
        flash_swap_address: Optional[str] = None,
        univ3_factory_address: Optional[str] = None,
        gas_limit: int = 2_000_000
    ):
        self.rpc_url_primary = rpc_url
        self.rpc_url_fallback = fallback_rpc_url
        self._active_rpc_url = rpc_url
        self._failover_used = False
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.account = self.w3.eth.account.from_key(private_key) if private_key else None
        self.flash_swap_address = Web3.to_checksum_address(flash_swap_address) if flash_swap_address else None
        self.univ3_factory_address = Web3.to_checksum_address(univ3_factory_address) if univ3_factory_address else None
        self.gas_limit = gas_limit

    @property
    def address(self) -> Optional[str]:
        return self.account.address if self.account else None

    async def _switch_to_fallback(self, reason: str) -> bool:
        """
        Switch to fallback RPC if available.

        Args:
            reason: Reason for failover (for logging)

        Returns:
            True if switched to fallback, False if no fallback available
        """
        if self.rpc_url_fallback and self._active_rpc_url == self.rpc_url_primary:
            if not self._failover_used:
                # Log domains only, RPC URLs often embed API keys
                primary_domain = self.rpc_url_primary.split('//')[1].split('/')[0] if '//' in self.rpc_url_primary else self.rpc_url_primary
                fallback_domain = self.rpc_url_fallback.split('//')[1].split('/')[0] if '//' in self.rpc_url_fallback else self.rpc_url_fallback
                logger.warning(
                    f"RPC failover: PRIMARY ({primary_domain}) -> FALLBACK ({fallback_domain}), reason: {reason}"
                )
                self._failover_used = True

            # Close the old provider session before swapping in the fallback
            await self._disconnect(self.w3.provider)

            self._active_rpc_url = self.rpc_url_fallback
            self.w3.provider = AsyncHTTPProvider(self.rpc_url_fallback)
            return True
        return False

    def _is_failover_error(self, error: Exception) -> bool:
        """Check if error should trigger failover (rate limit, timeout, connection)."""
        error_str = str(error).lower()
        error_type = type(error).__name__

        if '429' in error_str or 'rate limit' in error_str or 'quota' in error_str or 'exceeded' in error_str:
            return True
        if 'timeout' in error_str or 'timed out' in error_str:
            return True
        if error_type in ('ClientConnectorError', 'ServerDisconnectedError', 'TimeoutError', 'ConnectionError'):
            return True
        if 'connection' in error_str or 'network' in error_str:
            return True
        return False

    async def _with_failover(self, coro_func, *args, **kwargs):
        """
        Execute coroutine with failover support.

        Raises:
            Exception: If both primary and fallback fail
        """
        try:
            return await coro_func(*args, **kwargs)
        except Exception as e:
            if self._is_failover_error(e) and await self._switch_to_fallback(str(e)):
                try:
                    return await coro_func(*args, **kwargs)
                except Exception as e2:
                    logger.error(f"Both primary and fallback RPC failed. Last error: {e2}")
                    raise e2 from e
            raise

    async def get_balance(self, address: Optional[str] = None) -> int:
        """Native balance in wei (defaults to the wallet)."""
        address = address or self.address
        if address is None:
            raise ValueError("No wallet or address provided")
        try:
            return await self._with_failover(self.w3.eth.get_balance, Web3.to_checksum_address(address))
        except Exception as e:
            logger.error(f"Error getting balance: {e}")
            return 0

    async def get_token_balance(self, token: Token, address: Optional[str] = None) -> Amount:
        """ERC-20 balance of address (defaults to the wallet)."""
        address = address or self.address
        if address is None:
            raise ValueError("No wallet or address provided")
        contract = self.w3.eth.contract(address=token.address, abi=ERC20_ABI)
        try:
            raw = await self._with_failover(
                contract.functions.balanceOf(Web3.to_checksum_address(address)).call
            )
        except Exception as e:
            logger.error(f"Error getting {token.symbol} balance: {e}")
            raw = 0
        return Amount(token, raw)

    async def max_flash_amount(self, token: Token, pair_token: Token, fee_tier: int = 500) -> Optional[Amount]:
        """
        Largest loan the Uniswap V3 flash pool can hand out.

        Returns:
            The pool's token balance, or None when the factory is not configured
            or the pool does not exist
        """
        if self.univ3_factory_address is None:
            return None
        factory = self.w3.eth.contract(address=self.univ3_factory_address, abi=UNIV3_FACTORY_ABI)
        try:
            pool = await self._with_failover(
                factory.functions.getPool(token.address, pair_token.address, fee_tier).call
            )
        except Exception as e:
            logger.error(f"Error looking up flash pool for {token.symbol}/{pair_token.symbol}: {e}")
            return None

        if not pool or pool == ZERO_ADDRESS:
            logger.warning(f"Flash pool {token.symbol}/{pair_token.symbol} ({fee_tier}) does not exist")
            return None
        return await self.get_token_balance(token, pool)

    def _flash_swap_call(self, request: FlashSwapRequest, pair_token: Token, pair_first: bool = False):
        """
        initUniFlashSwap call for request.

        The flash pool lends one side of a pair; the other side is borrowed
        with a zero amount. With pair_first the partner leads both lists
        ([pair, loan], [0, amount]), which is how the contract expects a loan
        of its base pair token.
        """
        if self.flash_swap_address is None:
            raise ValueError("FLASH_SWAP_CONTRACT is not configured")
        loan_token = Web3.to_checksum_address(request.loan_token)
        if loan_token == pair_token.address:
            raise ValueError(f"Pair token {pair_token.symbol} cannot be the loan token")

        if pair_first:
            loan_tokens = [pair_token.address, loan_token]
            loan_amounts = [0, request.loan_amount]
        else:
            loan_tokens = [loan_token, pair_token.address]
            loan_amounts = [request.loan_amount, 0]

        contract = self.w3.eth.contract(address=self.flash_swap_address, abi=FLASH_SWAP_ABI)
        return contract.functions.initUniFlashSwap(
            loan_tokens,
            loan_amounts,
            request.token_path,
            request.spenders,
            request.routers,
            request.calldatas
        )

    async def simulate_flash_swap(
        self,
        request: FlashSwapRequest,
        pair_token: Token,
        pair_first: bool = False
    ) -> Optional[str]:
        """
        Dry-run the flash swap with eth_call.

        Returns:
            None on success, otherwise the revert/error message
        """
        call = self._flash_swap_call(request, pair_token, pair_first)
        try:
            await self._with_failover(call.call, {"from": self.address} if self.address else {})
            return None
        except Exception as e:
            logger.warning(f"Flash swap simulation failed: {e}")
            return str(e)

    async def send_flash_swap(
        self,
        request: FlashSwapRequest,
        pair_token: Token,
        pair_first: bool = False
    ) -> Optional[str]:
        """
        Sign and broadcast the flash swap.

        Returns:
            Transaction hash (hex) or None if sending failed
        """
        if self.account is None:
            raise ValueError("Wallet required to send transactions")

        call = self._flash_swap_call(request, pair_token, pair_first)
        try:
            nonce = await self._with_failover(self.w3.eth.get_transaction_count, self.account.address)
            tx = await call.build_transaction({
                "from": self.account.address,
                "nonce": nonce,
                "gas": self.gas_limit,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = await self._with_failover(self.w3.eth.send_raw_transaction, signed.raw_transaction)
        except Exception as e:
            logger.error(f"Error sending flash swap: {e}")
            return None

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Flash swap sent: {tx_hash_hex}")
        return tx_hash_hex

    async def close(self):
        """Close the provider's HTTP session."""
        await self._disconnect(self.w3.provider)

    async def _disconnect(self, provider):
        disconnect = getattr(provider, 'disconnect', None)
        if disconnect is None:
            return
        try:
            await disconnect()
        except Exception as e:
            logger.debug(f"Error closing RPC session: {e}")
