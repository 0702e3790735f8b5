"""
Tests for chain_client.py
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from web3.exceptions import ContractLogicError

from dexarb.chain_client import ZERO_ADDRESS, ChainClient, UNIV3_FACTORY_ABI
from dexarb.flash_swap import FlashSwapRequest
from dexarb.tokens import Amount

from conftest import FLASH_CONTRACT, UNISWAP_ROUTER

PRIMARY = "https://primary.example/v2/secret"
FALLBACK = "https://fallback.example/v2/secret"
TEST_KEY = "0x" + "11" * 32
FACTORY = "0x1F98431c8aD98523631AE4a59f267346ea31F984"
POOL = "0x60594a405d53811d3BC4766596EFD80fd545A270"


@pytest.fixture
def request_(weth, dai):
    return FlashSwapRequest(
        loan_token=weth.address,
        loan_amount=10 * 10**18,
        token_path=[weth.address, dai.address],
        spenders=[UNISWAP_ROUTER, UNISWAP_ROUTER],
        routers=[UNISWAP_ROUTER, UNISWAP_ROUTER],
        calldatas=["0x38ed1739", "0x38ed1739"]
    )


class TestChainClient:
    """Tests for ChainClient class."""

    @pytest.fixture
    def client(self):
        """Create a ChainClient with wallet, fallback RPC and flash contract."""
        return ChainClient(
            PRIMARY,
            private_key=TEST_KEY,
            fallback_rpc_url=FALLBACK,
            flash_swap_address=FLASH_CONTRACT,
            univ3_factory_address=FACTORY
        )

    @pytest.fixture
    def client_no_wallet(self):
        """Create a ChainClient without wallet."""
        return ChainClient(PRIMARY)

    def test_initialization(self, client):
        assert client.rpc_url_primary == PRIMARY
        assert client.address is not None
        assert client.address.startswith("0x")

    def test_no_wallet(self, client_no_wallet):
        assert client_no_wallet.account is None
        assert client_no_wallet.address is None

    @pytest.mark.asyncio
    async def test_get_balance_success(self, client):
        with patch.object(client.w3.eth, 'get_balance', AsyncMock(return_value=10**18)):
            assert await client.get_balance() == 10**18

    @pytest.mark.asyncio
    async def test_get_balance_no_wallet_no_address(self, client_no_wallet):
        with pytest.raises(ValueError, match="No wallet or address provided"):
            await client_no_wallet.get_balance()

    @pytest.mark.asyncio
    async def test_get_balance_error(self, client):
        """Test get_balance returns 0 on error."""
        with patch.object(client.w3.eth, 'get_balance', AsyncMock(side_effect=Exception("RPC error"))):
            assert await client.get_balance() == 0

    @pytest.mark.asyncio
    async def test_failover_on_rate_limit(self, client):
        """Test a 429 switches to the fallback RPC and retries once."""
        mock = AsyncMock(side_effect=[Exception("429 Too Many Requests"), 42])
        with patch.object(client.w3.eth, 'get_balance', mock):
            balance = await client.get_balance()

        assert balance == 42
        assert mock.await_count == 2
        assert client._active_rpc_url == FALLBACK
        assert client._failover_used

    @pytest.mark.asyncio
    async def test_no_failover_on_other_errors(self, client):
        mock = AsyncMock(side_effect=ValueError("invalid address"))
        with patch.object(client.w3.eth, 'get_balance', mock):
            assert await client.get_balance() == 0
        assert mock.await_count == 1
        assert client._active_rpc_url == PRIMARY

    @pytest.mark.asyncio
    async def test_no_fallback_configured(self, client_no_wallet):
        assert await client_no_wallet._switch_to_fallback("timeout") is False

    @pytest.mark.asyncio
    async def test_failover_disconnects_old_provider(self, client):
        """Test the primary provider session is closed before switching."""
        old_provider = client.w3.provider
        with patch.object(old_provider, 'disconnect', AsyncMock()) as disconnect:
            assert await client._switch_to_fallback("timeout") is True

        disconnect.assert_awaited_once()
        assert client.w3.provider is not old_provider
        assert client._active_rpc_url == FALLBACK

    @pytest.mark.parametrize("message,expected", [
        ("429 Client Error", True),
        ("Request timed out", True),
        ("Connection reset by peer", True),
        ("execution reverted", False),
    ])
    def test_is_failover_error(self, client, message, expected):
        assert client._is_failover_error(Exception(message)) is expected


class TestMaxFlashAmount:
    """Tests for ChainClient.max_flash_amount."""

    def _contracts(self, pool, balance=0):
        factory = MagicMock()
        factory.functions.getPool.return_value.call = AsyncMock(return_value=pool)
        erc20 = MagicMock()
        erc20.functions.balanceOf.return_value.call = AsyncMock(return_value=balance)
        return MagicMock(side_effect=lambda address, abi: factory if abi is UNIV3_FACTORY_ABI else erc20)

    @pytest.mark.asyncio
    async def test_pool_balance(self, weth, dai):
        client = ChainClient(PRIMARY, univ3_factory_address=FACTORY)
        with patch.object(client.w3.eth, 'contract', self._contracts(POOL, 5000 * 10**18)):
            amount = await client.max_flash_amount(weth, dai, 500)
        assert amount == Amount(weth, 5000 * 10**18)

    @pytest.mark.asyncio
    async def test_missing_pool(self, weth, dai):
        client = ChainClient(PRIMARY, univ3_factory_address=FACTORY)
        with patch.object(client.w3.eth, 'contract', self._contracts(ZERO_ADDRESS)):
            assert await client.max_flash_amount(weth, dai) is None

    @pytest.mark.asyncio
    async def test_no_factory(self, weth, dai):
        assert await ChainClient(PRIMARY).max_flash_amount(weth, dai) is None


class TestFlashSwap:
    """Tests for flash swap simulation and sending."""

    @pytest.fixture
    def client(self):
        return ChainClient(PRIMARY, private_key=TEST_KEY, flash_swap_address=FLASH_CONTRACT)

    def test_call_arguments_partner_first(self, client, request_, weth, dai):
        """Test a loan of the base pair token puts the partner first with a zero amount."""
        with patch.object(client.w3.eth, 'contract') as mock_contract:
            client._flash_swap_call(request_, dai, pair_first=True)
        init = mock_contract.return_value.functions.initUniFlashSwap
        init.assert_called_once_with(
            [dai.address, weth.address],
            [0, 10 * 10**18],
            request_.token_path,
            request_.spenders,
            request_.routers,
            request_.calldatas
        )

    def test_call_arguments_loan_first(self, client, weth, dai):
        """Test any other loan token leads, borrowed alongside the pair token."""
        dai_request = FlashSwapRequest(
            loan_token=dai.address,
            loan_amount=10000 * 10**18,
            token_path=[dai.address, weth.address],
            spenders=[UNISWAP_ROUTER, UNISWAP_ROUTER],
            routers=[UNISWAP_ROUTER, UNISWAP_ROUTER],
            calldatas=["0x38ed1739", "0x38ed1739"]
        )
        with patch.object(client.w3.eth, 'contract') as mock_contract:
            client._flash_swap_call(dai_request, weth)
        init = mock_contract.return_value.functions.initUniFlashSwap
        init.assert_called_once_with(
            [dai.address, weth.address],
            [10000 * 10**18, 0],
            dai_request.token_path,
            dai_request.spenders,
            dai_request.routers,
            dai_request.calldatas
        )

    def test_call_arguments_default_order(self, client, request_, weth, dai):
        """Test the loan token leads unless the partner is asked to go first."""
        with patch.object(client.w3.eth, 'contract') as mock_contract:
            client._flash_swap_call(request_, dai)
        init = mock_contract.return_value.functions.initUniFlashSwap
        init.assert_called_once_with(
            [weth.address, dai.address],
            [10 * 10**18, 0],
            request_.token_path,
            request_.spenders,
            request_.routers,
            request_.calldatas
        )

    def test_pair_token_cannot_be_loan_token(self, client, request_, weth):
        with pytest.raises(ValueError, match="cannot be the loan token"):
            client._flash_swap_call(request_, weth)

    def test_contract_required(self, request_, dai):
        with pytest.raises(ValueError, match="FLASH_SWAP_CONTRACT"):
            ChainClient(PRIMARY)._flash_swap_call(request_, dai)

    @pytest.mark.asyncio
    async def test_simulate_success(self, client, request_, dai):
        call = MagicMock()
        call.call = AsyncMock(return_value=[])
        with patch.object(client, '_flash_swap_call', return_value=call):
            assert await client.simulate_flash_swap(request_, dai) is None
        call.call.assert_awaited_once_with({"from": client.address})

    @pytest.mark.asyncio
    async def test_simulate_revert(self, client, request_, dai):
        call = MagicMock()
        call.call = AsyncMock(side_effect=ContractLogicError("execution reverted: not profitable"))
        with patch.object(client, '_flash_swap_call', return_value=call):
            error = await client.simulate_flash_swap(request_, dai)
        assert "not profitable" in error

    @pytest.mark.asyncio
    async def test_send_requires_wallet(self, request_, dai):
        client = ChainClient(PRIMARY, flash_swap_address=FLASH_CONTRACT)
        with pytest.raises(ValueError, match="Wallet required"):
            await client.send_flash_swap(request_, dai)

    @pytest.mark.asyncio
    async def test_send_success(self, client, request_, dai):
        call = MagicMock()
        call.build_transaction = AsyncMock(return_value={"to": FLASH_CONTRACT, "data": "0x"})
        client.account = MagicMock(address=client.address)
        client.account.sign_transaction.return_value = MagicMock(raw_transaction=b"\x01\x02")

        with patch.object(client, '_flash_swap_call', return_value=call), \
                patch.object(client.w3.eth, 'get_transaction_count', AsyncMock(return_value=7)), \
                patch.object(client.w3.eth, 'send_raw_transaction', AsyncMock(return_value=b"\xab\xcd")) as send:
            tx_hash = await client.send_flash_swap(request_, dai)

        assert tx_hash == "0xabcd"
        tx_params = call.build_transaction.call_args.args[0]
        assert tx_params["nonce"] == 7
        assert tx_params["gas"] == client.gas_limit
        send.assert_awaited_once_with(b"\x01\x02")

    @pytest.mark.asyncio
    async def test_send_failure_returns_none(self, client, request_, dai):
        call = MagicMock()
        call.build_transaction = AsyncMock(side_effect=Exception("insufficient funds"))
        with patch.object(client, '_flash_swap_call', return_value=call), \
                patch.object(client.w3.eth, 'get_transaction_count', AsyncMock(return_value=0)):
            assert await client.send_flash_swap(request_, dai) is None
