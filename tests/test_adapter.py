"""
Adapter Tests — Fetch Orchestration, Partial Data, Claims
=========================================================

Drives UniswapV3Adapter against an in-memory ChainProvider. All tests are
offline; async code runs through asyncio.run.

Run:  python -m pytest tests/test_adapter.py -v
"""

import asyncio
from collections import Counter

import pytest

from lpscope.adapter_registry import AdapterRegistry, build_default_registry
from lpscope.chain_registry import CHAIN_CONFIG, PANCAKESWAP_V3, SUSHISWAP_V3, UNISWAP_V3
from lpscope.errors import (
    ClaimInProgress,
    ContractCallFailed,
    MalformedPositionData,
    ProviderUnavailable,
    TransactionFailed,
    UnknownPlatform,
)
from lpscope.models import ZERO_ADDRESS, TickInfo, Token
from lpscope.price_math import get_sqrt_ratio_at_tick
from lpscope.provider import ChainProvider, RawPosition
from lpscope.transactions import ClaimStatus, ClaimTracker, claim_fees
from lpscope.uint_math import UINT128_MAX
from lpscope.uniswap_v3_adapter import PancakeSwapV3Adapter, SushiSwapV3Adapter, UniswapV3Adapter

CHAIN = 42161
OWNER = "0x" + "11" * 20
USDC = "0x" + "a0" * 20
WETH = "0x" + "b0" * 20
POOL = "0x" + "c0" * 20
NPM = CHAIN_CONFIG[CHAIN]["platforms"][UNISWAP_V3]["position_manager_address"]


# ── In-memory provider ───────────────────────────────────────────────────

class FakeProvider(ChainProvider):
    """Serves a fixed chain state; ``failures`` holds (method, key) pairs to fail."""

    def __init__(self):
        self.calls = Counter()
        self.failures = set()
        self.in_flight = 0
        self.max_in_flight = 0
        self.position_count = 2
        self.token_ids = [101, 102]
        self.raw_positions = {
            101: RawPosition(
                nonce=0, operator=ZERO_ADDRESS, token0=USDC, token1=WETH, fee=500,
                tick_lower=0, tick_upper=100, liquidity=500000,
                fee_growth_inside0_last_x128=0, fee_growth_inside1_last_x128=0,
                tokens_owed0=0, tokens_owed1=0,
            ),
            102: RawPosition(
                nonce=0, operator=ZERO_ADDRESS, token0=USDC, token1=WETH, fee=500,
                tick_lower=-100, tick_upper=100, liquidity=10 ** 12,
                fee_growth_inside0_last_x128=0, fee_growth_inside1_last_x128=0,
                tokens_owed0=5, tokens_owed1=0,
            ),
        }
        self.tokens = {
            USDC: (6, "USDC", "USD Coin", 2500000),
            WETH: (18, "WETH", "Wrapped Ether", 10 ** 18),
        }
        self.pools = {(USDC, WETH, 500): POOL}
        self.slot = (get_sqrt_ratio_at_tick(50), 50)
        self.ticks_table = {
            -100: TickInfo(0, 0, True),
            0: TickInfo(10 ** 27, 0, True),
            100: TickInfo(2 * 10 ** 27, 0, True),
        }

    async def _hit(self, method, key=None):
        self.calls[method] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if (method, key) in self.failures or (method, None) in self.failures:
                raise ContractCallFailed(method, "execution reverted")
        finally:
            self.in_flight -= 1

    async def balance_of(self, chain_id, nft_manager, owner):
        await self._hit("balanceOf")
        return self.position_count

    async def token_of_owner_by_index(self, chain_id, nft_manager, owner, index):
        await self._hit("tokenOfOwnerByIndex", index)
        return self.token_ids[index]

    async def positions(self, chain_id, nft_manager, token_id):
        await self._hit("positions", token_id)
        return self.raw_positions[token_id]

    async def erc20_decimals(self, chain_id, token):
        await self._hit("decimals", token)
        return self.tokens[token][0]

    async def erc20_symbol(self, chain_id, token):
        await self._hit("symbol", token)
        return self.tokens[token][1]

    async def erc20_name(self, chain_id, token):
        await self._hit("name", token)
        return self.tokens[token][2]

    async def erc20_balance_of(self, chain_id, token, owner):
        await self._hit("erc20BalanceOf", token)
        return self.tokens[token][3]

    async def slot0(self, chain_id, pool):
        await self._hit("slot0", pool)
        return self.slot

    async def liquidity(self, chain_id, pool):
        await self._hit("liquidity", pool)
        return 10 ** 18

    async def fee_growth_global0(self, chain_id, pool):
        await self._hit("feeGrowthGlobal0X128", pool)
        return 5 * 10 ** 27

    async def fee_growth_global1(self, chain_id, pool):
        await self._hit("feeGrowthGlobal1X128", pool)
        return 0

    async def tick_spacing(self, chain_id, pool):
        await self._hit("tickSpacing", pool)
        return 10

    async def ticks(self, chain_id, pool, tick):
        await self._hit("ticks", tick)
        return self.ticks_table[tick]

    async def get_pool(self, chain_id, factory, token0, token1, fee):
        await self._hit("getPool")
        return self.pools.get((token0, token1, fee), ZERO_ADDRESS)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def adapter(provider):
    return UniswapV3Adapter(provider)


# ── get_positions ────────────────────────────────────────────────────────

class TestGetPositions:
    def test_fetches_all_positions(self, adapter):
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert [p.id for p in result.positions] == ["101", "102"]
        assert result.has_partial_data is False
        assert result.errors == {}
        assert set(result.pools) == {POOL}
        assert set(result.tokens) == {USDC, WETH}

    def test_positions_tagged_with_platform_and_chain(self, adapter):
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        position = result.positions[0]
        assert position.platform == UNISWAP_V3
        assert position.platform_name == "Uniswap V3"
        assert position.chain_id == CHAIN

    def test_pool_snapshot_merges_ticks_from_all_positions(self, adapter):
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert set(result.pools[POOL].ticks) == {-100, 0, 100}

    def test_token_snapshot_carries_owner_balance(self, adapter):
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert result.tokens[USDC] == Token(USDC, 6, "USDC", "USD Coin", 2500000)

    def test_shared_reads_issued_once(self, adapter, provider):
        asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert provider.calls["slot0"] == 1
        assert provider.calls["getPool"] == 1
        assert provider.calls["decimals"] == 2
        # ticks 0, 100 (shared) and -100
        assert provider.calls["ticks"] == 3

    def test_failed_position_is_isolated(self, adapter, provider):
        provider.failures.add(("ticks", -100))
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert [p.id for p in result.positions] == ["101"]
        assert result.has_partial_data is True
        assert "102" in result.errors
        assert "ticks" in result.errors["102"]

    def test_failed_index_lookup_keyed_by_index(self, adapter, provider):
        provider.failures.add(("tokenOfOwnerByIndex", 0))
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert [p.id for p in result.positions] == ["102"]
        assert "index:0" in result.errors

    def test_shared_failure_fails_every_dependent(self, adapter, provider):
        provider.failures.add(("slot0", POOL))
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert result.positions == []
        assert set(result.errors) == {"101", "102"}
        assert result.pools == {}

    def test_missing_pool_is_position_error(self, adapter, provider):
        provider.pools.clear()
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert result.positions == []
        assert "getPool" in result.errors["101"]

    def test_malformed_position_skipped(self, adapter, provider):
        raw = provider.raw_positions[102]
        provider.raw_positions[102] = RawPosition(**{**raw.__dict__, "tick_lower": -105})
        provider.ticks_table[-105] = TickInfo()
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert [p.id for p in result.positions] == ["101"]
        assert "tick spacing" in result.errors["102"]

    def test_no_positions(self, adapter, provider):
        provider.position_count = 0
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert result.positions == []
        assert result.has_partial_data is False

    def test_count_failure_is_provider_unavailable(self, adapter, provider):
        provider.failures.add(("balanceOf", None))
        with pytest.raises(ProviderUnavailable):
            asyncio.run(adapter.get_positions(OWNER, CHAIN))

    def test_transport_failure_propagates(self, adapter, provider):
        async def down(*args):
            raise ProviderUnavailable("endpoint down")

        provider.balance_of = down
        with pytest.raises(ProviderUnavailable, match="endpoint down"):
            asyncio.run(adapter.get_positions(OWNER, CHAIN))

    def test_unconfigured_chain(self, provider):
        adapter = PancakeSwapV3Adapter(provider)
        with pytest.raises(UnknownPlatform):
            asyncio.run(adapter.get_positions(OWNER, 10))

    def test_bounded_concurrency(self, provider):
        adapter = UniswapV3Adapter(provider, max_concurrency=1)
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert len(result.positions) == 2
        # token and pool snapshots fan out into several calls each
        assert provider.max_in_flight == 1

    @pytest.mark.parametrize("limit", [2, 3])
    def test_concurrency_limit_covers_every_call(self, provider, limit):
        adapter = UniswapV3Adapter(provider, max_concurrency=limit)
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert len(result.positions) == 2
        assert provider.max_in_flight == limit

    def test_unexpected_error_is_position_error(self, adapter, provider):
        del provider.raw_positions[101]
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert [p.id for p in result.positions] == ["102"]
        assert result.has_partial_data is True
        assert result.errors["101"].startswith("KeyError")

    def test_malformed_slot0_reply_is_position_error(self, adapter, provider):
        provider.slot = None
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        assert result.positions == []
        assert set(result.errors) == {"101", "102"}
        assert "TypeError" in result.errors["101"]

    def test_cancellation_cancels_in_flight_reads(self, provider):
        state = {"cancelled": False}

        async def scenario():
            started = asyncio.Event()

            async def hanging_positions(chain_id, nft_manager, token_id):
                started.set()
                try:
                    await asyncio.sleep(3600)
                except asyncio.CancelledError:
                    state["cancelled"] = True
                    raise

            provider.positions = hanging_positions
            task = asyncio.ensure_future(UniswapV3Adapter(provider).get_positions(OWNER, CHAIN))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert state["cancelled"] is True


# ── Pure queries / presentation ──────────────────────────────────────────

class TestQueries:
    @pytest.fixture
    def result(self, adapter):
        return asyncio.run(adapter.get_positions(OWNER, CHAIN))

    def test_is_in_range(self, adapter, result):
        pool = result.pools[POOL]
        assert adapter.is_in_range(result.positions[0], pool) is True

    def test_calculate_fees_end_to_end(self, adapter, result):
        position = result.positions[0]
        fees = adapter.calculate_fees(position, result.pools[POOL],
                                      result.tokens[USDC], result.tokens[WETH])
        assert fees.token0.raw == 0
        assert fees.token0.formatted == "0"

    def test_tokens_owed_included(self, adapter, result):
        position = result.positions[1]
        fees = adapter.calculate_fees(position, result.pools[POOL],
                                      result.tokens[USDC], result.tokens[WETH])
        assert fees.token0.raw >= 5

    def test_token_amounts(self, adapter, result):
        amounts = adapter.calculate_token_amounts(result.positions[0], result.pools[POOL],
                                                  result.tokens[USDC], result.tokens[WETH])
        assert amounts.token0.raw == 1245
        assert amounts.token1.raw == 1251
        assert amounts.token1.formatted == "0.000000000000001251"

    def test_price_info(self, adapter, result):
        info = adapter.calculate_price(result.positions[0], result.pools[POOL],
                                       result.tokens[USDC], result.tokens[WETH])
        assert info.lower_price == "1,000,000,000,000"
        assert info.token0_symbol == "USDC"
        assert info.token1_symbol == "WETH"

    def test_price_info_without_pool(self, adapter, result):
        info = adapter.calculate_price(result.positions[0], None,
                                       result.tokens[USDC], result.tokens[WETH])
        assert (info.current_price, info.lower_price, info.upper_price) == ("N/A", "N/A", "N/A")

    def test_describe_positions(self, adapter, result):
        view = adapter.describe_positions(result)
        assert set(view) == {"positions", "pool_data", "token_data", "has_partial_data", "errors"}
        first = view["positions"][0]
        assert first["token_pair"] == "USDC/WETH"
        assert first["in_range"] is True
        assert first["liquidity"] == "500000"
        assert first["fees"]["token0"] == {"raw": "0", "formatted": "0"}
        assert first["amounts"]["token0"]["raw"] == "1245"
        pool = view["pool_data"][POOL]
        assert pool["fee_growth_global0_x128"] == "5000000000000000000000000000"
        assert pool["ticks"]["100"]["fee_growth_outside0_x128"] == "2000000000000000000000000000"
        assert view["token_data"][USDC]["balance"] == "2500000"

    def test_describe_reports_fee_error(self, adapter, result):
        result.tokens[WETH] = Token(WETH, None, "WETH")
        view = adapter.describe_positions(result)
        assert "fees" not in view["positions"][0]
        assert "decimals" in view["positions"][0]["fee_error"]

    def test_build_collect_transaction(self, adapter, result):
        recipient = "0x" + "22" * 20
        tx = adapter.build_collect_fees_transaction(
            result.positions[0], result.pools[POOL], result.tokens[USDC], result.tokens[WETH], recipient)
        assert tx.to == NPM
        assert tx.value == 0
        assert tx.data.startswith("0xfc6f7865")
        body = tx.data[10:]
        assert len(body) == 4 * 64
        assert int(body[0:64], 16) == 101
        assert body[64:128] == "0" * 24 + "22" * 20
        assert int(body[128:192], 16) == UINT128_MAX
        assert int(body[192:256], 16) == UINT128_MAX

    def test_build_collect_rejects_bad_recipient(self, adapter, result):
        with pytest.raises(ValueError):
            adapter.build_collect_fees_transaction(
                result.positions[0], result.pools[POOL], result.tokens[USDC], result.tokens[WETH], "0x12")


class TestCheckPoolExists:
    def test_existing_pool(self, adapter):
        info = asyncio.run(adapter.check_pool_exists(WETH, USDC, 500, CHAIN))
        assert info["exists"] is True
        assert info["pool_address"] == POOL
        assert info["slot0"]["tick"] == 50

    def test_missing_pool(self, adapter):
        info = asyncio.run(adapter.check_pool_exists(USDC, WETH, 3000, CHAIN))
        assert info == {"exists": False, "pool_address": None, "slot0": None}

    def test_identical_tokens(self, adapter):
        with pytest.raises(MalformedPositionData):
            asyncio.run(adapter.check_pool_exists(USDC, USDC, 500, CHAIN))


class TestForkAdapters:
    def test_pancakeswap_allows_2500_tier(self):
        assert 2500 in PancakeSwapV3Adapter.fee_tiers
        assert 2500 not in UniswapV3Adapter.fee_tiers

    def test_sushiswap_addresses(self, provider):
        adapter = SushiSwapV3Adapter(provider)
        contracts = adapter.contracts_for(CHAIN)
        assert contracts["factory_address"] == "0x1af415a1EbA07a4986a52B6f2e7dE7003D82231e"
        assert adapter.platform_name == "SushiSwap V3"


# ── Registry ─────────────────────────────────────────────────────────────

class TestAdapterRegistry:
    def test_get_adapter(self, provider):
        registry = build_default_registry(provider)
        adapter = registry.get_adapter(UNISWAP_V3)
        assert isinstance(adapter, UniswapV3Adapter)
        assert registry.get_adapter(UNISWAP_V3) is adapter

    def test_unknown_platform(self, provider):
        registry = build_default_registry(provider)
        with pytest.raises(UnknownPlatform) as exc:
            registry.get_adapter("doesNotExist")
        assert exc.value.platform_id == "doesNotExist"

    def test_unknown_platform_is_lookup_error(self, provider):
        with pytest.raises(LookupError):
            AdapterRegistry(provider).get_adapter(UNISWAP_V3)

    def test_adapters_for_chain(self, provider):
        registry = build_default_registry(provider)
        ids = [a.platform_id for a in registry.get_adapters_for_chain(56)]
        assert ids == [UNISWAP_V3, PANCAKESWAP_V3]

    def test_adapters_for_unknown_chain(self, provider):
        assert build_default_registry(provider).get_adapters_for_chain(999) == []

    def test_only_registered_adapters_returned(self, provider):
        registry = AdapterRegistry(provider)
        registry.register(SUSHISWAP_V3, SushiSwapV3Adapter)
        assert [a.platform_id for a in registry.get_adapters_for_chain(CHAIN)] == [SUSHISWAP_V3]

    def test_register_replaces_factory(self, provider):
        registry = build_default_registry(provider)
        first = registry.get_adapter(UNISWAP_V3)
        registry.register(UNISWAP_V3, UniswapV3Adapter)
        assert registry.get_adapter(UNISWAP_V3) is not first


# ── Claims ───────────────────────────────────────────────────────────────

class TestClaimFees:
    @pytest.fixture
    def snapshot(self, adapter):
        result = asyncio.run(adapter.get_positions(OWNER, CHAIN))
        return result.positions[0], result.pools[POOL], result.tokens[USDC], result.tokens[WETH]

    def _claim(self, adapter, snapshot, sender, tracker):
        return asyncio.run(claim_fees(adapter, *snapshot, OWNER, sender, tracker))

    def test_confirmed(self, adapter, snapshot):
        sent = []

        async def sender(tx):
            sent.append(tx)
            return {"status": 1, "transactionHash": "0xabc"}

        tracker = ClaimTracker()
        outcome = self._claim(adapter, snapshot, sender, tracker)
        assert outcome.status is ClaimStatus.CONFIRMED
        assert sent[0].to == NPM
        assert tracker.status("101") is ClaimStatus.CONFIRMED

    def test_user_rejection_preserved(self, adapter, snapshot):
        class WalletError(Exception):
            code = 4001

        async def sender(tx):
            raise WalletError("user denied")

        tracker = ClaimTracker()
        outcome = self._claim(adapter, snapshot, sender, tracker)
        assert outcome.status is ClaimStatus.FAILED
        assert outcome.error == "Transaction rejected by user"
        assert outcome.error_code == 4001
        assert tracker.error("101") == "Transaction rejected by user"

    def test_transaction_failed_reason_kept(self, adapter, snapshot):
        async def sender(tx):
            raise TransactionFailed("insufficient funds for gas", code=-32000)

        outcome = self._claim(adapter, snapshot, sender, ClaimTracker())
        assert outcome.error == "insufficient funds for gas"
        assert outcome.error_code == -32000

    def test_reverted_receipt(self, adapter, snapshot):
        async def sender(tx):
            return {"status": 0}

        outcome = self._claim(adapter, snapshot, sender, ClaimTracker())
        assert outcome.status is ClaimStatus.FAILED
        assert outcome.error == "Transaction reverted"

    def test_hex_status_success_confirms(self, adapter, snapshot):
        async def sender(tx):
            return {"status": "0x1", "transactionHash": "0xabc"}

        tracker = ClaimTracker()
        outcome = self._claim(adapter, snapshot, sender, tracker)
        assert outcome.status is ClaimStatus.CONFIRMED
        assert tracker.status("101") is ClaimStatus.CONFIRMED

    def test_hex_status_zero_is_revert(self, adapter, snapshot):
        async def reverted(tx):
            return {"status": "0x0"}

        async def ok(tx):
            return {"status": "0x1"}

        tracker = ClaimTracker()
        outcome = self._claim(adapter, snapshot, reverted, tracker)
        assert outcome.status is ClaimStatus.FAILED
        assert outcome.error == "Transaction reverted"
        assert tracker.status("101") is ClaimStatus.FAILED
        assert self._claim(adapter, snapshot, ok, tracker).status is ClaimStatus.CONFIRMED

    def test_unreadable_status_fails_claim(self, adapter, snapshot):
        async def sender(tx):
            return {"status": "success"}

        tracker = ClaimTracker()
        outcome = self._claim(adapter, snapshot, sender, tracker)
        assert outcome.status is ClaimStatus.FAILED
        assert "status" in outcome.error
        assert not tracker.is_pending("101")

    def test_second_claim_while_pending(self, adapter, snapshot):
        tracker = ClaimTracker()

        async def scenario():
            release = asyncio.Event()

            async def sender(tx):
                await release.wait()
                return {"status": 1}

            first = asyncio.ensure_future(claim_fees(adapter, *snapshot, OWNER, sender, tracker))
            await asyncio.sleep(0)
            assert tracker.is_pending("101")
            with pytest.raises(ClaimInProgress):
                await claim_fees(adapter, *snapshot, OWNER, sender, tracker)
            release.set()
            return await first

        outcome = asyncio.run(scenario())
        assert outcome.status is ClaimStatus.CONFIRMED

    def test_retry_after_failure_allowed(self, adapter, snapshot):
        tracker = ClaimTracker()

        async def failing(tx):
            raise TransactionFailed("Internal JSON-RPC error", code=-32603)

        async def ok(tx):
            return {"status": 1}

        assert self._claim(adapter, snapshot, failing, tracker).status is ClaimStatus.FAILED
        assert self._claim(adapter, snapshot, ok, tracker).status is ClaimStatus.CONFIRMED
