#!/usr/bin/env python3
"""
Uniswap V3 Adapter (+ V3-compatible forks)
==========================================

Reads positions owned by a wallet through the NonfungiblePositionManager
and assembles Position / Pool / Token snapshots for the pure query methods.

Fetch plan per owner:
  1. NPM.balanceOf(owner)                          → position count
  2. NPM.tokenOfOwnerByIndex(owner, i)             → tokenId          ┐
  3. NPM.positions(tokenId)                        → raw position     │ one task per
  4. Factory.getPool(token0, token1, fee)          → pool address     │ position, run
  5. ERC-20 decimals/symbol/name/balanceOf × 2     → token snapshots  │ concurrently
  6. Pool slot0/liquidity/feeGrowthGlobal*/spacing → pool snapshot    │
  7. Pool.ticks(tickLower), Pool.ticks(tickUpper)  → boundary ticks   ┘

Reads shared between positions (same pool, same token, same tick) are
issued once. In-flight RPC calls are bounded by ``max_concurrency``. A position
whose reads fail is left out and recorded in ``PositionsResult.errors``.

PancakeSwap V3 and SushiSwap V3 expose the same positions() / pool ABI;
they differ only in addresses and (PancakeSwap) the extra 2500 fee tier.
  Ref: https://developer.pancakeswap.finance/contracts/v3/addresses
"""

import asyncio
import logging
from typing import Dict, NamedTuple, Optional

from lpscope.chain_registry import PANCAKESWAP_V3, PLATFORM_NAMES, SUSHISWAP_V3, UNISWAP_V3
from lpscope.errors import (
    ContractCallFailed,
    LpScopeError,
    MalformedPositionData,
    ProviderUnavailable,
)
from lpscope.fee_math import FeeResult, calculate_uncollected_fees, require_decimals
from lpscope.liquidity_math import AmountResult, calculate_token_amounts
from lpscope.models import (
    FEE_TIERS,
    ZERO_ADDRESS,
    Pool,
    Position,
    PositionsResult,
    PriceInfo,
    Token,
    is_address,
    is_in_range,
    sort_tokens,
    validate_snapshot,
)
from lpscope.platform_adapter import PlatformAdapter
from lpscope.price_math import NOT_AVAILABLE, sqrt_price_to_price, tick_to_price
from lpscope.transactions import TransactionRequest, build_collect_transaction

logger = logging.getLogger(__name__)


class _FetchFailure(NamedTuple):
    key: str
    error: Exception


class _SharedReads:
    """
    One task per distinct read; dependents await the same task.

    Only leaf RPC calls made through ``call`` hold the semaphore, so a shared
    task that fans out into several calls never holds a slot while waiting.
    """

    def __init__(self, semaphore: asyncio.Semaphore):
        self.semaphore = semaphore
        self.tasks: Dict[tuple, asyncio.Task] = {}

    def get(self, key: tuple, coro_fn, *args) -> asyncio.Task:
        task = self.tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(coro_fn(*args))
            self.tasks[key] = task
        return task

    async def call(self, coro_fn, *args):
        async with self.semaphore:
            return await coro_fn(*args)

    def cancel_pending(self) -> None:
        for task in self.tasks.values():
            if not task.done():
                task.cancel()
            elif not task.cancelled():
                # already surfaced through the positions that awaited it
                task.exception()


class UniswapV3Adapter(PlatformAdapter):
    """
    Uniswap V3 positions on every chain configured for ``platform_id``.

    Usage:
        adapter = UniswapV3Adapter(JsonRpcProvider(rpc_urls))
        result = await adapter.get_positions("0xOwner...", 42161)
        view = adapter.describe_positions(result)
    """

    platform_id = UNISWAP_V3
    platform_name = PLATFORM_NAMES[UNISWAP_V3]
    fee_tiers = FEE_TIERS

    # ── Fetch ────────────────────────────────────────────────────────

    async def get_positions(self, owner: str, chain_id: int) -> PositionsResult:
        """
        Raises:
            UnknownPlatform: platform not configured on ``chain_id``.
            ProviderUnavailable: the position count could not be read.
        """
        contracts = self.contracts_for(chain_id)
        nft_manager = contracts["position_manager_address"]
        factory = contracts["factory_address"]

        try:
            count = await self.provider.balance_of(chain_id, nft_manager, owner)
        except ProviderUnavailable:
            raise
        except LpScopeError as e:
            raise ProviderUnavailable(
                f"Could not read {self.platform_name} position count on chain {chain_id}: {e}"
            ) from e
        logger.debug("%s: %d position(s) for %s on chain %s",
                     self.platform_name, count, owner, chain_id)

        result = PositionsResult()
        if count == 0:
            return result

        reads = _SharedReads(asyncio.Semaphore(self.max_concurrency))
        try:
            fetched = await asyncio.gather(*(
                self._fetch_one(reads, owner, chain_id, nft_manager, factory, index)
                for index in range(count)
            ))
        finally:
            reads.cancel_pending()

        pool_states: Dict[str, dict] = {}
        pool_ticks: Dict[str, dict] = {}
        for item in fetched:
            if isinstance(item, _FetchFailure):
                result.mark_failed(item.key, item.error)
                continue
            position, pool_state, ticks, token0, token1 = item
            result.positions.append(position)
            pool_states[position.pool_address] = pool_state
            pool_ticks.setdefault(position.pool_address, {}).update(ticks)
            result.tokens.setdefault(token0.address, token0)
            result.tokens.setdefault(token1.address, token1)

        for address, state in pool_states.items():
            result.pools[address] = Pool(**state, ticks=pool_ticks[address])
        return result

    async def _fetch_one(self, reads: _SharedReads, owner: str, chain_id: int,
                         nft_manager: str, factory: str, index: int):
        key = f"index:{index}"
        try:
            token_id = await reads.call(
                self.provider.token_of_owner_by_index, chain_id, nft_manager, owner, index)
            key = str(token_id)
            raw = await reads.call(self.provider.positions, chain_id, nft_manager, token_id)

            pool_address = await reads.get(
                ("pool", raw.token0, raw.token1, raw.fee),
                self._resolve_pool, reads, chain_id, factory, raw.token0, raw.token1, raw.fee,
            )
            token0, token1, pool_state, lower, upper = await asyncio.gather(
                reads.get(("token", raw.token0), self._fetch_token,
                          reads, chain_id, raw.token0, owner),
                reads.get(("token", raw.token1), self._fetch_token,
                          reads, chain_id, raw.token1, owner),
                reads.get(("state", pool_address), self._fetch_pool_state,
                          reads, chain_id, pool_address, raw.token0, raw.token1, raw.fee),
                reads.get(("tick", pool_address, raw.tick_lower), reads.call,
                          self.provider.ticks, chain_id, pool_address, raw.tick_lower),
                reads.get(("tick", pool_address, raw.tick_upper), reads.call,
                          self.provider.ticks, chain_id, pool_address, raw.tick_upper),
            )

            position = Position(
                id=key,
                pool_address=pool_address,
                token0=raw.token0,
                token1=raw.token1,
                fee=raw.fee,
                tick_lower=raw.tick_lower,
                tick_upper=raw.tick_upper,
                liquidity=raw.liquidity,
                fee_growth_inside0_last_x128=raw.fee_growth_inside0_last_x128,
                fee_growth_inside1_last_x128=raw.fee_growth_inside1_last_x128,
                tokens_owed0=raw.tokens_owed0,
                tokens_owed1=raw.tokens_owed1,
                platform=self.platform_id,
                platform_name=self.platform_name,
                chain_id=chain_id,
            )
            ticks = {raw.tick_lower: lower, raw.tick_upper: upper}
            validate_snapshot(position, Pool(**pool_state, ticks=ticks), self.fee_tiers)
            return position, pool_state, ticks, token0, token1
        except LpScopeError as e:
            logger.warning("Skipping %s position %s on chain %s: %s",
                           self.platform_name, key, chain_id, e)
            return _FetchFailure(key, e)
        except Exception as e:  # malformed provider reply
            logger.warning("Skipping %s position %s on chain %s: %s: %s",
                           self.platform_name, key, chain_id, type(e).__name__, e,
                           exc_info=True)
            return _FetchFailure(key, e)

    async def _resolve_pool(self, reads: _SharedReads, chain_id: int, factory: str,
                            token0: str, token1: str, fee: int) -> str:
        """Pool address from Factory.getPool(token0, token1, fee)."""
        pool = await reads.call(self.provider.get_pool, chain_id, factory, token0, token1, fee)
        if pool.lower() == ZERO_ADDRESS:
            raise ContractCallFailed(
                "getPool", f"no pool for {token0[:10]}.../{token1[:10]}... fee={fee}")
        return pool

    async def _fetch_token(self, reads: _SharedReads, chain_id: int, address: str,
                           owner: str) -> Token:
        decimals, symbol, name, balance = await asyncio.gather(
            reads.call(self.provider.erc20_decimals, chain_id, address),
            reads.call(self.provider.erc20_symbol, chain_id, address),
            reads.call(self.provider.erc20_name, chain_id, address),
            reads.call(self.provider.erc20_balance_of, chain_id, address, owner),
        )
        return Token(address=address, decimals=decimals, symbol=symbol, name=name, balance=balance)

    async def _fetch_pool_state(self, reads: _SharedReads, chain_id: int, pool: str,
                                token0: str, token1: str, fee: int) -> dict:
        logger.debug("Fetching pool state %s on chain %s", pool, chain_id)
        (sqrt_price_x96, tick), liquidity, fg0, fg1, spacing = await asyncio.gather(
            reads.call(self.provider.slot0, chain_id, pool),
            reads.call(self.provider.liquidity, chain_id, pool),
            reads.call(self.provider.fee_growth_global0, chain_id, pool),
            reads.call(self.provider.fee_growth_global1, chain_id, pool),
            reads.call(self.provider.tick_spacing, chain_id, pool),
        )
        return {
            "address": pool,
            "token0": token0,
            "token1": token1,
            "fee": fee,
            "tick_spacing": spacing,
            "tick": tick,
            "sqrt_price_x96": sqrt_price_x96,
            "liquidity": liquidity,
            "fee_growth_global0_x128": fg0,
            "fee_growth_global1_x128": fg1,
        }

    async def check_pool_exists(self, token_a: str, token_b: str, fee: int,
                                chain_id: int) -> dict:
        """
        Whether a pool exists for the pair and fee tier.

        Returns:
            {exists, pool_address, slot0}; slot0 is {sqrt_price_x96, tick} or None.
        """
        factory = self.contracts_for(chain_id)["factory_address"]
        token0, token1 = sort_tokens(token_a, token_b)
        pool = await self.provider.get_pool(chain_id, factory, token0, token1, fee)
        if pool.lower() == ZERO_ADDRESS:
            return {"exists": False, "pool_address": None, "slot0": None}
        sqrt_price_x96, tick = await self.provider.slot0(chain_id, pool)
        return {
            "exists": True,
            "pool_address": pool,
            "slot0": {"sqrt_price_x96": str(sqrt_price_x96), "tick": tick},
        }

    # ── Pure queries ─────────────────────────────────────────────────

    def is_in_range(self, position: Position, pool: Pool) -> bool:
        return is_in_range(pool.tick, position.tick_lower, position.tick_upper)

    def calculate_price(self, position: Position, pool: Optional[Pool],
                        token0: Optional[Token], token1: Optional[Token],
                        invert: bool = False) -> PriceInfo:
        if (pool is None or token0 is None or token1 is None
                or token0.decimals is None or token1.decimals is None):
            return PriceInfo(NOT_AVAILABLE, NOT_AVAILABLE, NOT_AVAILABLE,
                             token0.symbol if token0 else "", token1.symbol if token1 else "")
        d0, d1 = token0.decimals, token1.decimals
        return PriceInfo(
            current_price=sqrt_price_to_price(pool.sqrt_price_x96, d0, d1, invert),
            lower_price=tick_to_price(position.tick_lower, d0, d1, invert),
            upper_price=tick_to_price(position.tick_upper, d0, d1, invert),
            token0_symbol=token0.symbol,
            token1_symbol=token1.symbol,
        )

    def calculate_fees(self, position: Position, pool: Pool,
                       token0: Optional[Token], token1: Optional[Token]) -> FeeResult:
        return calculate_uncollected_fees(position, pool, token0, token1)

    def calculate_token_amounts(self, position: Position, pool: Pool,
                                token0: Optional[Token], token1: Optional[Token]) -> AmountResult:
        return calculate_token_amounts(position, pool, token0, token1)

    def build_collect_fees_transaction(self, position: Position, pool: Pool,
                                       token0: Optional[Token], token1: Optional[Token],
                                       recipient: str) -> TransactionRequest:
        """
        collect() payload sending every owed token of ``position`` to ``recipient``.

        Raises:
            ValueError: recipient is not an address.
            MissingTokenMetadata: token metadata is absent.
            MalformedPositionData: pool snapshot is absent.
            UnknownPlatform: the position's chain has no position manager for this platform.
        """
        if not is_address(recipient):
            raise ValueError(f"Invalid recipient address: {recipient!r}")
        if pool is None:
            raise MalformedPositionData(f"Pool data missing for position {position.id}")
        require_decimals(token0, position.token0)
        require_decimals(token1, position.token1)
        nft_manager = self.contracts_for(position.chain_id)["position_manager_address"]
        return build_collect_transaction(nft_manager, position.id, recipient)


class PancakeSwapV3Adapter(UniswapV3Adapter):
    platform_id = PANCAKESWAP_V3
    platform_name = PLATFORM_NAMES[PANCAKESWAP_V3]
    fee_tiers = FEE_TIERS | {2500}


class SushiSwapV3Adapter(UniswapV3Adapter):
    platform_id = SUSHISWAP_V3
    platform_name = PLATFORM_NAMES[SUSHISWAP_V3]
