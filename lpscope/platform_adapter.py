"""Contract every DEX platform integration implements."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Mapping, Optional

from lpscope.chain_registry import CHAIN_CONFIG, get_platform_config
from lpscope.errors import LpScopeError, UnknownPlatform
from lpscope.fee_math import FeeResult
from lpscope.liquidity_math import AmountResult
from lpscope.models import FEE_TIERS, Pool, Position, PositionsResult, PriceInfo, Token
from lpscope.provider import ChainProvider
from lpscope.transactions import TransactionRequest

logger = logging.getLogger(__name__)


class PlatformAdapter(ABC):
    """
    One DEX platform on any chain where it is configured.

    Fetching (``get_positions``) is async and goes through the injected
    ChainProvider. Every other query is a pure function of its snapshots.
    """

    platform_id: str = ""
    platform_name: str = ""
    fee_tiers: FrozenSet[int] = FEE_TIERS

    def __init__(self, provider: ChainProvider,
                 chain_config: Mapping[int, Mapping] = CHAIN_CONFIG,
                 max_concurrency: int = 8):
        self.provider = provider
        self.chain_config = chain_config
        self.max_concurrency = max_concurrency

    def __repr__(self):
        return f"{type(self).__name__}(platform_id={self.platform_id!r})"

    def contracts_for(self, chain_id: int) -> Mapping:
        """Factory / position manager addresses for ``chain_id``.

        Raises:
            UnknownPlatform: the platform is not configured (or disabled) there.
        """
        platform = get_platform_config(chain_id, self.platform_id, self.chain_config)
        if platform is None:
            raise UnknownPlatform(self.platform_id, chain_id)
        return platform

    # ── Capabilities ─────────────────────────────────────────────────

    @abstractmethod
    async def get_positions(self, owner: str, chain_id: int) -> PositionsResult:
        """All positions owned by ``owner`` with their pool and token snapshots."""

    @abstractmethod
    def is_in_range(self, position: Position, pool: Pool) -> bool: ...

    @abstractmethod
    def calculate_price(self, position: Position, pool: Optional[Pool],
                        token0: Optional[Token], token1: Optional[Token],
                        invert: bool = False) -> PriceInfo: ...

    @abstractmethod
    def calculate_fees(self, position: Position, pool: Pool,
                       token0: Optional[Token], token1: Optional[Token]) -> FeeResult: ...

    @abstractmethod
    def calculate_token_amounts(self, position: Position, pool: Pool,
                                token0: Optional[Token], token1: Optional[Token]) -> AmountResult: ...

    @abstractmethod
    def build_collect_fees_transaction(self, position: Position, pool: Pool,
                                       token0: Optional[Token], token1: Optional[Token],
                                       recipient: str) -> TransactionRequest: ...

    # ── Presentation ─────────────────────────────────────────────────

    def describe_position(self, position: Position, result: PositionsResult,
                          invert: bool = False) -> Dict[str, Any]:
        pool = result.pools.get(position.pool_address)
        token0 = result.tokens.get(position.token0)
        token1 = result.tokens.get(position.token1)

        view = position.to_view()
        symbol0 = token0.symbol if token0 else "?"
        symbol1 = token1.symbol if token1 else "?"
        view["token_pair"] = f"{symbol0}/{symbol1}"
        view["in_range"] = self.is_in_range(position, pool) if pool else None
        view["prices"] = self.calculate_price(position, pool, token0, token1, invert).as_dict()

        if pool is None:
            view["fee_error"] = view["amount_error"] = f"Pool data missing for {position.pool_address}"
            return view
        try:
            view["fees"] = self.calculate_fees(position, pool, token0, token1).as_dict()
        except LpScopeError as e:
            logger.warning("Fees unavailable for position %s: %s", position.id, e)
            view["fee_error"] = str(e)
        try:
            view["amounts"] = self.calculate_token_amounts(position, pool, token0, token1).as_dict()
        except LpScopeError as e:
            logger.warning("Token amounts unavailable for position %s: %s", position.id, e)
            view["amount_error"] = str(e)
        return view

    def describe_positions(self, result: PositionsResult, invert: bool = False) -> Dict[str, Any]:
        """
        Render a PositionsResult for the presentation layer.

        Returns:
            {positions, pool_data, token_data, has_partial_data, errors}; every
            128/256-bit integer is a decimal string.
        """
        return {
            "positions": [self.describe_position(p, result, invert) for p in result.positions],
            "pool_data": {addr: pool.to_view() for addr, pool in result.pools.items()},
            "token_data": {addr: token.to_view() for addr, token in result.tokens.items()},
            "has_partial_data": result.has_partial_data,
            "errors": dict(result.errors),
        }
