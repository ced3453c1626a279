"""
Chain Provider — Read Contract State for the Engine
===================================================

``ChainProvider`` is the boundary between the engine and the network: the
adapters only ever talk to one of these. ``JsonRpcProvider`` implements it
over raw eth_call (httpx, no web3.py), one RPC URL per chain id.

Contracts read:
  NonfungiblePositionManager : balanceOf, tokenOfOwnerByIndex, positions
  ERC-20                     : decimals, symbol, name, balanceOf
  UniswapV3Pool              : slot0, liquidity, feeGrowthGlobal0/1X128,
                               tickSpacing, ticks
  UniswapV3Factory           : getPool
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Tuple

from lpscope.errors import ProviderUnavailable
from lpscope.models import TickInfo
from lpscope.rpc_helpers import (
    SELECTORS,
    decode_address,
    decode_bool,
    decode_int,
    decode_string,
    decode_uint,
    encode_address,
    encode_int24,
    encode_uint24,
    encode_uint256,
    eth_call,
    normalize_symbol,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawPosition:
    """NonfungiblePositionManager.positions(tokenId), field for field."""

    nonce: int
    operator: str
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int


class ChainProvider(ABC):
    """Async read access to the contracts the engine needs.

    Implementations raise ProviderUnavailable for transport failures and
    ContractCallFailed for individual calls that revert or return nothing.
    """

    # NonfungiblePositionManager

    @abstractmethod
    async def balance_of(self, chain_id: int, nft_manager: str, owner: str) -> int: ...

    @abstractmethod
    async def token_of_owner_by_index(self, chain_id: int, nft_manager: str,
                                      owner: str, index: int) -> int: ...

    @abstractmethod
    async def positions(self, chain_id: int, nft_manager: str, token_id: int) -> RawPosition: ...

    # ERC-20

    @abstractmethod
    async def erc20_decimals(self, chain_id: int, token: str) -> int: ...

    @abstractmethod
    async def erc20_symbol(self, chain_id: int, token: str) -> str: ...

    @abstractmethod
    async def erc20_name(self, chain_id: int, token: str) -> str: ...

    @abstractmethod
    async def erc20_balance_of(self, chain_id: int, token: str, owner: str) -> int: ...

    # Pool

    @abstractmethod
    async def slot0(self, chain_id: int, pool: str) -> Tuple[int, int]:
        """(sqrtPriceX96, tick)"""

    @abstractmethod
    async def liquidity(self, chain_id: int, pool: str) -> int: ...

    @abstractmethod
    async def fee_growth_global0(self, chain_id: int, pool: str) -> int: ...

    @abstractmethod
    async def fee_growth_global1(self, chain_id: int, pool: str) -> int: ...

    @abstractmethod
    async def tick_spacing(self, chain_id: int, pool: str) -> int: ...

    @abstractmethod
    async def ticks(self, chain_id: int, pool: str, tick: int) -> TickInfo: ...

    # Factory

    @abstractmethod
    async def get_pool(self, chain_id: int, factory: str, token0: str, token1: str,
                       fee: int) -> str:
        """Pool address, or the zero address when no pool exists."""


class JsonRpcProvider(ChainProvider):
    """ChainProvider over public JSON-RPC endpoints.

    Usage:
        provider = JsonRpcProvider({42161: "https://1rpc.io/arb"})
        count = await provider.balance_of(42161, nft_manager, owner)
    """

    def __init__(self, rpc_urls: Mapping[int, str], timeout: float = 20):
        self.rpc_urls = dict(rpc_urls)
        self.timeout = timeout

    def rpc_url(self, chain_id: int) -> str:
        url = self.rpc_urls.get(chain_id)
        if not url:
            raise ProviderUnavailable(f"No RPC endpoint configured for chain {chain_id}")
        return url

    async def _call(self, chain_id: int, to: str, data: str, label: str) -> str:
        return await eth_call(self.rpc_url(chain_id), to, data, timeout=self.timeout, label=label)

    # ── NonfungiblePositionManager ───────────────────────────────────

    async def balance_of(self, chain_id, nft_manager, owner):
        data = SELECTORS["balanceOf"] + encode_address(owner)
        return decode_uint(await self._call(chain_id, nft_manager, data, "balanceOf"))

    async def token_of_owner_by_index(self, chain_id, nft_manager, owner, index):
        data = SELECTORS["tokenOfOwnerByIndex"] + encode_address(owner) + encode_uint256(index)
        result = await self._call(chain_id, nft_manager, data, "tokenOfOwnerByIndex")
        return decode_uint(result)

    async def positions(self, chain_id, nft_manager, token_id):
        """
        Call NonfungiblePositionManager.positions(uint256 tokenId).

        Returns 12 fields per the contract ABI:
          (nonce, operator, token0, token1, fee, tickLower, tickUpper,
           liquidity, feeGrowthInside0LastX128, feeGrowthInside1LastX128,
           tokensOwed0, tokensOwed1)
        """
        data = SELECTORS["positions"] + encode_uint256(token_id)
        result = await self._call(chain_id, nft_manager, data, "positions")
        return RawPosition(
            nonce=decode_uint(result, 0),
            operator=decode_address(result, 1),
            token0=decode_address(result, 2),
            token1=decode_address(result, 3),
            fee=decode_uint(result, 4),
            tick_lower=decode_int(result, 5),
            tick_upper=decode_int(result, 6),
            liquidity=decode_uint(result, 7),
            fee_growth_inside0_last_x128=decode_uint(result, 8),
            fee_growth_inside1_last_x128=decode_uint(result, 9),
            tokens_owed0=decode_uint(result, 10),
            tokens_owed1=decode_uint(result, 11),
        )

    # ── ERC-20 ───────────────────────────────────────────────────────

    async def erc20_decimals(self, chain_id, token):
        return decode_uint(await self._call(chain_id, token, SELECTORS["decimals"], "decimals"))

    async def erc20_symbol(self, chain_id, token):
        raw = await self._call(chain_id, token, SELECTORS["symbol"], "symbol")
        return normalize_symbol(decode_string(raw))

    async def erc20_name(self, chain_id, token):
        return decode_string(await self._call(chain_id, token, SELECTORS["name"], "name"))

    async def erc20_balance_of(self, chain_id, token, owner):
        data = SELECTORS["balanceOf"] + encode_address(owner)
        return decode_uint(await self._call(chain_id, token, data, "balanceOf"))

    # ── Pool ─────────────────────────────────────────────────────────

    async def slot0(self, chain_id, pool):
        result = await self._call(chain_id, pool, SELECTORS["slot0"], "slot0")
        return decode_uint(result, 0), decode_int(result, 1)

    async def liquidity(self, chain_id, pool):
        return decode_uint(await self._call(chain_id, pool, SELECTORS["liquidity"], "liquidity"))

    async def fee_growth_global0(self, chain_id, pool):
        data = SELECTORS["feeGrowthGlobal0X128"]
        return decode_uint(await self._call(chain_id, pool, data, "feeGrowthGlobal0X128"))

    async def fee_growth_global1(self, chain_id, pool):
        data = SELECTORS["feeGrowthGlobal1X128"]
        return decode_uint(await self._call(chain_id, pool, data, "feeGrowthGlobal1X128"))

    async def tick_spacing(self, chain_id, pool):
        result = await self._call(chain_id, pool, SELECTORS["tickSpacing"], "tickSpacing")
        return decode_int(result)

    async def ticks(self, chain_id, pool, tick):
        # ticks() returns: liquidityGross[0], liquidityNet[1],
        #   feeGrowthOutside0X128[2], feeGrowthOutside1X128[3],
        #   tickCumulativeOutside[4], secondsPerLiquidityOutsideX128[5],
        #   secondsOutside[6], initialized[7]
        data = SELECTORS["ticks"] + encode_int24(tick)
        result = await self._call(chain_id, pool, data, f"ticks({tick})")
        return TickInfo(
            fee_growth_outside0_x128=decode_uint(result, 2),
            fee_growth_outside1_x128=decode_uint(result, 3),
            initialized=decode_bool(result, 7),
        )

    # ── Factory ──────────────────────────────────────────────────────

    async def get_pool(self, chain_id, factory, token0, token1, fee):
        data = (
            SELECTORS["getPool"]
            + encode_address(token0)
            + encode_address(token1)
            + encode_uint24(fee)
        )
        return decode_address(await self._call(chain_id, factory, data, "getPool"))
