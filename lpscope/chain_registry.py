#!/usr/bin/env python3
"""
Chain Registry — Per-Chain V3 Contract Address Configuration
============================================================

Static table: chainId → {name, rpc_url, platforms{platformId → addresses}}.
Read-only at runtime; adapters receive it through AdapterRegistry.

Compatibility:
  ✅ Same positions() / pool ABI as Uniswap V3:
     - Uniswap V3
     - PancakeSwap V3
     - SushiSwap V3

Contract Address Sources:
  Uniswap V3  : https://docs.uniswap.org/contracts/v3/reference/deployments/
  PancakeSwap : https://developer.pancakeswap.finance/contracts/v3/addresses
  SushiSwap   : https://github.com/sushi-labs/sushi (src/evm/config/features/sushiswap-v3.ts)

RPC endpoints default to 1RPC (https://docs.1rpc.io), a privacy-preserving
relay with a free tier and no API key. Override per chain with
LPSCOPE_RPC_<chainId> (see central_config.py).
"""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

UNISWAP_V3 = "uniswapV3"
PANCAKESWAP_V3 = "pancakeswapV3"
SUSHISWAP_V3 = "sushiswapV3"

PLATFORM_NAMES = MappingProxyType({
    UNISWAP_V3: "Uniswap V3",
    PANCAKESWAP_V3: "PancakeSwap V3",
    SUSHISWAP_V3: "SushiSwap V3",
})

LOCAL_FORK_CHAIN_ID = 1337


def _platform(platform_id: str, factory: str, position_manager: str,
              enabled: bool = True) -> Mapping:
    return MappingProxyType({
        "id": platform_id,
        "name": PLATFORM_NAMES[platform_id],
        "factory_address": factory,
        "position_manager_address": position_manager,
        "enabled": enabled,
    })


def _chain(name: str, rpc_url: str, *platforms: Mapping) -> Mapping:
    return MappingProxyType({
        "name": name,
        "rpc_url": rpc_url,
        "platforms": MappingProxyType({p["id"]: p for p in platforms}),
    })


# Uniswap V3 shares addresses on most chains via CREATE2
_UNI_FACTORY = "0x1F98431c8aD98523631AE4a59f267346ea31F984"
_UNI_NPM = "0xC36442b4a4522E871399CD717aBDD847Ab11FE88"
_CAKE_FACTORY = "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865"
_CAKE_NPM = "0x46A15B0b27311cedF172AB29E4f4766fbE7F4364"

_ARBITRUM_PLATFORMS = (
    _platform(UNISWAP_V3, _UNI_FACTORY, _UNI_NPM),
    _platform(PANCAKESWAP_V3, _CAKE_FACTORY, "0x427bF5b37357632377eCbEC9de3626C71A5396c1"),
    _platform(SUSHISWAP_V3, "0x1af415a1EbA07a4986a52B6f2e7dE7003D82231e",
              "0xF0cBce1942a68BEB3d1b73F0dd86c8DCc363eF49"),
)

CHAIN_CONFIG: Mapping[int, Mapping] = MappingProxyType({
    1: _chain(
        "Ethereum", "https://1rpc.io/eth",
        _platform(UNISWAP_V3, _UNI_FACTORY, _UNI_NPM),
        _platform(PANCAKESWAP_V3, _CAKE_FACTORY, _CAKE_NPM),
        _platform(SUSHISWAP_V3, "0xbACEB8eC6b9355Dfc0269C18bac9d6E2Bdc29C4F",
                  "0x2214A42d8e2A1d20635C2cb0664422c528b6A432"),
    ),
    10: _chain(
        "Optimism", "https://1rpc.io/op",
        _platform(UNISWAP_V3, _UNI_FACTORY, _UNI_NPM),
        _platform(SUSHISWAP_V3, "0x9c6522117e2ed1fE5bdb72bb0eD5E3f2bdE7DBe0",
                  "0x1af415a1EbA07a4986a52B6f2e7dE7003D82231e"),
    ),
    56: _chain(
        "BNB Smart Chain", "https://1rpc.io/bnb",
        _platform(UNISWAP_V3, "0xdB1d10011AD0Ff90774D0C6Bb92e5C5c8b4461F7",
                  "0x7b8A01B39D58278b5DE7e48c8449c9f4F5170613"),
        _platform(PANCAKESWAP_V3, _CAKE_FACTORY, _CAKE_NPM),
    ),
    137: _chain(
        "Polygon", "https://1rpc.io/matic",
        _platform(UNISWAP_V3, _UNI_FACTORY, _UNI_NPM),
        _platform(SUSHISWAP_V3, "0x917933899c6a5f8E37F31E19f92CdbFf7e8ff0e2",
                  "0xb7402ee99F0A008e461098AC3a27F4957Df89a40"),
    ),
    8453: _chain(
        "Base", "https://1rpc.io/base",
        _platform(UNISWAP_V3, "0x33128a8fC17869897dcE68Ed026d694621f6FDfD",
                  "0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1"),
        _platform(PANCAKESWAP_V3, _CAKE_FACTORY, _CAKE_NPM),
        _platform(SUSHISWAP_V3, "0xc35DADB65012eC5796536bD9864eD8773aBc74C4",
                  "0x80C7DD17B01855a6D2347444a0FCC36136a314de"),
    ),
    42161: _chain("Arbitrum One", "https://1rpc.io/arb", *_ARBITRUM_PLATFORMS),
    # Local Arbitrum fork (hardhat / anvil), same deployments as mainnet
    LOCAL_FORK_CHAIN_ID: _chain("Local Arbitrum Fork", "http://127.0.0.1:8545", *_ARBITRUM_PLATFORMS),
})


# ── Helper Functions ────────────────────────────────────────────────────


def get_chain(chain_id: int, config: Mapping[int, Mapping] = CHAIN_CONFIG) -> Optional[Mapping]:
    return config.get(chain_id)


def get_chain_name(chain_id: int, config: Mapping[int, Mapping] = CHAIN_CONFIG) -> str:
    chain = config.get(chain_id)
    return chain["name"] if chain else f"Chain {chain_id}"


def get_platform_config(chain_id: int, platform_id: str,
                        config: Mapping[int, Mapping] = CHAIN_CONFIG) -> Optional[Mapping]:
    """Addresses for one platform on one chain, or None when not deployed/enabled."""
    chain = config.get(chain_id)
    if not chain:
        return None
    platform = chain["platforms"].get(platform_id)
    if not platform or not platform.get("enabled", True):
        return None
    return platform


def get_platforms_for_chain(chain_id: int,
                            config: Mapping[int, Mapping] = CHAIN_CONFIG) -> List[Mapping]:
    """All enabled platforms on a chain, in table order."""
    chain = config.get(chain_id)
    if not chain:
        return []
    return [p for p in chain["platforms"].values() if p.get("enabled", True)]


def supported_chain_ids(config: Mapping[int, Mapping] = CHAIN_CONFIG) -> List[int]:
    return sorted(config)


def default_rpc_urls(config: Mapping[int, Mapping] = CHAIN_CONFIG) -> Dict[int, str]:
    return {chain_id: chain["rpc_url"] for chain_id, chain in config.items()}
