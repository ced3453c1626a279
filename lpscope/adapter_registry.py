"""
Adapter Registry
================

Explicit value built once at startup (see ``build_default_registry``) and
handed to whatever needs adapters; there is no module-level adapter map.

  register(platform_id, factory)   factory(provider, chain_config) → adapter
  get_adapter(platform_id)         raises UnknownPlatform when unregistered
  get_adapters_for_chain(chain_id) adapters configured + enabled on a chain
"""

from typing import Callable, Dict, List, Mapping

from lpscope.chain_registry import CHAIN_CONFIG, get_platforms_for_chain
from lpscope.errors import UnknownPlatform
from lpscope.platform_adapter import PlatformAdapter
from lpscope.provider import ChainProvider
from lpscope.uniswap_v3_adapter import PancakeSwapV3Adapter, SushiSwapV3Adapter, UniswapV3Adapter

AdapterFactory = Callable[..., PlatformAdapter]


class AdapterRegistry:
    def __init__(self, provider: ChainProvider,
                 chain_config: Mapping[int, Mapping] = CHAIN_CONFIG,
                 max_concurrency: int = 8):
        self.provider = provider
        self.chain_config = chain_config
        self.max_concurrency = max_concurrency
        self._factories: Dict[str, AdapterFactory] = {}
        self._adapters: Dict[str, PlatformAdapter] = {}

    def register(self, platform_id: str, factory: AdapterFactory) -> None:
        """Register (or replace) the factory for ``platform_id``."""
        self._factories[platform_id] = factory
        self._adapters.pop(platform_id, None)

    @property
    def platform_ids(self) -> List[str]:
        return list(self._factories)

    def get_adapter(self, platform_id: str) -> PlatformAdapter:
        """
        Adapter for ``platform_id``, built on first use.

        Raises:
            UnknownPlatform: nothing registered under ``platform_id``.
        """
        adapter = self._adapters.get(platform_id)
        if adapter is not None:
            return adapter
        factory = self._factories.get(platform_id)
        if factory is None:
            raise UnknownPlatform(platform_id)
        adapter = factory(self.provider, self.chain_config, self.max_concurrency)
        self._adapters[platform_id] = adapter
        return adapter

    def get_adapters_for_chain(self, chain_id: int) -> List[PlatformAdapter]:
        """Registered adapters whose platform is enabled on ``chain_id``, in config order."""
        return [
            self.get_adapter(platform["id"])
            for platform in get_platforms_for_chain(chain_id, self.chain_config)
            if platform["id"] in self._factories
        ]


def build_default_registry(provider: ChainProvider,
                           chain_config: Mapping[int, Mapping] = CHAIN_CONFIG,
                           max_concurrency: int = 8) -> AdapterRegistry:
    registry = AdapterRegistry(provider, chain_config, max_concurrency)
    for adapter_cls in (UniswapV3Adapter, PancakeSwapV3Adapter, SushiSwapV3Adapter):
        registry.register(adapter_cls.platform_id, adapter_cls)
    return registry
