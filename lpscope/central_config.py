"""
Project Configuration — version, runtime settings, logging
==========================================================

Runtime settings come from the environment:

  LPSCOPE_LOG_LEVEL        logging level name           (default WARNING)
  LPSCOPE_RPC_TIMEOUT      HTTP timeout, seconds        (default 20)
  LPSCOPE_MAX_CONCURRENCY  in-flight reads per fetch    (default 8)
  LPSCOPE_RPC_<chainId>    RPC URL override, e.g. LPSCOPE_RPC_42161

Chain / platform addresses live in chain_registry.py.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from lpscope.chain_registry import CHAIN_CONFIG, default_rpc_urls

# Version: single source of truth is pyproject.toml
try:
    PROJECT_VERSION = version("lpscope")
except PackageNotFoundError:
    # Dev / CI: package not installed, read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "LP Scope"

ENV_PREFIX = "LPSCOPE_"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    log_level: str = "WARNING"
    rpc_timeout: float = 20.0
    max_concurrency: int = 8
    rpc_urls: Mapping[int, str] = field(
        default_factory=lambda: MappingProxyType(default_rpc_urls())
    )


def _positive_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None,
                  chain_config: Mapping[int, Mapping] = CHAIN_CONFIG) -> Settings:
    """
    Build Settings from ``env`` (defaults to os.environ).

    Raises:
        ValueError: a variable is present but invalid; the message names it.
    """
    env = os.environ if env is None else env

    log_level = env.get(f"{ENV_PREFIX}LOG_LEVEL", "WARNING").strip().upper()
    if log_level not in _LEVELS:
        raise ValueError(f"{ENV_PREFIX}LOG_LEVEL must be one of {', '.join(_LEVELS)}, "
                         f"got {log_level!r}")

    rpc_urls = default_rpc_urls(chain_config)
    for chain_id in chain_config:
        override = env.get(f"{ENV_PREFIX}RPC_{chain_id}")
        if override:
            if not override.startswith(("http://", "https://")):
                raise ValueError(f"{ENV_PREFIX}RPC_{chain_id} must be an http(s) URL, "
                                 f"got {override!r}")
            rpc_urls[chain_id] = override

    return Settings(
        log_level=log_level,
        rpc_timeout=_positive_number(env, f"{ENV_PREFIX}RPC_TIMEOUT", 20.0, float),
        max_concurrency=_positive_number(env, f"{ENV_PREFIX}MAX_CONCURRENCY", 8, int),
        rpc_urls=MappingProxyType(rpc_urls),
    )


def setup_logging(settings: Settings) -> None:
    """Configure the root logger once for CLI use."""
    logging.basicConfig(level=getattr(logging, settings.log_level), format=LOG_FORMAT)
