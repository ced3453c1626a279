#!/usr/bin/env python3
"""
RPC Helpers — ABI Encoding/Decoding and JSON-RPC Client
=======================================================

Low-level EVM interaction primitives used by provider.py and
transactions.py:

  • ABI encoding/decoding (uint256, int256, address, uint24, int24, string)
  • JSON-RPC client (eth_call)
  • Named constants for ABI word sizes

All constants follow the Solidity contract ABI encoding:
  https://docs.soliditylang.org/en/latest/abi-spec.html

Terminology:
  • Word:  32 bytes = 256 bits = 64 hex characters
  • Slot:  Position of a 32-byte word in an ABI response

Failures are typed: transport problems raise ProviderUnavailable, a node
error object or an empty return raises ContractCallFailed naming the call.
"""

import logging
from typing import Optional

import httpx

from lpscope.errors import ContractCallFailed, MalformedPositionData, ProviderUnavailable
from lpscope.uint_math import Q256

logger = logging.getLogger(__name__)

# ── ABI Word Constants ──────────────────────────────────────────────────

ABI_WORD_BYTES = 32          # 1 ABI word = 32 bytes
ABI_WORD_HEX = 64            # 32 bytes × 2 hex chars = 64 hex characters
ADDRESS_HEX = 40              # 20 bytes × 2 = 40 hex characters
ADDRESS_PAD_HEX = 24          # Left padding in a 32-byte slot = 64 - 40 = 24 hex chars
SIGN_BIT = 1 << 255           # Two's complement sign bit for int256

# ── Common Token Symbol Normalization ───────────────────────────────────
# Some on-chain symbols use non-standard Unicode or suffixes.

SYMBOL_MAP = {
    "USD₮0": "USDT",
    "USD₮": "USDT",
    "USDT0": "USDT",
}


def normalize_symbol(raw_symbol: str) -> str:
    """Normalize on-chain token symbol to common name."""
    cleaned = raw_symbol.strip().strip("\x00")
    return SYMBOL_MAP.get(cleaned, cleaned)


# ── ABI Function Selectors ──────────────────────────────────────────────
# First 4 bytes of keccak256(function_signature).

SELECTORS: dict[str, str] = {
    # NonfungiblePositionManager (ERC-721 Enumerable)
    "balanceOf":              "0x70a08231",  # balanceOf(address)
    "tokenOfOwnerByIndex":    "0x2f745c59",  # tokenOfOwnerByIndex(address,uint256)
    "positions":              "0x99fbab88",  # positions(uint256)
    "collect":                "0xfc6f7865",  # collect((uint256,address,uint128,uint128))

    # UniswapV3Pool (read-only state)
    "slot0":                  "0x3850c7bd",  # slot0()
    "liquidity":              "0x1a686502",  # liquidity()
    "feeGrowthGlobal0X128":   "0xf3058399",  # feeGrowthGlobal0X128()
    "feeGrowthGlobal1X128":   "0x46141319",  # feeGrowthGlobal1X128()
    "tickSpacing":            "0xd0c93a7c",  # tickSpacing()
    "ticks":                  "0xf30dba93",  # ticks(int24)

    # UniswapV3Factory
    "getPool":                "0x1698ee82",  # getPool(address,address,uint24)

    # ERC-20 metadata
    "symbol":                 "0x95d89b41",  # symbol()
    "name":                   "0x06fdde03",  # name()
    "decimals":               "0x313ce567",  # decimals()
}


# ── ABI Encoding ────────────────────────────────────────────────────────

def encode_uint256(value: int) -> str:
    """ABI-encode a uint256 as 32-byte hex (no 0x prefix).

    >>> encode_uint256(1)
    '0000000000000000000000000000000000000000000000000000000000000001'
    """
    if value < 0 or value >= Q256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, f'0{ABI_WORD_HEX}x')


def encode_address(addr: str) -> str:
    """ABI-encode an address as 32 bytes (left-padded, no 0x prefix).

    >>> encode_address('0xC36442b4a4522E871399CD717aBDD847Ab11FE88')
    '000000000000000000000000c36442b4a4522e871399cd717abdd847ab11fe88'
    """
    return addr.lower().replace("0x", "").zfill(ABI_WORD_HEX)


def encode_uint24(val: int) -> str:
    """ABI-encode a uint24 as 32 bytes (for fee tier parameter).

    >>> encode_uint24(3000)
    '0000000000000000000000000000000000000000000000000000000000000bb8'
    """
    return format(val, f'0{ABI_WORD_HEX}x')


def encode_int24(value: int) -> str:
    """ABI-encode an int24 sign-extended to int256 (for ticks).

    >>> encode_int24(-887220)
    'fffffffffffffffffffffffffffffffffffffffffffffffffffffffffff27e8c'
    """
    if value < 0:
        value = Q256 + value
    return format(value, f'0{ABI_WORD_HEX}x')


# ── ABI Decoding ────────────────────────────────────────────────────────

def _word(hex_data: str, slot: int) -> str:
    start = slot * ABI_WORD_HEX
    word = hex_data[start:start + ABI_WORD_HEX]
    if len(word) != ABI_WORD_HEX:
        raise MalformedPositionData(
            f"ABI response too short: slot {slot} not present ({len(hex_data)} hex chars)"
        )
    return word


def decode_uint(hex_data: str, slot: int = 0) -> int:
    """Decode uint256 from ABI response at 32-byte slot offset.

    Args:
        hex_data: Hex string (without 0x prefix).
        slot: Which 32-byte word to read (0-indexed).
    """
    word = _word(hex_data, slot)
    try:
        return int(word, 16)
    except ValueError as e:
        raise MalformedPositionData(f"Invalid hex in ABI slot {slot}: {word!r}") from e


def decode_int(hex_data: str, slot: int = 0) -> int:
    """Decode int256 (two's complement) from ABI response."""
    val = decode_uint(hex_data, slot)
    if val >= SIGN_BIT:
        return val - Q256
    return val


def decode_bool(hex_data: str, slot: int = 0) -> bool:
    return decode_uint(hex_data, slot) != 0


def decode_address(hex_data: str, slot: int = 0) -> str:
    """Decode address (last 20 bytes of 32-byte slot)."""
    word = _word(hex_data, slot)
    return "0x" + word[ADDRESS_PAD_HEX:]


def decode_string(hex_data: str) -> str:
    """Decode ABI-encoded dynamic string return value.

    Handles both standard dynamic strings (offset + length + data)
    and non-standard bytes32 returns from some token contracts.
    """
    try:
        offset = decode_uint(hex_data, 0)
        word_offset = offset // ABI_WORD_BYTES
        length = decode_uint(hex_data, word_offset)
        start_byte = (word_offset + 1) * ABI_WORD_HEX
        hex_str = hex_data[start_byte:start_byte + length * 2]
        return bytes.fromhex(hex_str).decode("utf-8").strip("\x00")
    except (MalformedPositionData, ValueError, UnicodeDecodeError):
        # Some tokens (e.g. MKR) return bytes32 instead of string
        try:
            raw = bytes.fromhex(hex_data[:ABI_WORD_HEX])
            return raw.decode("utf-8").strip("\x00").strip()
        except (ValueError, UnicodeDecodeError):
            return "UNK"


# ── JSON-RPC Client ─────────────────────────────────────────────────────

def _call_payload(to: str, data: str) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "eth_call",
        "params": [{"to": to, "data": data}, "latest"],
    }


def _unwrap_result(result: dict, label: str) -> str:
    if "error" in result:
        err = result["error"]
        reason = err.get("message", str(err)) if isinstance(err, dict) else str(err)
        raise ContractCallFailed(label, reason)
    raw = result.get("result", "0x")
    if not isinstance(raw, str):
        raise ContractCallFailed(label, f"non-string result: {type(raw).__name__}")
    if not raw or raw == "0x" or len(raw) < 4:
        raise ContractCallFailed(label, "empty response, contract may not exist at this address")
    return raw[2:]  # strip 0x prefix


async def _post(rpc_url: str, payload, timeout: float):
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(rpc_url, json=payload)
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPError as e:
        raise ProviderUnavailable(f"RPC endpoint unreachable ({rpc_url}): {e}") from e
    except ValueError as e:
        raise ProviderUnavailable(f"RPC endpoint returned invalid JSON ({rpc_url})") from e


async def eth_call(rpc_url: str, to: str, data: str, timeout: float = 20,
                   label: Optional[str] = None) -> str:
    """
    Execute eth_call on an EVM node.

    Args:
        rpc_url: JSON-RPC endpoint URL (e.g. https://1rpc.io/arb)
        to: Contract address (0x...)
        data: ABI-encoded calldata (0x + selector + params)
        timeout: HTTP timeout in seconds
        label: Call name reported in ContractCallFailed (defaults to the selector)

    Returns:
        Hex response string (without 0x prefix).

    Raises:
        ProviderUnavailable: transport failure or non-JSON response.
        ContractCallFailed: RPC error object or empty response.
    """
    label = label or data[:10]
    logger.debug("eth_call %s → %s", label, to)
    result = await _post(rpc_url, _call_payload(to, data), timeout)
    if not isinstance(result, dict):
        raise ContractCallFailed(label, "unexpected JSON-RPC response shape")
    return _unwrap_result(result, label)
