"""
Error Types — Typed Failures for Fetch, Validation and Claims
==============================================================

Every failure the engine reports is one of these classes, so callers can
tell "no fees owed" apart from "could not compute fees", and "no positions"
apart from "the RPC endpoint is down".

  • ProviderUnavailable   — transport-level failure (endpoint down, timeout)
  • ContractCallFailed    — a single eth_call reverted or returned nothing
  • MissingTokenMetadata  — decimals/symbol absent for a token
  • MissingTickData       — a boundary tick was never fetched
  • MalformedPositionData — snapshot violates a data-model invariant
  • UnknownPlatform       — platform id not registered / not configured
  • ClaimInProgress       — a fee claim is already pending for the position
  • TransactionFailed     — wallet or node rejected the claim transaction
"""

from typing import Optional


class LpScopeError(Exception):
    """Base class for all lpscope errors."""


class ProviderUnavailable(LpScopeError):
    """The chain provider could not be reached."""


class ContractCallFailed(LpScopeError):
    """A contract read failed; ``field`` names the call (e.g. ``slot0``)."""

    def __init__(self, field: str, reason: str = ""):
        self.field = field
        self.reason = reason
        msg = f"Contract call failed: {field}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class MissingTokenMetadata(LpScopeError):
    def __init__(self, token: Optional[str], detail: str = "decimals"):
        self.token = token
        self.detail = detail
        super().__init__(f"Token {detail} missing for {token or 'unknown token'}")


class MissingTickData(LpScopeError):
    def __init__(self, tick: int, pool: Optional[str] = None):
        self.tick = tick
        self.pool = pool
        where = f" in pool {pool}" if pool else ""
        super().__init__(f"Tick data missing for tick {tick}{where}")


class MalformedPositionData(LpScopeError):
    """A snapshot violates one of the data-model invariants."""


class UnknownPlatform(LpScopeError, LookupError):
    def __init__(self, platform_id: str, chain_id: Optional[int] = None):
        self.platform_id = platform_id
        self.chain_id = chain_id
        msg = f"Unknown platform: {platform_id}"
        if chain_id is not None:
            msg += f" (chain {chain_id})"
        super().__init__(msg)


class ClaimInProgress(LpScopeError):
    def __init__(self, position_id: str):
        self.position_id = position_id
        super().__init__(f"A fee claim is already pending for position {position_id}")


class TransactionFailed(LpScopeError):
    """Claim submission failed; ``reason`` is the user-facing cause."""

    def __init__(self, reason: str, code: Optional[int] = None):
        self.reason = reason
        self.code = code
        super().__init__(reason)
