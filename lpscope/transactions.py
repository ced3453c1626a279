"""
Fee Claim Transactions — collect() Payloads and Claim Lifecycle
===============================================================

NonfungiblePositionManager.collect(CollectParams) with amount0Max and
amount1Max set to uint128 max collects every owed token for the position.
  Ref: https://github.com/Uniswap/v3-periphery/blob/main/contracts/NonfungiblePositionManager.sol

This module only builds the payload and tracks the claim state; signing and
broadcasting belong to the injected ``send_transaction`` coroutine.

Lifecycle:  PENDING → CONFIRMED | FAILED
A position with a PENDING claim refuses a second claim (ClaimInProgress).
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from lpscope.errors import ClaimInProgress, MalformedPositionData, TransactionFailed
from lpscope.rpc_helpers import SELECTORS, encode_address, encode_uint256
from lpscope.uint_math import UINT128_MAX

logger = logging.getLogger(__name__)

# EIP-1193 / JSON-RPC error codes surfaced by wallets
USER_REJECTED = 4001
INTERNAL_RPC_ERROR = -32603

WALLET_ERROR_MESSAGES = {
    USER_REJECTED: "Transaction rejected by user",
    INTERNAL_RPC_ERROR: "Internal JSON-RPC error",
}


@dataclass(frozen=True)
class TransactionRequest:
    to: str
    data: str
    value: int = 0

    def as_dict(self) -> Dict[str, str]:
        return {"to": self.to, "data": self.data, "value": str(self.value)}


def encode_collect_call(token_id: int, recipient: str,
                        amount0_max: int = UINT128_MAX, amount1_max: int = UINT128_MAX) -> str:
    """
    Calldata for collect((uint256 tokenId, address recipient, uint128, uint128)).

    The params tuple holds only static types, so it is encoded in place
    with no offset word.
    """
    return (
        SELECTORS["collect"]
        + encode_uint256(token_id)
        + encode_address(recipient)
        + encode_uint256(amount0_max)
        + encode_uint256(amount1_max)
    )


def build_collect_transaction(position_manager: str, token_id, recipient: str) -> TransactionRequest:
    try:
        token_id = int(token_id)
    except (TypeError, ValueError) as e:
        raise MalformedPositionData(f"Invalid position id: {token_id!r}") from e
    return TransactionRequest(
        to=position_manager,
        data=encode_collect_call(token_id, recipient),
        value=0,
    )


# ── Wallet errors ────────────────────────────────────────────────────────


def _error_field(error: Any, name: str):
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def describe_wallet_error(error: Any) -> str:
    """
    User-facing cause for a failed submission.

    >>> describe_wallet_error({"code": 4001})
    'Transaction rejected by user'
    >>> describe_wallet_error({"code": -32000})
    'Error code: -32000'
    """
    if error is None:
        return "Unknown error"
    code = _error_field(error, "code")
    if code in WALLET_ERROR_MESSAGES:
        return WALLET_ERROR_MESSAGES[code]
    message = _error_field(error, "message")
    if not message and isinstance(error, BaseException):
        message = str(error)
    if message:
        return str(message)
    if code is not None:
        return f"Error code: {code}"
    return "Unknown error"


# ── Claim lifecycle ──────────────────────────────────────────────────────


class ClaimStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ClaimTracker:
    """Per-position claim state; guards against double submission."""

    def __init__(self):
        self._status: Dict[str, ClaimStatus] = {}
        self._errors: Dict[str, str] = {}

    def status(self, position_id) -> Optional[ClaimStatus]:
        return self._status.get(str(position_id))

    def error(self, position_id) -> Optional[str]:
        return self._errors.get(str(position_id))

    def is_pending(self, position_id) -> bool:
        return self.status(position_id) is ClaimStatus.PENDING

    def begin(self, position_id) -> None:
        key = str(position_id)
        if self._status.get(key) is ClaimStatus.PENDING:
            raise ClaimInProgress(key)
        self._status[key] = ClaimStatus.PENDING
        self._errors.pop(key, None)

    def confirm(self, position_id) -> None:
        self._status[str(position_id)] = ClaimStatus.CONFIRMED

    def fail(self, position_id, reason: str) -> None:
        key = str(position_id)
        self._status[key] = ClaimStatus.FAILED
        self._errors[key] = reason


@dataclass(frozen=True)
class ClaimOutcome:
    position_id: str
    status: ClaimStatus
    transaction: TransactionRequest
    receipt: Any = None
    error: Optional[str] = None
    error_code: Optional[int] = None


SendTransaction = Callable[[TransactionRequest], Awaitable[Any]]


def _receipt_status(receipt: Any) -> Optional[int]:
    """Receipt status as an int; JSON-RPC receipts carry it as a hex quantity ("0x1")."""
    status = _error_field(receipt, "status") if receipt is not None else None
    if status is None:
        return None
    if isinstance(status, str):
        return int(status, 0)
    return int(status)


async def claim_fees(adapter, position, pool, token0, token1, recipient: str,
                     send_transaction: SendTransaction, tracker: ClaimTracker) -> ClaimOutcome:
    """
    Build the collect() transaction, submit it through ``send_transaction``
    and record the result in ``tracker``.

    ``send_transaction`` resolves to a receipt (mapping or object); a receipt
    with ``status == 0`` (int or hex string) counts as a revert; an unreadable
    status fails the claim.

    Raises:
        ClaimInProgress: a claim for this position is still PENDING.
    """
    tx = adapter.build_collect_fees_transaction(position, pool, token0, token1, recipient)
    tracker.begin(position.id)
    logger.info("Submitting fee claim for position %s", position.id)

    try:
        receipt = await send_transaction(tx)
    except asyncio.CancelledError:
        tracker.fail(position.id, "Claim cancelled")
        raise
    except TransactionFailed as e:
        tracker.fail(position.id, e.reason)
        logger.warning("Fee claim for position %s failed: %s", position.id, e.reason)
        return ClaimOutcome(position.id, ClaimStatus.FAILED, tx, error=e.reason, error_code=e.code)
    except Exception as e:  # wallet libraries raise arbitrary error types
        reason = describe_wallet_error(e)
        code = _error_field(e, "code")
        tracker.fail(position.id, reason)
        logger.warning("Fee claim for position %s failed: %s", position.id, reason)
        return ClaimOutcome(position.id, ClaimStatus.FAILED, tx, error=reason, error_code=code)

    try:
        status = _receipt_status(receipt)
    except (TypeError, ValueError):
        reason = f"Unreadable transaction receipt status: {_error_field(receipt, 'status')!r}"
        tracker.fail(position.id, reason)
        logger.warning("Fee claim for position %s failed: %s", position.id, reason)
        return ClaimOutcome(position.id, ClaimStatus.FAILED, tx, receipt=receipt, error=reason)

    if status == 0:
        tracker.fail(position.id, "Transaction reverted")
        return ClaimOutcome(position.id, ClaimStatus.FAILED, tx, receipt=receipt,
                            error="Transaction reverted")

    tracker.confirm(position.id)
    logger.info("Fee claim for position %s confirmed", position.id)
    return ClaimOutcome(position.id, ClaimStatus.CONFIRMED, tx, receipt=receipt)
