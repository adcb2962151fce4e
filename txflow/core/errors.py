"""
Error Classification

Defines the error taxonomy for the transaction lifecycle.
Errors are classified as recoverable (the user may retry) or unrecoverable
(the input, wallet, or transaction needs review before anything is resent).
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Kinds of errors a step or preparation can end with."""

    VALIDATION = "validation"                      # Bad input to prepare
    RATE_LIMITED = "rate_limited"                  # Backend returned 429
    SERVICE_UNAVAILABLE = "service_unavailable"    # Backend prepare/tracker outage
    WALLET_INCOMPATIBLE = "wallet_incompatible"    # No wallet or no EVM support
    WRONG_NETWORK = "wrong_network"                # Wallet on another chain
    USER_REJECTED = "user_rejected"                # Declined inside the wallet
    TRANSACTION_REVERTED = "transaction_reverted"  # On-chain revert
    RECEIPT_TIMEOUT = "receipt_timeout"            # No receipt before the deadline
    UNKNOWN = "unknown"                            # Unclassified error


@dataclass
class ErrorContext:
    """Additional context about an error."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    suggested_action: Optional[str] = None
    chain_id: Optional[int] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class TxFlowError(Exception):
    """Base class for every typed error raised by txflow."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.context = context or ErrorContext(kind=kind)


class RecoverableError(TxFlowError):
    """
    Base class for errors that can be retried.

    These errors are typically transient:
    - Rate limits
    - Backend outages
    - User rejection in the wallet
    - Receipt timeouts
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            kind=kind,
            context=context or ErrorContext(kind=kind, recoverable=True, retry_after_seconds=retry_after),
        )
        self.retry_after = retry_after


class UnrecoverableError(TxFlowError):
    """
    Base class for errors that cannot be retried as-is.

    These errors require the user to change something first:
    - Invalid input
    - Incompatible wallet
    - Transaction reverts
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            kind=kind,
            context=context or ErrorContext(kind=kind, recoverable=False),
        )


# Request Builder errors
class ValidationError(UnrecoverableError):
    """Inputs are outside the domain's bounds (unsupported chain, token, amount)."""

    def __init__(self, message: str = "Invalid request", field_name: Optional[str] = None):
        super().__init__(
            message,
            kind=ErrorKind.VALIDATION,
            context=ErrorContext(
                kind=ErrorKind.VALIDATION,
                recoverable=False,
                suggested_action="Change the input and try again",
                details={"field": field_name} if field_name else {},
            ),
        )
        self.field_name = field_name


class RateLimited(RecoverableError):
    """Backend returned HTTP 429."""

    def __init__(
        self,
        retry_after_seconds: float = 30.0,
        message: str = "Rate limit exceeded",
        provider: Optional[str] = None,
    ):
        super().__init__(
            message,
            kind=ErrorKind.RATE_LIMITED,
            retry_after=retry_after_seconds,
            context=ErrorContext(
                kind=ErrorKind.RATE_LIMITED,
                recoverable=True,
                retry_after_seconds=retry_after_seconds,
                suggested_action=f"Wait {retry_after_seconds:g}s before retrying",
                details={"provider": provider} if provider else {},
            ),
        )
        self.retry_after_seconds = retry_after_seconds


class ServiceUnavailable(RecoverableError):
    """Backend preparation or tracking call failed."""

    def __init__(
        self,
        message: str = "Service unavailable",
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(
            message,
            kind=ErrorKind.SERVICE_UNAVAILABLE,
            retry_after=5.0,
            context=ErrorContext(
                kind=ErrorKind.SERVICE_UNAVAILABLE,
                recoverable=True,
                retry_after_seconds=5.0,
                suggested_action="Retry shortly",
                details={"status_code": status_code, "provider": provider},
            ),
        )
        self.status_code = status_code


# Wallet Executor errors
class WalletIncompatible(UnrecoverableError):
    """No wallet connected, or the wallet cannot submit EVM transactions."""

    def __init__(self, message: str = "Connect an EVM wallet to continue"):
        super().__init__(
            message,
            kind=ErrorKind.WALLET_INCOMPATIBLE,
            context=ErrorContext(
                kind=ErrorKind.WALLET_INCOMPATIBLE,
                recoverable=False,
                suggested_action="Connect an EVM-compatible wallet",
            ),
        )


class WrongNetwork(RecoverableError):
    """The wallet's active chain does not match the step's chain."""

    def __init__(self, expected: int, actual: Optional[int]):
        super().__init__(
            f"Wallet is on chain {actual}, expected chain {expected}",
            kind=ErrorKind.WRONG_NETWORK,
            context=ErrorContext(
                kind=ErrorKind.WRONG_NETWORK,
                recoverable=True,
                chain_id=expected,
                suggested_action=f"Switch your wallet to chain {expected}",
                details={"expected": expected, "actual": actual},
            ),
        )
        self.expected = expected
        self.actual = actual


class UserRejected(RecoverableError):
    """The user declined the request inside the wallet."""

    def __init__(self, message: str = "Transaction rejected in wallet"):
        super().__init__(
            message,
            kind=ErrorKind.USER_REJECTED,
            context=ErrorContext(
                kind=ErrorKind.USER_REJECTED,
                recoverable=True,
                suggested_action="Check details and try again",
            ),
        )


class WalletSubmitError(RecoverableError):
    """The wallet accepted the call but did not return a usable transaction hash."""

    def __init__(self, message: str = "Wallet did not return a transaction hash"):
        super().__init__(message, kind=ErrorKind.UNKNOWN)


# Receipt outcomes surfaced as errors
class TransactionReverted(UnrecoverableError):
    """Transaction reverted on-chain."""

    def __init__(
        self,
        message: str = "Transaction reverted",
        tx_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
    ):
        super().__init__(
            message,
            kind=ErrorKind.TRANSACTION_REVERTED,
            context=ErrorContext(
                kind=ErrorKind.TRANSACTION_REVERTED,
                recoverable=False,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="Review transaction parameters",
            ),
        )
        self.tx_hash = tx_hash


class ReceiptTimeout(RecoverableError):
    """No receipt before the deadline; the transaction may still land."""

    def __init__(
        self,
        message: str = "Transaction submitted but not confirmed yet",
        tx_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
    ):
        super().__init__(
            message,
            kind=ErrorKind.RECEIPT_TIMEOUT,
            context=ErrorContext(
                kind=ErrorKind.RECEIPT_TIMEOUT,
                recoverable=True,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="Recheck the transaction before sending it again",
            ),
        )
        self.tx_hash = tx_hash


USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Please check the amount and token and try again.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment.",
    ErrorKind.SERVICE_UNAVAILABLE: "Service is temporarily unavailable. Please try again later.",
    ErrorKind.WALLET_INCOMPATIBLE: "Connect an EVM wallet to continue.",
    ErrorKind.WRONG_NETWORK: "Your wallet is on the wrong network. Switch networks to continue.",
    ErrorKind.USER_REJECTED: "Transaction rejected in wallet. Check details and try again.",
    ErrorKind.TRANSACTION_REVERTED: "Transaction failed on-chain. Check your balance and try again.",
    ErrorKind.RECEIPT_TIMEOUT: "Transaction submitted, but confirmation is still pending on-chain.",
    ErrorKind.UNKNOWN: "Something went wrong. Please try again.",
}


# Kinds that need a change of input, wallet or transaction before anything is resent
NON_RETRYABLE_KINDS = frozenset({
    ErrorKind.VALIDATION,
    ErrorKind.WALLET_INCOMPATIBLE,
    ErrorKind.TRANSACTION_REVERTED,
})


def is_retryable(kind: Optional[ErrorKind]) -> bool:
    """Whether a step or preparation that ended with ``kind`` may be retried as-is."""
    return kind not in NON_RETRYABLE_KINDS


def user_message(kind: ErrorKind, fallback: Optional[str] = None) -> str:
    """Short user-facing sentence for an error kind."""
    if kind == ErrorKind.UNKNOWN and fallback:
        return fallback
    return USER_MESSAGES.get(kind, fallback or USER_MESSAGES[ErrorKind.UNKNOWN])


def parse_retry_after(
    value: Optional[str],
    default: float = 30.0,
    minimum: float = 1.0,
    maximum: float = 120.0,
) -> float:
    """
    Parse an HTTP ``retry-after`` header into clamped seconds.

    The header may carry delta-seconds or an HTTP date.
    """
    seconds: Optional[float] = None
    if value:
        text = value.strip()
        try:
            parsed = float(text)
            if math.isfinite(parsed) and parsed > 0:
                seconds = float(math.ceil(parsed))
        except ValueError:
            try:
                when = parsedate_to_datetime(text)
            except (TypeError, ValueError):
                when = None
            if when is not None:
                if when.tzinfo is None:
                    when = when.replace(tzinfo=timezone.utc)
                delta = math.ceil((when - datetime.now(timezone.utc)).total_seconds())
                if delta > 0:
                    seconds = float(delta)

    if seconds is None:
        seconds = default
    return max(minimum, min(maximum, seconds))


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Typed errors pass through; wallet and transport exceptions are classified
    from their EIP-1193 code and message.
    """
    if isinstance(error, TxFlowError):
        return error.context

    # EIP-1193 user rejection
    if getattr(error, "code", None) == 4001:
        return UserRejected().context

    message = str(error).lower()

    rejection_patterns = [
        "user rejected",
        "user denied",
        "rejected in wallet",
        "request rejected",
        "user cancelled",
    ]
    if any(p in message for p in rejection_patterns):
        return UserRejected().context

    rate_limit_patterns = ["rate limit", "too many requests", "429"]
    if any(p in message for p in rate_limit_patterns):
        return ErrorContext(
            kind=ErrorKind.RATE_LIMITED,
            recoverable=True,
            retry_after_seconds=30.0,
            suggested_action="Wait before retrying",
        )

    network_patterns = ["chain mismatch", "wrong network", "unsupported chain", "chainid"]
    if any(p in message for p in network_patterns):
        return ErrorContext(
            kind=ErrorKind.WRONG_NETWORK,
            recoverable=True,
            suggested_action="Switch your wallet to the expected network",
        )

    revert_patterns = ["execution reverted", "revert", "out of gas"]
    if any(p in message for p in revert_patterns):
        return ErrorContext(
            kind=ErrorKind.TRANSACTION_REVERTED,
            recoverable=False,
            suggested_action="Review transaction parameters",
        )

    outage_patterns = ["connection", "unreachable", "refused", "timed out", "timeout", "503"]
    if any(p in message for p in outage_patterns):
        return ErrorContext(
            kind=ErrorKind.SERVICE_UNAVAILABLE,
            recoverable=True,
            retry_after_seconds=5.0,
            suggested_action="Retry shortly",
        )

    # Default to unknown but recoverable (the user decides whether to retry)
    return ErrorContext(
        kind=ErrorKind.UNKNOWN,
        recoverable=True,
        suggested_action="Retry operation",
    )


__all__ = [
    "ErrorKind",
    "ErrorContext",
    "TxFlowError",
    "RecoverableError",
    "UnrecoverableError",
    "ValidationError",
    "RateLimited",
    "ServiceUnavailable",
    "WalletIncompatible",
    "WrongNetwork",
    "UserRejected",
    "WalletSubmitError",
    "TransactionReverted",
    "ReceiptTimeout",
    "USER_MESSAGES",
    "user_message",
    "parse_retry_after",
    "classify_error",
]
