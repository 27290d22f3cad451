"""
Trade error taxonomy.

Every failure in the quote -> sign -> confirm pipeline maps to one of these.
The executor converts them to ``last_error`` strings; str(exc) is what the
user sees, so messages are written for humans.
"""

from __future__ import annotations

from typing import Optional


class TradeError(Exception):
    """Base for all trade pipeline errors."""


class InvalidAmount(TradeError):
    """Amount is non-finite, non-positive, or below one raw unit."""


class NotReady(TradeError):
    """Signing capability is not initialised yet."""

    def __init__(self, message: str = "Authentication not ready"):
        super().__init__(message)


class WalletNotConnected(TradeError):
    """No wallet address is known."""

    def __init__(self, message: str = "Please connect your wallet first"):
        super().__init__(message)


class QuoteFailed(TradeError):
    """Quoting service rejected the request or returned an unusable quote."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SigningRejected(TradeError):
    """Wallet declined to sign (user rejection, lost connectivity)."""


class TransactionFailed(TradeError):
    """Ledger reported an error for the submitted transaction."""


class OrderFailed(TradeError):
    """Async order reached the ``failed`` terminal state."""

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or "Trade execution failed"
        super().__init__(self.reason)


class PollingTimeout(TradeError):
    """
    Order status stayed non-terminal for every poll.

    This does NOT mean the order failed on-chain; it may still complete
    after the client stops watching.
    """

    def __init__(self, order_id: str, attempts: int):
        self.order_id = order_id
        self.attempts = attempts
        super().__init__(
            f"Order polling timeout: status of order {order_id} not confirmed after "
            f"{attempts} attempts (the order may still complete)"
        )


class StatusCheckFailed(TradeError):
    """Order status endpoint returned non-2xx or a malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BalanceFetchFailed(TradeError):
    """Balance read failed. Non-fatal: callers degrade to "unknown balance"."""


class CatalogFetchFailed(TradeError):
    """Market catalog request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidTransition(TradeError):
    """Raised when an invalid trade phase transition is attempted."""


__all__ = [
    "TradeError",
    "InvalidAmount",
    "NotReady",
    "WalletNotConnected",
    "QuoteFailed",
    "SigningRejected",
    "TransactionFailed",
    "OrderFailed",
    "PollingTimeout",
    "StatusCheckFailed",
    "BalanceFetchFailed",
    "CatalogFetchFailed",
    "InvalidTransition",
]
