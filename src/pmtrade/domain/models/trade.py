from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class Side(Enum):
    YES = "YES"
    NO = "NO"

    @classmethod
    def parse(cls, value: "Side | str") -> "Side":
        if isinstance(value, Side):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown side: {value!r} (expected YES or NO)") from None


class ExecutionMode(Enum):
    """Server-chosen completion path for a quote."""

    SYNC = "sync"    # confirm the signature on-chain
    ASYNC = "async"  # track via the order status endpoint


@dataclass(frozen=True)
class TradeIntent:
    """A single user action: buy ``amount`` USDC worth of one outcome token."""

    market_id: str
    output_mint: str
    amount: Decimal
    side: Side


@dataclass(frozen=True)
class RouteStep:
    """One venue hop of a quote's route (informational only)."""

    label: str
    amm_key: str
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    fee_amount: int = 0
    fee_mint: str = ""
    percent: int = 100


@dataclass(frozen=True)
class Quote:
    """
    Priced, time-bounded offer to swap USDC for an outcome token.

    Invariant: ``order_id`` is present if and only if execution_mode is ASYNC.
    Quotes are never cached; a changed amount or side needs a fresh quote.
    """

    transaction: str  # base64 signable payload
    last_valid_block_height: int
    execution_mode: ExecutionMode
    in_amount: int
    out_amount: int
    price_impact_pct: Decimal
    route: Tuple[RouteStep, ...] = ()
    order_id: Optional[str] = None

    def __post_init__(self):
        if self.execution_mode is ExecutionMode.ASYNC and not self.order_id:
            raise ValueError("async quote is missing orderId")
        if self.execution_mode is ExecutionMode.SYNC and self.order_id:
            raise ValueError("sync quote must not carry an orderId")
        if self.in_amount < 0 or self.out_amount < 0:
            raise ValueError("quote amounts cannot be negative")

    @property
    def is_async(self) -> bool:
        return self.execution_mode is ExecutionMode.ASYNC


class OrderState(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderState.COMPLETED, OrderState.FAILED)


@dataclass(frozen=True)
class OrderStatus:
    """Async order status as reported by the status endpoint."""

    status: OrderState
    signature: Optional[str] = None
    error: Optional[str] = None
    in_amount: Optional[int] = None
    out_amount: Optional[int] = None


class TradePhase(Enum):
    """
    Trade lifecycle. Exactly one phase is active at a time.

    IDLE -> QUOTING -> SIGNING -> CONFIRMING -> SUCCEEDED
    Any non-terminal phase can drop to FAILED. A new buy() restarts at
    QUOTING from IDLE, SUCCEEDED or FAILED.
    """

    IDLE = "idle"
    QUOTING = "quoting"
    SIGNING = "signing"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_busy(self) -> bool:
        return self in (TradePhase.QUOTING, TradePhase.SIGNING, TradePhase.CONFIRMING)


@dataclass(frozen=True)
class TradeExecutionState:
    """
    Snapshot of one trade attempt. Replaced (never mutated) on each transition.

    The cached balance is not part of this object; it lives in a
    BalanceCell so per-trade resets never lose it.
    """

    phase: TradePhase = TradePhase.IDLE
    last_error: Optional[str] = None
    last_quote: Optional[Quote] = None
    last_signature: Optional[str] = None
    intent: Optional[TradeIntent] = None


@dataclass(frozen=True)
class QuotePreview:
    """Live preview quote shown while the user types an amount."""

    is_quoting: bool = False
    quote: Optional[Quote] = None
    error: Optional[str] = None


@dataclass
class SignedSubmission:
    """Result of a Signing Gateway handoff."""

    signature: str


@dataclass(frozen=True)
class ConfirmationResult:
    """Ledger confirmation outcome for a submitted signature."""

    signature: str
    error: Optional[str] = None
    slot: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.error is None


__all__ = [
    "Side",
    "ExecutionMode",
    "TradeIntent",
    "RouteStep",
    "Quote",
    "OrderState",
    "OrderStatus",
    "TradePhase",
    "TradeExecutionState",
    "QuotePreview",
    "SignedSubmission",
    "ConfirmationResult",
]
