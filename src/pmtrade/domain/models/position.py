from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from .trade import Side


@dataclass(frozen=True)
class Holding:
    """Raw wallet state: one token account balance. Read-only."""

    mint: str
    ui_amount: Decimal


@dataclass(frozen=True)
class MarketInfo:
    """Minimal binary-market shape needed for position matching."""

    id: str
    title: str
    yes_mint: str
    no_mint: str
    yes_price: Decimal  # 0..1
    image_url: Optional[str] = None
    status: Optional[str] = None
    event_ticker: Optional[str] = None

    def mark_price(self, side: Side) -> Decimal:
        return self.yes_price if side is Side.YES else Decimal(1) - self.yes_price


@dataclass(frozen=True)
class CatalogPage:
    """One page of the market catalog."""

    markets: List[MarketInfo]
    cursor: Optional[int]
    event_count: int


@dataclass(frozen=True)
class Position:
    """
    Derived open position = Holding joined with a market's outcome mint.

    cost_basis / pnl / pnl_pct are not tracked and are always zero.
    """

    market_id: str
    market_title: str
    side: Side
    share_amount: Decimal
    mark_price: Decimal
    current_value: Decimal
    token_mint: str
    image_url: Optional[str] = None
    cost_basis: Decimal = Decimal(0)
    pnl: Decimal = Decimal(0)
    pnl_pct: Decimal = Decimal(0)


@dataclass(frozen=True)
class PositionSnapshot:
    """Result of one position refresh."""

    active_positions: List[Position] = field(default_factory=list)
    closed_positions: List[Position] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = ["Holding", "MarketInfo", "CatalogPage", "Position", "PositionSnapshot"]
