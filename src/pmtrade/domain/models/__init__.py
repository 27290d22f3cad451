from .trade import (
    Side,
    ExecutionMode,
    TradeIntent,
    RouteStep,
    Quote,
    OrderState,
    OrderStatus,
    TradePhase,
    TradeExecutionState,
    QuotePreview,
    SignedSubmission,
    ConfirmationResult,
)
from .position import Holding, MarketInfo, CatalogPage, Position, PositionSnapshot

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
    "Holding",
    "MarketInfo",
    "CatalogPage",
    "Position",
    "PositionSnapshot",
]
