from .order_poller import OrderStatusPoller
from .balance import BalanceCell, BalanceReconciler
from .trade_executor import TradeExecutor
from .position_matcher import PositionMatcher, match_holdings

__all__ = [
    "OrderStatusPoller",
    "BalanceCell",
    "BalanceReconciler",
    "TradeExecutor",
    "PositionMatcher",
    "match_holdings",
]
