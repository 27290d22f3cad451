"""
Cached stable-coin balance.

BalanceCell is an independently owned observable value: trade attempts read
and refresh it but never reset it. BalanceReconciler fills it from the ledger.
"""

from decimal import Decimal
from typing import Callable, List, Optional

from loguru import logger

from ..config.tokens import STABLE_COIN
from ..domain.amounts import AmountLike, to_decimal
from ..domain.errors import BalanceFetchFailed
from ..ports.ledger import LedgerPort

BalanceListener = Callable[[Optional[Decimal]], None]


class BalanceCell:
    """Observable holder for the last known balance (None = unknown)."""

    def __init__(self, value: Optional[Decimal] = None):
        self._value = value
        self._listeners: List[BalanceListener] = []

    def get(self) -> Optional[Decimal]:
        return self._value

    def set(self, value: Optional[Decimal]):
        if value == self._value:
            return
        self._value = value
        for listener in list(self._listeners):
            listener(value)

    def subscribe(self, listener: BalanceListener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe


class BalanceReconciler:
    """Reads the stable-coin balance and keeps a BalanceCell current."""

    def __init__(
        self,
        ledger: LedgerPort,
        cell: Optional[BalanceCell] = None,
        stable_mint: str = STABLE_COIN.mint,
    ):
        self.ledger = ledger
        self.cell = cell if cell is not None else BalanceCell()
        self.stable_mint = stable_mint

    async def get_balance(self, address: str) -> Decimal:
        """Raises BalanceFetchFailed on any ledger failure."""
        try:
            return await self.ledger.get_token_balance(address, self.stable_mint)
        except BalanceFetchFailed:
            raise
        except Exception as e:
            raise BalanceFetchFailed(f"Balance fetch failed: {e}") from e

    async def refresh(self, address: Optional[str]) -> Optional[Decimal]:
        """
        Update the cell. Never raises.

        On failure the previous value is kept and None is returned.
        """
        if not address:
            return None
        try:
            balance = await self.get_balance(address)
        except BalanceFetchFailed as e:
            logger.warning(f"BALANCE | refresh failed | addr={address[:8]}... | {e}")
            return None
        self.cell.set(balance)
        logger.debug(f"BALANCE | addr={address[:8]}... | usdc={balance}")
        return balance

    def can_afford(self, amount: AmountLike) -> Optional[bool]:
        """None when the balance is unknown."""
        balance = self.cell.get()
        if balance is None:
            return None
        return to_decimal(amount) <= balance
