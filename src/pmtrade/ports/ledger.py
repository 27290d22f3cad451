from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List

from ..domain.models import ConfirmationResult, Holding


class LedgerPort(ABC):
    """Read/confirm access to the Solana ledger."""

    @abstractmethod
    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> ConfirmationResult:
        """Wait for confirmation; an ``error`` on the result means the tx failed on-chain."""
        ...

    @abstractmethod
    async def get_token_balance(self, owner: str, mint: str) -> Decimal:
        """UI-unit balance of ``mint`` held by ``owner``; 0 when no account exists."""
        ...

    @abstractmethod
    async def get_token_holdings(self, owner: str, program_id: str) -> List[Holding]:
        """All token accounts of ``owner`` under one token program."""
        ...
