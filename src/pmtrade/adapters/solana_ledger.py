"""
solana_ledger.py - Solana RPC reads + confirmation wait

Features:
1. Signature confirmation bounded by the quote's lastValidBlockHeight
2. SPL token balance (summed over every account of a mint)
3. Token holdings per token program (legacy SPL and Token-2022)

All amounts come back as Decimal UI units, parsed from ``uiAmountString``.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, List, Optional

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.types import TokenAccountOpts
from solders.pubkey import Pubkey
from solders.signature import Signature

from ..config.settings import TradeConfig
from ..domain.errors import BalanceFetchFailed, TransactionFailed
from ..domain.models import ConfirmationResult, Holding
from ..ports.ledger import LedgerPort

_CONFIRMED_LEVELS = {
    "processed": ("processed", "confirmed", "finalized"),
    "confirmed": ("confirmed", "finalized"),
    "finalized": ("finalized",),
}


def _ui_amount(parsed: Any) -> Decimal:
    """tokenAmount -> Decimal, preferring the exact string form."""
    info = parsed.get("info", {}) if isinstance(parsed, dict) else {}
    token_amount = info.get("tokenAmount", {}) or {}
    raw = token_amount.get("uiAmountString")
    if raw is None:
        raw = token_amount.get("uiAmount")
    if raw is None:
        return Decimal(0)
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        return Decimal(0)


def _parsed_data(account: Any) -> Any:
    data = account.account.data
    return getattr(data, "parsed", None) or {}


class SolanaLedger(LedgerPort):
    """LedgerPort over solana-py's AsyncClient."""

    def __init__(
        self,
        config: TradeConfig,
        client: Optional[AsyncClient] = None,
        confirm_timeout: float = 60.0,
        poll_interval: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.rpc_url = config.rpc_url
        self.commitment = config.commitment
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._client: Optional[AsyncClient] = client
        self._owns_client = client is None

    async def _get_client(self) -> AsyncClient:
        """Get or create RPC client."""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url)
            self._owns_client = True
        return self._client

    async def close(self):
        """Close RPC client (only if we created it)."""
        if self._owns_client and self._client:
            await self._client.close()
            self._client = None

    # =========================================================================
    # CONFIRMATION
    # =========================================================================

    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> ConfirmationResult:
        """
        Poll signature status until it reaches the configured commitment.

        Returns a result whose ``error`` is set when the transaction landed but
        failed. Raises TransactionFailed when the blockhash expires or the wait
        exceeds confirm_timeout.
        """
        client = await self._get_client()
        accepted = _CONFIRMED_LEVELS.get(self.commitment, _CONFIRMED_LEVELS["confirmed"])
        sig = Signature.from_string(signature)
        waited = 0.0

        while True:
            resp = await client.get_signature_statuses([sig])
            status = resp.value[0] if resp.value else None

            if status is not None:
                if status.err:
                    logger.error(f"TX_FAILED | sig={signature[:16]}... | error={status.err}")
                    return ConfirmationResult(signature=signature, error=str(status.err), slot=status.slot)
                level = str(status.confirmation_status or "").split(".")[-1].lower()
                if level in accepted:
                    logger.info(f"TX_CONFIRMED | sig={signature[:16]}... | level={level} | slot={status.slot}")
                    return ConfirmationResult(signature=signature, slot=status.slot)

            height = (await client.get_block_height()).value
            if height > last_valid_block_height:
                logger.warning(
                    f"TX_EXPIRED | sig={signature[:16]}... | height={height} | "
                    f"last_valid={last_valid_block_height}"
                )
                raise TransactionFailed(
                    f"Transaction expired: block height {height} exceeded {last_valid_block_height}"
                )

            if waited >= self.confirm_timeout:
                logger.warning(f"TX_TIMEOUT | sig={signature[:16]}... | waited={waited:.1f}s")
                raise TransactionFailed(f"Transaction confirmation timed out after {waited:.0f}s")

            await self._sleep(self.poll_interval)
            waited += self.poll_interval

    # =========================================================================
    # BALANCE OPERATIONS
    # =========================================================================

    async def get_token_balance(self, owner: str, mint: str) -> Decimal:
        """Sum of every ``mint`` account held by ``owner``; 0 when none exist."""
        client = await self._get_client()
        try:
            resp = await client.get_token_accounts_by_owner_json_parsed(
                Pubkey.from_string(owner),
                TokenAccountOpts(mint=Pubkey.from_string(mint)),
            )
        except Exception as e:
            logger.error(f"TOKEN_BALANCE | error | mint={mint[:8]}... | {e}")
            raise BalanceFetchFailed(f"Token balance read failed: {e}") from e

        total = Decimal(0)
        for account in resp.value or []:
            total += _ui_amount(_parsed_data(account))
        return total

    async def get_token_holdings(self, owner: str, program_id: str) -> List[Holding]:
        client = await self._get_client()
        try:
            resp = await client.get_token_accounts_by_owner_json_parsed(
                Pubkey.from_string(owner),
                TokenAccountOpts(program_id=Pubkey.from_string(program_id)),
            )
        except Exception as e:
            logger.error(f"TOKEN_HOLDINGS | error | program={program_id[:8]}... | {e}")
            raise BalanceFetchFailed(f"Token account read failed: {e}") from e

        holdings = []
        for account in resp.value or []:
            parsed = _parsed_data(account)
            mint = parsed.get("info", {}).get("mint") if isinstance(parsed, dict) else None
            if not mint:
                continue
            holdings.append(Holding(mint=mint, ui_amount=_ui_amount(parsed)))
        return holdings


__all__ = ["SolanaLedger"]
