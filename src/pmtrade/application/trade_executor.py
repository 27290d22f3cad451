"""
trade_executor.py - Trade Execution State Machine

Lifecycle of one buy():
1. Preconditions (signer ready, wallet address known) - no network on failure
2. QUOTING    -> quote client
3. SIGNING    -> signing gateway (may wait on the user indefinitely)
4. CONFIRMING -> ledger confirmation (sync) or order status poller (async)
5. SUCCEEDED  -> signature returned, balance refreshed

buy() never raises. Any failure lands in phase FAILED with last_error set.

Attempt isolation: every buy()/reset() starts a new generation. A superseded
attempt never hands a transaction to the signer; if it was already past
signing it runs to completion but its state writes are dropped.
"""

import base64
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Set

from loguru import logger

from ..config.settings import TradeConfig
from ..domain.amounts import AmountLike, to_decimal
from ..domain.errors import (
    InvalidTransition,
    NotReady,
    TradeError,
    TransactionFailed,
    WalletNotConnected,
)
from ..domain.models import (
    Quote,
    QuotePreview,
    Side,
    TradeExecutionState,
    TradeIntent,
    TradePhase,
)
from ..ports.ledger import LedgerPort
from ..ports.signing import SigningGateway
from .balance import BalanceReconciler
from .order_poller import OrderStatusPoller

StateListener = Callable[[TradeExecutionState], None]

_TRANSITIONS: Dict[TradePhase, Set[TradePhase]] = {
    TradePhase.IDLE: {TradePhase.QUOTING, TradePhase.FAILED},
    TradePhase.QUOTING: {TradePhase.SIGNING, TradePhase.FAILED},
    TradePhase.SIGNING: {TradePhase.CONFIRMING, TradePhase.FAILED},
    TradePhase.CONFIRMING: {TradePhase.SUCCEEDED, TradePhase.FAILED},
    TradePhase.SUCCEEDED: {TradePhase.QUOTING, TradePhase.FAILED},
    TradePhase.FAILED: {TradePhase.QUOTING, TradePhase.FAILED},
}


def can_transition(current: TradePhase, target: TradePhase) -> bool:
    return target in _TRANSITIONS.get(current, set())


class TradeExecutor:
    """Drives quote -> sign -> confirm and owns the observable trade state."""

    def __init__(
        self,
        quote_client,
        signer: SigningGateway,
        ledger: LedgerPort,
        poller: OrderStatusPoller,
        balance: BalanceReconciler,
        config: Optional[TradeConfig] = None,
    ):
        self.quote_client = quote_client
        self.signer = signer
        self.ledger = ledger
        self.poller = poller
        self.balance = balance
        self.config = config or TradeConfig()

        self._state = TradeExecutionState()
        self._preview = QuotePreview()
        self._generation = 0
        self._listeners: List[StateListener] = []

    # =========================================================================
    # OBSERVABLE STATE
    # =========================================================================

    @property
    def state(self) -> TradeExecutionState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state.phase.is_busy

    @property
    def preview(self) -> QuotePreview:
        return self._preview

    @property
    def cached_balance(self) -> Optional[Decimal]:
        return self.balance.cell.get()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Receive every new state snapshot; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, state: TradeExecutionState):
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception(f"TRADE_LISTENER | error | phase={state.phase.value}")

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _advance(self, generation: int, phase: TradePhase, fresh: bool = False, **changes) -> bool:
        """
        Apply one transition for the given attempt. False if the attempt is stale.

        ``fresh`` publishes a clean state instead of carrying the attempt's fields.
        """
        if not self._is_current(generation):
            logger.warning(
                f"TRADE_STALE | dropped {phase.value} | attempt={generation} | current={self._generation}"
            )
            return False
        current = self._state.phase
        if not can_transition(current, phase):
            raise InvalidTransition(f"{current.value} -> {phase.value}")
        logger.info(f"TRADE_PHASE | {current.value} -> {phase.value}")
        base = TradeExecutionState() if fresh else self._state
        self._publish(replace(base, phase=phase, **changes))
        return True

    def reset(self):
        """Back to IDLE. The cached balance is untouched."""
        self._generation += 1
        if self._state.phase.is_busy:
            logger.warning(f"TRADE_RESET | in-flight attempt abandoned | phase={self._state.phase.value}")
        self._publish(TradeExecutionState())

    # =========================================================================
    # BUY
    # =========================================================================

    async def buy(
        self,
        market_id: str,
        output_mint: str,
        amount: AmountLike,
        side,
    ) -> Optional[str]:
        """Run one trade attempt. Returns the signature on success, else None."""
        self._generation += 1
        generation = self._generation
        if self._state.phase.is_busy:
            logger.warning(f"TRADE_SUPERSEDED | phase={self._state.phase.value}")

        try:
            if not self.signer.is_ready:
                raise NotReady()
            address = self.signer.address
            if not address:
                raise WalletNotConnected()
            intent = TradeIntent(
                market_id=market_id,
                output_mint=output_mint,
                amount=to_decimal(amount),
                side=Side.parse(side),
            )
        except (TradeError, ValueError) as e:
            logger.error(f"TRADE_REJECTED | market={market_id} | {e}")
            self._publish(TradeExecutionState(phase=TradePhase.FAILED, last_error=str(e)))
            return None

        logger.info(
            f"TRADE_START | market={market_id} | side={intent.side.value} | "
            f"amount={intent.amount} | wallet={address[:8]}..."
        )
        self._publish(TradeExecutionState(phase=TradePhase.QUOTING, intent=intent))

        signature: Optional[str] = None
        try:
            quote: Quote = await self.quote_client.get_quote(output_mint, intent.amount, address)

            if not self._advance(generation, TradePhase.SIGNING, last_quote=quote):
                logger.warning(f"TRADE_STALE | abandoned before signing | market={market_id}")
                return None
            submission = await self.signer.sign_and_submit(base64.b64decode(quote.transaction))
            signature = submission.signature

            self._advance(generation, TradePhase.CONFIRMING, last_signature=signature)
            if quote.is_async:
                await self.poller.wait_for_completion(quote.order_id or signature)
            else:
                result = await self.ledger.confirm_transaction(signature, quote.last_valid_block_height)
                if not result.is_success:
                    raise TransactionFailed(f"Transaction failed: {result.error}")

            self._advance(generation, TradePhase.SUCCEEDED)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"TRADE_FAILED | market={market_id} | {type(e).__name__}: {message}")
            self._advance(generation, TradePhase.FAILED, fresh=True, last_error=message)
            return None

        logger.info(f"TRADE_SUCCEEDED | market={market_id} | sig={signature}")
        await self.balance.refresh(address)
        return signature

    # =========================================================================
    # PREVIEW + BALANCE
    # =========================================================================

    async def preview_quote(
        self,
        output_mint: str,
        amount: AmountLike,
        side=None,
    ) -> Optional[Quote]:
        """
        Quote-only path for live previews. Never signs, never raises.

        Amounts below ``min_preview_amount`` clear the preview without a request.
        Concurrent previews are not serialized; the last response to arrive wins.
        """
        try:
            value = to_decimal(amount)
        except TradeError:
            value = None
        if value is None or not value.is_finite() or value < self.config.min_preview_amount:
            self._preview = QuotePreview()
            return None

        address = self.signer.address
        if not address:
            self._preview = QuotePreview(error="Wallet not connected")
            return None

        self._preview = QuotePreview(is_quoting=True, quote=self._preview.quote)
        try:
            quote = await self.quote_client.get_quote(output_mint, value, address)
        except Exception as e:
            logger.warning(f"QUOTE_PREVIEW | failed | side={side} | {e}")
            self._preview = QuotePreview(error=str(e) or type(e).__name__)
            return None

        self._preview = QuotePreview(quote=quote)
        return quote

    async def on_wallet_available(self) -> Optional[Decimal]:
        """Refresh the cached balance for the connected wallet."""
        return await self.balance.refresh(self.signer.address)


__all__ = ["TradeExecutor", "can_transition"]
