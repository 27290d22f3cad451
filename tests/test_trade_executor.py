from __future__ import annotations

import base64
from decimal import Decimal
from typing import List, Optional

import httpx
import pytest

from pmtrade.adapters.dflow_trade_api import DFlowTradeApi
from pmtrade.application import BalanceCell, BalanceReconciler, OrderStatusPoller, TradeExecutor
from pmtrade.config import TradeConfig
from pmtrade.domain.errors import QuoteFailed, SigningRejected
from pmtrade.domain.models import (
    ConfirmationResult,
    ExecutionMode,
    OrderState,
    OrderStatus,
    Quote,
    SignedSubmission,
    TradePhase,
)
from pmtrade.ports import LedgerPort, SigningGateway

YES_MINT = "YesMint1111111111111111111111111111111111111"
NO_MINT = "NoMint11111111111111111111111111111111111111"
WALLET = "Wa11et111111111111111111111111111111111111111"


def make_quote(mode: ExecutionMode = ExecutionMode.SYNC, order_id: Optional[str] = None) -> Quote:
    return Quote(
        transaction=base64.b64encode(b"raw-tx").decode(),
        last_valid_block_height=1000,
        execution_mode=mode,
        in_amount=50_000_000,
        out_amount=71_428_571,
        price_impact_pct=Decimal("0.1"),
        order_id=order_id,
    )


class _FakeQuoteClient:
    def __init__(self, log: List[str], quote: Optional[Quote] = None, error: Optional[Exception] = None):
        self.log = log
        self.quote = quote or make_quote()
        self.error = error
        self.calls: List[tuple] = []
        self.before_return = None

    async def get_quote(self, output_mint, amount, user_address, slippage_bps=None):
        self.log.append("quote")
        self.calls.append((output_mint, amount, user_address))
        if self.before_return:
            self.before_return()
        if self.error:
            raise self.error
        return self.quote


class _FakeSigner(SigningGateway):
    def __init__(self, log: List[str], ready: bool = True, address: Optional[str] = WALLET):
        self.log = log
        self._ready = ready
        self._address = address
        self.payloads: List[bytes] = []
        self.error: Optional[Exception] = None
        self.during_sign = None

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def address(self) -> Optional[str]:
        return self._address

    async def sign_and_submit(self, transaction: bytes) -> SignedSubmission:
        self.log.append("sign")
        self.payloads.append(transaction)
        if self.during_sign:
            self.during_sign()
        if self.error:
            raise self.error
        return SignedSubmission(signature="sig123")


class _FakeLedger(LedgerPort):
    def __init__(self, log: List[str], error: Optional[str] = None, balance: Decimal = Decimal("25")):
        self.log = log
        self.error = error
        self.balance = balance
        self.confirm_calls: List[tuple] = []

    async def confirm_transaction(self, signature, last_valid_block_height):
        self.log.append("confirm")
        self.confirm_calls.append((signature, last_valid_block_height))
        return ConfirmationResult(signature=signature, error=self.error)

    async def get_token_balance(self, owner, mint):
        return self.balance

    async def get_token_holdings(self, owner, program_id):
        return []


class _FakeStatusSource:
    def __init__(self, log: List[str], states: List[OrderState]):
        self.log = log
        self.states = states
        self.calls: List[str] = []

    async def __call__(self, order_id: str) -> OrderStatus:
        self.log.append("poll")
        self.calls.append(order_id)
        return OrderStatus(status=self.states[min(len(self.calls), len(self.states)) - 1])


async def _no_sleep(seconds: float) -> None:
    return None


def make_executor(
    quote: Optional[Quote] = None,
    quote_error: Optional[Exception] = None,
    states: Optional[List[OrderState]] = None,
    confirm_error: Optional[str] = None,
    ready: bool = True,
    address: Optional[str] = WALLET,
    max_attempts: int = 30,
):
    log: List[str] = []
    quotes = _FakeQuoteClient(log, quote, quote_error)
    signer = _FakeSigner(log, ready=ready, address=address)
    ledger = _FakeLedger(log, error=confirm_error)
    source = _FakeStatusSource(log, states or [OrderState.COMPLETED])
    poller = OrderStatusPoller(source, max_attempts=max_attempts, sleep=_no_sleep)
    balance = BalanceReconciler(ledger, BalanceCell())
    executor = TradeExecutor(quotes, signer, ledger, poller, balance, TradeConfig())
    return executor, log, quotes, signer, ledger, source


@pytest.mark.anyio
async def test_sync_buy_confirms_on_ledger_and_succeeds():
    executor, log, quotes, signer, ledger, source = make_executor()

    signature = await executor.buy("MKT-1", YES_MINT, "50", "YES")

    assert signature == "sig123"
    assert executor.state.phase is TradePhase.SUCCEEDED
    assert executor.state.last_signature == "sig123"
    assert executor.state.last_error is None
    assert quotes.calls == [(YES_MINT, Decimal("50"), WALLET)]
    assert signer.payloads == [b"raw-tx"]
    assert ledger.confirm_calls == [("sig123", 1000)]
    assert source.calls == []
    assert log == ["quote", "sign", "confirm"]


@pytest.mark.anyio
async def test_async_buy_polls_until_completed():
    executor, log, quotes, signer, ledger, source = make_executor(
        quote=make_quote(ExecutionMode.ASYNC, order_id="abc"),
        states=[OrderState.PENDING, OrderState.PENDING, OrderState.COMPLETED],
    )

    signature = await executor.buy("MKT-1", NO_MINT, "50", "NO")

    assert signature == "sig123"
    assert executor.state.phase is TradePhase.SUCCEEDED
    assert source.calls == ["abc", "abc", "abc"]
    assert ledger.confirm_calls == []
    assert log == ["quote", "sign", "poll", "poll", "poll"]


@pytest.mark.anyio
async def test_quote_403_fails_without_signing():
    def _forbidden(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"msg": "Forbidden: missing API key"})

    api = DFlowTradeApi(TradeConfig(), session=httpx.AsyncClient(transport=httpx.MockTransport(_forbidden)))
    executor, log, _, signer, ledger, _ = make_executor()
    executor.quote_client = api

    signature = await executor.buy("MKT-1", YES_MINT, "50", "YES")

    assert signature is None
    assert executor.state.phase is TradePhase.FAILED
    assert executor.state.last_error == "Forbidden: missing API key"
    assert signer.payloads == []
    assert ledger.confirm_calls == []


@pytest.mark.anyio
async def test_not_ready_fails_before_any_network_call():
    executor, log, quotes, signer, _, _ = make_executor(ready=False)

    assert await executor.buy("MKT-1", YES_MINT, "50", "YES") is None

    assert executor.state.phase is TradePhase.FAILED
    assert executor.state.last_error == "Authentication not ready"
    assert log == []


@pytest.mark.anyio
async def test_missing_wallet_fails_before_any_network_call():
    executor, log, _, _, _, _ = make_executor(address=None)

    assert await executor.buy("MKT-1", YES_MINT, "50", "YES") is None

    assert executor.state.last_error == "Please connect your wallet first"
    assert log == []


@pytest.mark.anyio
async def test_unknown_side_fails_without_quoting():
    executor, log, _, _, _, _ = make_executor()

    assert await executor.buy("MKT-1", YES_MINT, "50", "MAYBE") is None

    assert executor.state.phase is TradePhase.FAILED
    assert "MAYBE" in executor.state.last_error
    assert log == []


@pytest.mark.anyio
async def test_ledger_error_payload_is_transaction_failure():
    executor, log, *_ = make_executor(confirm_error="{'InstructionError': [2, {'Custom': 6001}]}")

    assert await executor.buy("MKT-1", YES_MINT, "50", "YES") is None

    assert executor.state.phase is TradePhase.FAILED
    assert executor.state.last_error.startswith("Transaction failed:")
    assert executor.state.last_quote is None
    assert executor.state.last_signature is None
    assert executor.state.intent is None


@pytest.mark.anyio
async def test_failed_buy_keeps_only_error_and_cached_balance():
    executor, *_ = make_executor(
        quote=make_quote(ExecutionMode.ASYNC, order_id="abc"),
        states=[OrderState.FAILED],
    )
    executor.balance.cell.set(Decimal("42"))

    assert await executor.buy("MKT-1", YES_MINT, "50", "YES") is None

    state = executor.state
    assert state.phase is TradePhase.FAILED
    assert state.last_error
    assert (state.intent, state.last_quote, state.last_signature) == (None, None, None)
    assert executor.cached_balance == Decimal("42")


@pytest.mark.anyio
async def test_signing_rejection_is_surfaced():
    executor, log, _, signer, ledger, _ = make_executor()
    signer.error = SigningRejected("User rejected the request")

    assert await executor.buy("MKT-1", YES_MINT, "50", "YES") is None

    assert executor.state.last_error == "User rejected the request"
    assert ledger.confirm_calls == []
    assert log == ["quote", "sign"]


@pytest.mark.anyio
async def test_polling_timeout_does_not_claim_on_chain_failure():
    executor, *_ = make_executor(
        quote=make_quote(ExecutionMode.ASYNC, order_id="abc"),
        states=[OrderState.PROCESSING],
        max_attempts=4,
    )

    assert await executor.buy("MKT-1", YES_MINT, "50", "YES") is None

    assert executor.state.phase is TradePhase.FAILED
    assert "may still complete" in executor.state.last_error


@pytest.mark.anyio
async def test_phases_are_published_in_order():
    executor, *_ = make_executor()
    seen: List[TradePhase] = []
    executor.subscribe(lambda state: seen.append(state.phase))

    await executor.buy("MKT-1", YES_MINT, "50", "YES")

    assert seen == [TradePhase.QUOTING, TradePhase.SIGNING, TradePhase.CONFIRMING, TradePhase.SUCCEEDED]


@pytest.mark.anyio
async def test_is_busy_only_while_in_flight():
    executor, _, _, signer, _, _ = make_executor()
    observed = []
    signer.during_sign = lambda: observed.append(executor.is_busy)

    assert executor.is_busy is False
    await executor.buy("MKT-1", YES_MINT, "50", "YES")

    assert observed == [True]
    assert executor.is_busy is False


@pytest.mark.anyio
async def test_new_buy_restarts_from_quoting_and_clears_previous_error():
    executor, _, quotes, _, _, _ = make_executor(quote_error=QuoteFailed("DFlow quote failed: 500", 500))
    await executor.buy("MKT-1", YES_MINT, "50", "YES")
    assert executor.state.phase is TradePhase.FAILED

    quotes.error = None
    first: List = []
    executor.subscribe(lambda state: first.append(state) if not first else None)
    signature = await executor.buy("MKT-1", YES_MINT, "50", "YES")

    assert first[0].phase is TradePhase.QUOTING
    assert first[0].last_error is None
    assert signature == "sig123"


@pytest.mark.anyio
async def test_balance_survives_failure_and_reset():
    executor, *_ = make_executor(quote_error=QuoteFailed("nope"))
    executor.balance.cell.set(Decimal("42"))

    await executor.buy("MKT-1", YES_MINT, "50", "YES")
    executor.reset()

    assert executor.state.phase is TradePhase.IDLE
    assert executor.cached_balance == Decimal("42")


@pytest.mark.anyio
async def test_successful_buy_refreshes_balance():
    executor, _, _, _, ledger, _ = make_executor()
    ledger.balance = Decimal("7.5")

    await executor.buy("MKT-1", YES_MINT, "50", "YES")

    assert executor.cached_balance == Decimal("7.5")


@pytest.mark.anyio
async def test_reset_during_quoting_abandons_attempt_before_signing():
    executor, log, quotes, signer, _, _ = make_executor()
    quotes.before_return = executor.reset

    assert await executor.buy("MKT-1", YES_MINT, "50", "YES") is None

    assert signer.payloads == []
    assert executor.state.phase is TradePhase.IDLE
    assert log == ["quote"]


@pytest.mark.anyio
async def test_reset_after_signing_keeps_state_clean():
    executor, log, _, signer, _, _ = make_executor()
    signer.during_sign = executor.reset

    signature = await executor.buy("MKT-1", YES_MINT, "50", "YES")

    # the submitted transaction is still tracked to completion
    assert signature == "sig123"
    assert log == ["quote", "sign", "confirm"]
    assert executor.state.phase is TradePhase.IDLE
    assert executor.state.last_signature is None


@pytest.mark.anyio
async def test_preview_below_minimum_issues_no_request():
    executor, log, *_ = make_executor()

    assert await executor.preview_quote(YES_MINT, "0.5") is None
    assert await executor.preview_quote(YES_MINT, "") is None

    assert log == []
    assert executor.preview.quote is None
    assert executor.preview.error is None


@pytest.mark.anyio
async def test_preview_requires_wallet():
    executor, log, *_ = make_executor(address=None)

    assert await executor.preview_quote(YES_MINT, "10") is None

    assert executor.preview.error == "Wallet not connected"
    assert log == []


@pytest.mark.anyio
async def test_preview_never_signs_and_leaves_trade_state_alone():
    executor, log, *_ = make_executor()

    quote = await executor.preview_quote(YES_MINT, "10", side="YES")

    assert quote is not None
    assert executor.preview.quote is quote
    assert executor.preview.is_quoting is False
    assert executor.state.phase is TradePhase.IDLE
    assert log == ["quote"]


@pytest.mark.anyio
async def test_preview_failure_is_stored_not_raised():
    executor, *_ = make_executor(quote_error=QuoteFailed("DFlow quote failed: 429", 429))

    assert await executor.preview_quote(YES_MINT, "10") is None

    assert executor.preview.error == "DFlow quote failed: 429"
    assert executor.state.phase is TradePhase.IDLE


@pytest.mark.anyio
async def test_on_wallet_available_loads_balance():
    executor, *_ = make_executor()

    value = await executor.on_wallet_available()

    assert value == Decimal("25")
    assert executor.cached_balance == Decimal("25")
