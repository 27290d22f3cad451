from decimal import Decimal
from typing import List, Optional

import pytest

from pmtrade.application.balance import BalanceCell, BalanceReconciler
from pmtrade.config import USDC
from pmtrade.domain.errors import BalanceFetchFailed
from pmtrade.ports import LedgerPort

WALLET = "Wa11et111111111111111111111111111111111111111"


class _FakeLedger(LedgerPort):
    def __init__(self, balance: Decimal = Decimal(0), error: Optional[Exception] = None):
        self.balance = balance
        self.error = error
        self.calls: List[tuple] = []

    async def confirm_transaction(self, signature, last_valid_block_height):  # pragma: no cover
        raise NotImplementedError

    async def get_token_balance(self, owner, mint):
        self.calls.append((owner, mint))
        if self.error:
            raise self.error
        return self.balance

    async def get_token_holdings(self, owner, program_id):  # pragma: no cover
        return []


@pytest.mark.anyio
async def test_get_balance_reads_stable_coin_mint():
    ledger = _FakeLedger(Decimal("123.45"))
    reconciler = BalanceReconciler(ledger)

    assert await reconciler.get_balance(WALLET) == Decimal("123.45")
    assert ledger.calls == [(WALLET, USDC.mint)]


@pytest.mark.anyio
async def test_get_balance_zero_when_no_account():
    reconciler = BalanceReconciler(_FakeLedger(Decimal(0)))

    assert await reconciler.get_balance(WALLET) == Decimal(0)


@pytest.mark.anyio
async def test_get_balance_wraps_unexpected_errors():
    reconciler = BalanceReconciler(_FakeLedger(error=RuntimeError("rpc down")))

    with pytest.raises(BalanceFetchFailed) as exc:
        await reconciler.get_balance(WALLET)

    assert "rpc down" in str(exc.value)


@pytest.mark.anyio
async def test_refresh_failure_keeps_last_known_value():
    ledger = _FakeLedger(Decimal("10"))
    reconciler = BalanceReconciler(ledger)
    await reconciler.refresh(WALLET)

    ledger.error = BalanceFetchFailed("Token balance read failed: timeout")
    result = await reconciler.refresh(WALLET)

    assert result is None
    assert reconciler.cell.get() == Decimal("10")


@pytest.mark.anyio
async def test_refresh_without_address_is_a_no_op():
    ledger = _FakeLedger(Decimal("10"))
    reconciler = BalanceReconciler(ledger)

    assert await reconciler.refresh(None) is None
    assert ledger.calls == []


@pytest.mark.anyio
async def test_can_afford_unknown_until_loaded():
    reconciler = BalanceReconciler(_FakeLedger(Decimal("20")))

    assert reconciler.can_afford("5") is None
    await reconciler.refresh(WALLET)
    assert reconciler.can_afford("20") is True
    assert reconciler.can_afford(20.01) is False


def test_balance_cell_notifies_on_change_only():
    cell = BalanceCell()
    seen: List[Optional[Decimal]] = []
    unsubscribe = cell.subscribe(seen.append)

    cell.set(Decimal("1"))
    cell.set(Decimal("1"))
    cell.set(Decimal("2"))
    unsubscribe()
    cell.set(Decimal("3"))

    assert seen == [Decimal("1"), Decimal("2")]
    assert cell.get() == Decimal("3")
