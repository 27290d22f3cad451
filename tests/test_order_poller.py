from typing import List, Optional

import pytest

from pmtrade.application.order_poller import OrderStatusPoller
from pmtrade.domain.errors import OrderFailed, PollingTimeout, StatusCheckFailed
from pmtrade.domain.models import OrderState, OrderStatus


class _FakeStatusSource:
    """Replays a fixed sequence of states; the last one repeats forever."""

    def __init__(self, states: List[OrderState], error: Optional[str] = None):
        self.states = states
        self.error = error
        self.calls: List[str] = []

    async def __call__(self, order_id: str) -> OrderStatus:
        self.calls.append(order_id)
        state = self.states[min(len(self.calls), len(self.states)) - 1]
        return OrderStatus(status=state, error=self.error if state is OrderState.FAILED else None)


class _Sleeps:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.mark.anyio
async def test_returns_on_first_completed_response():
    source = _FakeStatusSource([OrderState.PENDING, OrderState.PROCESSING, OrderState.COMPLETED])
    sleeps = _Sleeps()
    poller = OrderStatusPoller(source, sleep=sleeps)

    status = await poller.wait_for_completion("abc")

    assert status.status is OrderState.COMPLETED
    assert source.calls == ["abc", "abc", "abc"]
    assert sleeps.calls == [2.0, 2.0]


@pytest.mark.anyio
async def test_failed_raises_immediately_with_reason():
    source = _FakeStatusSource([OrderState.FAILED], error="slippage exceeded")
    sleeps = _Sleeps()
    poller = OrderStatusPoller(source, sleep=sleeps)

    with pytest.raises(OrderFailed) as exc:
        await poller.wait_for_completion("abc")

    assert exc.value.reason == "slippage exceeded"
    assert len(source.calls) == 1
    assert sleeps.calls == []


@pytest.mark.anyio
async def test_failed_without_reason_uses_default_message():
    source = _FakeStatusSource([OrderState.PENDING, OrderState.FAILED])
    poller = OrderStatusPoller(source, sleep=_Sleeps())

    with pytest.raises(OrderFailed) as exc:
        await poller.wait_for_completion("abc")

    assert str(exc.value) == "Trade execution failed"
    assert len(source.calls) == 2


@pytest.mark.anyio
@pytest.mark.parametrize("max_attempts", [1, 5, 30])
async def test_timeout_after_exactly_max_attempts(max_attempts):
    source = _FakeStatusSource([OrderState.PENDING])
    sleeps = _Sleeps()
    poller = OrderStatusPoller(source, sleep=sleeps)

    with pytest.raises(PollingTimeout) as exc:
        await poller.wait_for_completion("abc", max_attempts=max_attempts, interval_seconds=0.25)

    assert len(source.calls) == max_attempts
    assert sleeps.calls == [0.25] * (max_attempts - 1)
    assert exc.value.attempts == max_attempts
    assert exc.value.order_id == "abc"
    assert "may still complete" in str(exc.value)


@pytest.mark.anyio
async def test_constructor_defaults_are_used():
    source = _FakeStatusSource([OrderState.PROCESSING])
    poller = OrderStatusPoller(source, max_attempts=3, interval_seconds=0.5, sleep=_Sleeps())

    with pytest.raises(PollingTimeout):
        await poller.wait_for_completion("abc")

    assert len(source.calls) == 3


@pytest.mark.anyio
async def test_status_query_errors_propagate():
    async def _broken(order_id: str) -> OrderStatus:
        raise StatusCheckFailed("Status check failed: 502", status_code=502)

    poller = OrderStatusPoller(_broken, sleep=_Sleeps())

    with pytest.raises(StatusCheckFailed):
        await poller.wait_for_completion("abc")


@pytest.mark.anyio
async def test_zero_attempts_rejected():
    poller = OrderStatusPoller(_FakeStatusSource([OrderState.PENDING]), sleep=_Sleeps())

    with pytest.raises(ValueError):
        await poller.wait_for_completion("abc", max_attempts=0)


@pytest.mark.parametrize(
    "state,terminal",
    [
        (OrderState.PENDING, False),
        (OrderState.PROCESSING, False),
        (OrderState.COMPLETED, True),
        (OrderState.FAILED, True),
    ],
)
def test_terminal_states(state, terminal):
    assert state.is_terminal is terminal
