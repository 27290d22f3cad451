import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from ..domain.errors import OrderFailed, PollingTimeout
from ..domain.models import OrderState, OrderStatus


class OrderStatusPoller:
    """
    Fixed-interval polling of an async order until it reaches a terminal state.

    - completed: returned immediately
    - failed: OrderFailed raised immediately (no extra polls)
    - anything else: sleep and poll again, at most ``max_attempts`` queries

    No sleep follows the final attempt. Errors from the status query itself
    (StatusCheckFailed, transport) propagate unchanged.
    """

    def __init__(
        self,
        fetch_status: Callable[[str], Awaitable[OrderStatus]],
        max_attempts: int = 30,
        interval_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._fetch_status = fetch_status
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self._sleep = sleep

    async def wait_for_completion(
        self,
        order_id: str,
        max_attempts: Optional[int] = None,
        interval_seconds: Optional[float] = None,
    ) -> OrderStatus:
        attempts = self.max_attempts if max_attempts is None else max_attempts
        interval = self.interval_seconds if interval_seconds is None else interval_seconds
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        for attempt in range(1, attempts + 1):
            status = await self._fetch_status(order_id)
            logger.debug(f"ORDER_POLL | id={order_id} | attempt={attempt}/{attempts} | status={status.status.value}")

            if status.status.is_terminal:
                if status.status is OrderState.FAILED:
                    logger.error(f"ORDER_FAILED | id={order_id} | reason={status.error}")
                    raise OrderFailed(status.error)
                logger.info(f"ORDER_COMPLETED | id={order_id} | attempts={attempt}")
                return status

            if attempt < attempts:
                await self._sleep(interval)

        logger.warning(f"ORDER_POLL_TIMEOUT | id={order_id} | attempts={attempts} | may still complete")
        raise PollingTimeout(order_id, attempts)
