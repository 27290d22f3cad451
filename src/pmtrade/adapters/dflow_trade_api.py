"""
dflow_trade_api.py - DFlow trade API client (quotes + async order status)

Stateless request/response wrapper:
1. get_quote(): USDC amount -> fixed-point -> GET /order -> typed Quote
2. get_order_status(): GET /status/{orderId} -> typed OrderStatus

No retries here. A failed quote surfaces immediately as QuoteFailed; the
caller decides whether to re-invoke.

Usage:
    api = DFlowTradeApi(config)
    quote = await api.get_quote(yes_mint, Decimal("50"), wallet_address)
    if quote.is_async:
        status = await api.get_order_status(quote.order_id)
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from urllib.parse import quote as url_quote

import httpx
from loguru import logger

from ..config.settings import TradeConfig
from ..config.tokens import STABLE_COIN
from ..domain.amounts import AmountLike, parse_stable_amount
from ..domain.errors import QuoteFailed, StatusCheckFailed
from ..domain.models import ExecutionMode, OrderState, OrderStatus, Quote, RouteStep


class DFlowTradeApi:
    """Quote Client and order-status query for the DFlow trade API."""

    def __init__(
        self,
        config: TradeConfig,
        session: Optional[httpx.AsyncClient] = None,
        input_mint: str = STABLE_COIN.mint,
    ):
        self.config = config
        self.base_url = config.trade_api_url.rstrip("/")
        self.input_mint = input_mint
        self._client: Optional[httpx.AsyncClient] = session
        self._owns_client = session is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self):
        """Close HTTP client (only if we created it)."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = dict(self.config.api_headers)
        headers["Content-Type"] = "application/json"
        return headers

    # =========================================================================
    # QUOTE API
    # =========================================================================

    async def get_quote(
        self,
        output_mint: str,
        amount: AmountLike,
        user_address: str,
        slippage_bps: Optional[int] = None,
    ) -> Quote:
        """
        Request a priced route buying ``output_mint`` with ``amount`` USDC.

        Raises:
            InvalidAmount: before any network call, for bad amounts
            QuoteFailed: non-2xx, transport error, or malformed quote
        """
        amount_raw = parse_stable_amount(amount)
        if slippage_bps is None:
            slippage_bps = self.config.slippage_bps

        params = {
            "inputMint": self.input_mint,
            "outputMint": output_mint,
            "amount": str(amount_raw),
            "slippageBps": str(slippage_bps),
            "userPublicKey": user_address,
        }

        logger.info(
            f"QUOTE_REQUEST | out={output_mint[:8]}... | amount_raw={amount_raw} | "
            f"slippage={slippage_bps}bps"
        )

        client = await self._get_client()
        try:
            resp = await client.get(f"{self.base_url}/order", params=params, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"QUOTE_FAILED | transport | {type(e).__name__}: {e}")
            raise QuoteFailed(f"DFlow quote request failed: {type(e).__name__}: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            message = _error_message(resp) or f"DFlow quote failed: {resp.status_code}"
            logger.error(f"QUOTE_FAILED | status={resp.status_code} | {message}")
            raise QuoteFailed(message, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise QuoteFailed("DFlow quote response is not valid JSON", status_code=resp.status_code) from e

        quote = parse_quote(data)
        logger.info(
            f"QUOTE_OK | mode={quote.execution_mode.value} | in={quote.in_amount} | "
            f"out={quote.out_amount} | impact={quote.price_impact_pct}%"
            + (f" | order={quote.order_id}" if quote.order_id else "")
        )
        return quote

    # =========================================================================
    # ORDER STATUS API
    # =========================================================================

    async def get_order_status(self, order_id: str) -> OrderStatus:
        """Single status query for an async order."""
        client = await self._get_client()
        url = f"{self.base_url}/status/{url_quote(order_id, safe='')}"
        try:
            resp = await client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            raise StatusCheckFailed(f"Status check failed: {type(e).__name__}: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise StatusCheckFailed(f"Status check failed: {resp.status_code}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise StatusCheckFailed("Status response is not valid JSON", status_code=resp.status_code) from e

        return parse_order_status(data)


# =============================================================================
# PARSING
# =============================================================================

def _error_message(resp: httpx.Response) -> Optional[str]:
    """Service's ``msg`` field when the error body is parseable."""
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        msg = body.get("msg")
        if isinstance(msg, str) and msg.strip():
            return msg
    return None


def _parse_route(raw_plan: Any) -> tuple:
    steps = []
    for entry in raw_plan or []:
        info = entry.get("swapInfo", {}) or {}
        steps.append(
            RouteStep(
                label=str(info.get("label", "")),
                amm_key=str(info.get("ammKey", "")),
                input_mint=str(info.get("inputMint", "")),
                output_mint=str(info.get("outputMint", "")),
                in_amount=int(info.get("inAmount", 0)),
                out_amount=int(info.get("outAmount", 0)),
                fee_amount=int(info.get("feeAmount", 0) or 0),
                fee_mint=str(info.get("feeMint", "") or ""),
                percent=int(entry.get("percent", 100)),
            )
        )
    return tuple(steps)


def parse_quote(data: Dict[str, Any]) -> Quote:
    """Validate and type a raw /order response."""
    if not isinstance(data, dict):
        raise QuoteFailed("Malformed quote response: expected an object")

    required = ["transaction", "lastValidBlockHeight", "executionMode", "inAmount", "outAmount"]
    missing = [f for f in required if data.get(f) is None]
    if missing:
        raise QuoteFailed(f"Malformed quote response: missing {', '.join(missing)}")

    try:
        mode = ExecutionMode(str(data["executionMode"]).lower())
    except ValueError:
        raise QuoteFailed(f"Unknown execution mode: {data['executionMode']!r}") from None

    try:
        return Quote(
            transaction=str(data["transaction"]),
            last_valid_block_height=int(data["lastValidBlockHeight"]),
            execution_mode=mode,
            in_amount=int(data["inAmount"]),
            out_amount=int(data["outAmount"]),
            price_impact_pct=Decimal(str(data.get("priceImpactPct") or "0")),
            route=_parse_route(data.get("routePlan")),
            order_id=str(data["orderId"]) if data.get("orderId") else None,
        )
    except (TypeError, ValueError, AttributeError, InvalidOperation) as e:
        raise QuoteFailed(f"Malformed quote response: {e}") from e


def parse_order_status(data: Dict[str, Any]) -> OrderStatus:
    if not isinstance(data, dict) or "status" not in data:
        raise StatusCheckFailed("Malformed status response: missing status")
    try:
        state = OrderState(str(data["status"]).lower())
    except ValueError:
        raise StatusCheckFailed(f"Unknown order status: {data['status']!r}") from None

    def _opt_int(key: str) -> Optional[int]:
        value = data.get(key)
        return int(value) if value is not None else None

    try:
        return OrderStatus(
            status=state,
            signature=data.get("signature"),
            error=data.get("error"),
            in_amount=_opt_int("inAmount"),
            out_amount=_opt_int("outAmount"),
        )
    except (TypeError, ValueError) as e:
        raise StatusCheckFailed(f"Malformed status response: {e}") from e


__all__ = ["DFlowTradeApi", "parse_quote", "parse_order_status"]
