from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..config.settings import TradeConfig
from ..config.tokens import STABLE_COIN
from ..domain.errors import CatalogFetchFailed
from ..domain.models import CatalogPage, MarketInfo
from ..ports.market_catalog import MarketCatalogPort

_FORBIDDEN_HINT = (
    "DFlow API: 403 Forbidden. Set DFLOW_API_KEY in .env or point DFLOW_MARKETS_API_URL "
    "at your development endpoint."
)


def _cents(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def parse_yes_price(market: Dict[str, Any]) -> Decimal:
    """YES probability from bid/ask cents: mid, else either side, else 0.5. Clamped to [0, 1]."""
    bid = _cents(market.get("yesBid"))
    ask = _cents(market.get("yesAsk"))
    if bid is not None and ask is not None:
        price = (bid / 100 + ask / 100) / 2
    elif bid is not None:
        price = bid / 100
    elif ask is not None:
        price = ask / 100
    else:
        price = Decimal("0.5")
    return max(Decimal(0), min(Decimal(1), price))


def market_from_event(
    event: Dict[str, Any],
    market: Dict[str, Any],
    collateral_mint: str = STABLE_COIN.mint,
) -> MarketInfo:
    """Flatten one nested market into MarketInfo. Mints come from the collateral's account entry."""
    accounts = (market.get("accounts") or {}).get(collateral_mint) or {}
    return MarketInfo(
        id=market["ticker"],
        title=market.get("title") or event.get("title") or "",
        yes_mint=accounts.get("yesMint") or "",
        no_mint=accounts.get("noMint") or "",
        yes_price=parse_yes_price(market),
        image_url=event.get("imageUrl"),
        status=market.get("status"),
        event_ticker=market.get("eventTicker") or event.get("ticker"),
    )


def events_to_markets(events: List[Dict[str, Any]], collateral_mint: str = STABLE_COIN.mint) -> List[MarketInfo]:
    """Every open market with a ticker, in catalog order."""
    markets = []
    for event in events:
        for market in event.get("markets") or []:
            if market.get("ticker") and market.get("status") != "closed":
                markets.append(market_from_event(event, market, collateral_mint))
    return markets


class DFlowMarketsApi(MarketCatalogPort):
    """
    DFlow prediction-market catalog.

    - Events via /api/v1/events with nested markets and market accounts
    - Cursor pagination; the caller bounds the page count
    """

    def __init__(self, config: TradeConfig, session: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.base_url = config.markets_api_url.rstrip("/")
        self._client: Optional[httpx.AsyncClient] = session
        self._owns_client = session is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self):
        """Close HTTP client (only if we created it)."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_events_page(
        self,
        limit: int,
        cursor: Optional[int] = None,
        status: Optional[str] = None,
    ) -> CatalogPage:
        params: Dict[str, str] = {
            "withNestedMarkets": "true",
            "withMarketAccounts": "true",
            "limit": str(limit),
        }
        if cursor is not None:
            params["cursor"] = str(cursor)
        if status:
            params["status"] = status

        client = await self._get_client()
        try:
            resp = await client.get(
                f"{self.base_url}/api/v1/events", params=params, headers=self.config.api_headers
            )
        except httpx.HTTPError as e:
            raise CatalogFetchFailed(f"DFlow events request failed: {type(e).__name__}: {e}") from e

        if resp.status_code == 403:
            logger.warning("CATALOG | 403 forbidden | api key missing or rejected")
            raise CatalogFetchFailed(_FORBIDDEN_HINT, status_code=403)
        if resp.status_code < 200 or resp.status_code >= 300:
            raise CatalogFetchFailed(f"DFlow events: {resp.status_code}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise CatalogFetchFailed("DFlow events response is not valid JSON") from e

        events = data.get("events") or []
        next_cursor = data.get("cursor")
        markets = events_to_markets(events)
        logger.debug(
            f"CATALOG | page | cursor={cursor} | events={len(events)} | markets={len(markets)} | "
            f"next={next_cursor}"
        )
        return CatalogPage(
            markets=markets,
            cursor=int(next_cursor) if next_cursor is not None else None,
            event_count=len(events),
        )


__all__ = [
    "DFlowMarketsApi",
    "parse_yes_price",
    "market_from_event",
    "events_to_markets",
]
