"""
position_matcher.py - Wallet holdings joined against the market catalog

refresh_positions():
1. Holdings from the legacy SPL Token program (authoritative) and Token-2022
   (best effort: failure logs and counts as empty)
2. Keep positive balances, drop the stable-coin itself
3. Page the catalog (bounded by catalog_max_pages)
4. Join on mint equality; first market wins, unmatched holdings are dropped
5. mark = YES price, or 1 - YES price for NO; value = shares x mark

Cost basis and P&L are not tracked; those fields are always zero.
"""

from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..config.settings import TradeConfig
from ..config.tokens import STABLE_COIN, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from ..domain.models import Holding, MarketInfo, Position, PositionSnapshot, Side
from ..ports.ledger import LedgerPort
from ..ports.market_catalog import MarketCatalogPort


def match_holdings(
    holdings: Sequence[Holding],
    markets: Sequence[MarketInfo],
    stable_mint: str = STABLE_COIN.mint,
) -> List[Position]:
    """Pure join of holdings to markets. Order follows ``holdings``."""
    index: Dict[str, Tuple[MarketInfo, Side]] = {}
    for market in markets:
        for mint, side in ((market.yes_mint, Side.YES), (market.no_mint, Side.NO)):
            if mint and mint not in index:
                index[mint] = (market, side)

    positions = []
    for holding in holdings:
        if holding.ui_amount <= 0 or holding.mint == stable_mint:
            continue
        hit = index.get(holding.mint)
        if hit is None:
            continue
        market, side = hit
        mark = market.mark_price(side)
        positions.append(
            Position(
                market_id=market.id,
                market_title=market.title,
                side=side,
                share_amount=holding.ui_amount,
                mark_price=mark,
                current_value=holding.ui_amount * mark,
                token_mint=holding.mint,
                image_url=market.image_url,
            )
        )
    return positions


class PositionMatcher:
    """Derives open positions; keeps the last snapshot for the caller."""

    def __init__(
        self,
        ledger: LedgerPort,
        catalog: MarketCatalogPort,
        config: Optional[TradeConfig] = None,
        stable_mint: str = STABLE_COIN.mint,
    ):
        self.ledger = ledger
        self.catalog = catalog
        self.config = config or TradeConfig()
        self.stable_mint = stable_mint

        self.snapshot = PositionSnapshot()
        self.is_loading = False

    async def _fetch_holdings(self, wallet_address: str) -> List[Holding]:
        holdings = list(await self.ledger.get_token_holdings(wallet_address, TOKEN_PROGRAM_ID))
        try:
            holdings.extend(await self.ledger.get_token_holdings(wallet_address, TOKEN_2022_PROGRAM_ID))
        except Exception as e:
            logger.warning(f"POSITIONS | token-2022 fetch failed, continuing | {e}")
        return holdings

    async def _fetch_markets(self) -> List[MarketInfo]:
        markets: List[MarketInfo] = []
        cursor: Optional[int] = None
        page_size = self.config.catalog_page_size
        for page in range(self.config.catalog_max_pages):
            result = await self.catalog.fetch_events_page(
                page_size, cursor=cursor, status=self.config.catalog_status
            )
            markets.extend(result.markets)
            cursor = result.cursor
            if not cursor or result.event_count < page_size:
                break
        else:
            logger.debug(f"POSITIONS | catalog page limit reached | pages={self.config.catalog_max_pages}")
        return markets

    async def refresh_positions(
        self,
        wallet_address: Optional[str],
        is_current: Optional[Callable[[], bool]] = None,
    ) -> PositionSnapshot:
        """
        Recompute positions from scratch. Never raises.

        ``is_current`` is checked before each state write; once it returns
        False the result is still returned but not stored.
        """

        def _may_write() -> bool:
            return is_current is None or is_current()

        if not wallet_address:
            return PositionSnapshot()

        set_loading = _may_write()
        if set_loading:
            self.is_loading = True
        try:
            snapshot = await self._compute(wallet_address)
        finally:
            if set_loading:
                self.is_loading = False

        if _may_write():
            self.snapshot = snapshot
        else:
            logger.debug("POSITIONS | caller no longer current, result not stored")
        return snapshot

    async def _compute(self, wallet_address: str) -> PositionSnapshot:
        try:
            holdings = await self._fetch_holdings(wallet_address)
            candidates = [
                h for h in holdings if h.ui_amount > 0 and h.mint != self.stable_mint
            ]
            if not candidates:
                snapshot = PositionSnapshot()
            else:
                markets = await self._fetch_markets()
                positions = match_holdings(candidates, markets, self.stable_mint)
                unmatched = len(candidates) - len(positions)
                if unmatched:
                    logger.warning(f"POSITIONS | unmatched holdings={unmatched} | markets={len(markets)}")
                snapshot = PositionSnapshot(active_positions=positions)
            logger.info(
                f"POSITIONS | wallet={wallet_address[:8]}... | holdings={len(candidates)} | "
                f"active={len(snapshot.active_positions)}"
            )
        except Exception as e:
            logger.error(f"POSITIONS | refresh failed | {type(e).__name__}: {e}")
            snapshot = PositionSnapshot(error=str(e) or type(e).__name__)
        return snapshot


__all__ = ["PositionMatcher", "match_holdings"]
