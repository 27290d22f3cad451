from .signing import SigningGateway
from .ledger import LedgerPort
from .market_catalog import MarketCatalogPort

__all__ = ["SigningGateway", "LedgerPort", "MarketCatalogPort"]
