from .dflow_trade_api import DFlowTradeApi
from .dflow_markets_api import DFlowMarketsApi
from .solana_ledger import SolanaLedger
from .keypair_signer import KeypairSigningGateway, load_keypair, load_keypair_file

__all__ = [
    "DFlowTradeApi",
    "DFlowMarketsApi",
    "SolanaLedger",
    "KeypairSigningGateway",
    "load_keypair",
    "load_keypair_file",
]
