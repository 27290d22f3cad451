from .settings import TradeConfig, load_config
from .tokens import USDC, STABLE_COIN, TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, SolanaToken

__all__ = [
    "TradeConfig",
    "load_config",
    "SolanaToken",
    "USDC",
    "STABLE_COIN",
    "TOKEN_PROGRAM_ID",
    "TOKEN_2022_PROGRAM_ID",
]
