"""
Solana token constants for prediction-market trading.

Every trade is quoted in USDC: the stable-coin is the input leg of each buy
and is excluded from position matching (it is cash, not an outcome token).

Outcome-token mints are not listed here; they come from the market catalog.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SolanaToken:
    symbol: str
    mint: str
    decimals: int

    @property
    def scale(self) -> int:
        """Raw units per whole token (10 ** decimals)."""
        return 10 ** self.decimals


# NOTE: Mainnet mint; verify before pointing at another cluster.
USDC = SolanaToken(symbol="USDC", mint="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", decimals=6)

STABLE_COIN = USDC

# Token program namespaces scanned for holdings. Legacy SPL Token is
# authoritative; Token-2022 is best-effort.
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"


__all__ = [
    "SolanaToken",
    "USDC",
    "STABLE_COIN",
    "TOKEN_PROGRAM_ID",
    "TOKEN_2022_PROGRAM_ID",
]
