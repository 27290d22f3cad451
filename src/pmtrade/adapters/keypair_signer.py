"""
keypair_signer.py - Local-keypair Signing Gateway

Headless stand-in for a wallet: deserialize -> sign -> send. Used by the CLI;
an interactive wallet would implement the same SigningGateway port.

Key policy:
- NEVER LOG the key bytes or the decoded value
- Accepts base58 (64 bytes) or a JSON array of 64 ints (solana-keygen format)
"""

from __future__ import annotations

import json
from typing import Optional

import base58
from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from ..domain.errors import SigningRejected, TransactionFailed
from ..domain.models import SignedSubmission
from ..ports.signing import SigningGateway

_B58_CHARS = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


def load_keypair(private_key_b58: str) -> Keypair:
    """
    Load keypair from base58 private key.

    ACCEPTS: Base58 string decoding to exactly 64 bytes.
    REJECTS: Everything else, with ValueError (message never contains the key).
    """
    if not private_key_b58 or not isinstance(private_key_b58, str):
        raise ValueError("SOLANA_PRIVATE_KEY is empty or not set")

    private_key_b58 = private_key_b58.strip()
    if not all(c in _B58_CHARS for c in private_key_b58):
        raise ValueError("SOLANA_PRIVATE_KEY contains invalid characters (must be base58)")

    key_bytes = base58.b58decode(private_key_b58)
    if len(key_bytes) != 64:
        raise ValueError(f"SOLANA_PRIVATE_KEY decoded to {len(key_bytes)} bytes, expected 64")

    try:
        return Keypair.from_bytes(key_bytes)
    except ValueError as e:
        raise ValueError(f"Failed to create keypair: {e}") from None


def load_keypair_file(path: str) -> Keypair:
    """Load a keypair written as a JSON list of 64 ints."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, list) or len(raw) != 64:
        raise ValueError(f"{path}: expected a JSON array of 64 ints")
    return Keypair.from_bytes(bytes(raw))


class KeypairSigningGateway(SigningGateway):
    """Signs with a local Keypair and submits through solana-py."""

    def __init__(
        self,
        keypair: Optional[Keypair],
        rpc_url: str,
        client: Optional[AsyncClient] = None,
        skip_preflight: bool = False,
    ):
        self.keypair = keypair
        self.rpc_url = rpc_url
        self.skip_preflight = skip_preflight
        self._client: Optional[AsyncClient] = client
        self._owns_client = client is None

        if keypair is not None:
            logger.info(f"SIGNER | init | wallet={str(keypair.pubkey())[:8]}...")

    @property
    def is_ready(self) -> bool:
        return self.keypair is not None

    @property
    def address(self) -> Optional[str]:
        return str(self.keypair.pubkey()) if self.keypair is not None else None

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self.rpc_url)
            self._owns_client = True
        return self._client

    async def close(self):
        if self._owns_client and self._client:
            await self._client.close()
            self._client = None

    async def sign_and_submit(self, transaction: bytes) -> SignedSubmission:
        if self.keypair is None:
            raise SigningRejected("No keypair loaded")

        try:
            tx = VersionedTransaction.from_bytes(transaction)
        except Exception as e:
            logger.error(f"TX_DESERIALIZE | error | {e}")
            raise SigningRejected(f"Could not decode transaction: {e}") from e

        try:
            signed_tx = VersionedTransaction(tx.message, [self.keypair])
        except Exception as e:
            logger.error(f"TX_SIGN | error | {e}")
            raise SigningRejected(f"Signing failed: {e}") from e

        client = await self._get_client()
        try:
            resp = await client.send_transaction(signed_tx, opts=TxOpts(skip_preflight=self.skip_preflight))
        except Exception as e:
            logger.error(f"TX_SEND | error | {e}")
            raise TransactionFailed(f"Transaction submission failed: {e}") from e

        signature = str(resp.value)
        logger.info(f"TX_SENT | sig={signature}")
        return SignedSubmission(signature=signature)


__all__ = ["load_keypair", "load_keypair_file", "KeypairSigningGateway"]
