"""
Runtime configuration.

Policy:
- Built ONCE at boot into a frozen TradeConfig.
- Layers, lowest priority first: defaults -> TOML file -> environment.
- Nothing below the config layer reads os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

import toml
from dotenv import load_dotenv
from loguru import logger


@dataclass(frozen=True)
class TradeConfig:
    """Immutable trade configuration."""

    # DFlow endpoints
    trade_api_url: str = "https://dev-quote-api.dflow.net"
    markets_api_url: str = "https://prediction-markets-api.dflow.net"
    api_key: str = ""

    # Solana RPC
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    commitment: str = "confirmed"

    http_timeout_seconds: float = 30.0

    # 1% default: prices are bounded probabilities, so a wide band is acceptable
    slippage_bps: int = 100

    # Async order tracking (~60s worst case at defaults)
    poll_max_attempts: int = 30
    poll_interval_seconds: float = 2.0

    # Catalog pagination bound for position matching
    catalog_max_pages: int = 10
    catalog_page_size: int = 100
    catalog_status: str = "active"

    # Preview quotes below this amount are not requested
    min_preview_amount: Decimal = Decimal("1")

    def __post_init__(self):
        if not self.trade_api_url:
            raise ValueError("trade_api_url is required")
        if not self.markets_api_url:
            raise ValueError("markets_api_url is required")
        if not self.rpc_url:
            raise ValueError("rpc_url is required")
        if not 0 <= self.slippage_bps <= 10_000:
            raise ValueError(f"slippage_bps must be within 0..10000, got {self.slippage_bps}")
        if self.poll_max_attempts < 1:
            raise ValueError("poll_max_attempts must be >= 1")
        if self.poll_interval_seconds < 0:
            raise ValueError("poll_interval_seconds cannot be negative")
        if self.catalog_max_pages < 1 or self.catalog_page_size < 1:
            raise ValueError("catalog_max_pages and catalog_page_size must be >= 1")
        if self.http_timeout_seconds <= 0:
            raise ValueError("http_timeout_seconds must be positive")

    @property
    def api_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers


# TOML section -> {key in section: TradeConfig field}
_SECTIONS: Dict[str, Dict[str, str]] = {
    "dflow": {
        "trade_api_url": "trade_api_url",
        "markets_api_url": "markets_api_url",
        "api_key": "api_key",
        "http_timeout_seconds": "http_timeout_seconds",
    },
    "solana": {
        "rpc_url": "rpc_url",
        "commitment": "commitment",
    },
    "trade": {
        "slippage_bps": "slippage_bps",
        "poll_max_attempts": "poll_max_attempts",
        "poll_interval_seconds": "poll_interval_seconds",
        "min_preview_amount": "min_preview_amount",
    },
    "catalog": {
        "max_pages": "catalog_max_pages",
        "page_size": "catalog_page_size",
        "status": "catalog_status",
    },
}

# Well-known variable names shared with the wallet tooling
_ENV_ALIASES: Dict[str, str] = {
    "DFLOW_TRADE_API_URL": "trade_api_url",
    "DFLOW_MARKETS_API_URL": "markets_api_url",
    "DFLOW_API_KEY": "api_key",
    "SOLANA_RPC_URL": "rpc_url",
}


def load_config(
    settings_path: Optional[str] = None,
    env_prefix: str = "PMTRADE__",
    load_env_file: bool = True,
) -> TradeConfig:
    """
    Build the TradeConfig. THE ONLY FUNCTION THAT READS THE ENVIRONMENT.

    Env styles:
        SOLANA_RPC_URL=...                     (well-known aliases)
        PMTRADE__TRADE__SLIPPAGE_BPS=50        (section__key overrides)
    """
    if load_env_file:
        load_dotenv()

    values: Dict[str, Any] = {}
    overrides: List[Tuple[str, str, Any, Any]] = []

    def _set(field_name: str, value: Any, source: str) -> None:
        if field_name in values and values[field_name] != value:
            overrides.append((field_name, source, values[field_name], value))
        values[field_name] = value

    if settings_path and os.path.exists(settings_path):
        with open(settings_path, "r", encoding="utf-8") as f:
            data = toml.load(f)
        for field_name, value in _flatten_sections(data).items():
            _set(field_name, value, os.path.basename(settings_path))
        logger.info(f"CONFIG_FILE | loaded={settings_path}")
    elif settings_path:
        logger.warning(f"CONFIG_FILE | missing={settings_path} | using defaults")

    for env_key, field_name in _ENV_ALIASES.items():
        raw = os.environ.get(env_key)
        if raw is not None and raw.strip():
            _set(field_name, raw.strip(), env_key)

    for field_name, value in _load_env_overrides(env_prefix).items():
        _set(field_name, value, "env")

    for key, source, old, new in overrides:
        # api_key values are never echoed
        shown_old, shown_new = ("***", "***") if key == "api_key" else (old, new)
        logger.info(f"CONFIG_OVERRIDE | {key} | source={source} | {shown_old} -> {shown_new}")

    return TradeConfig(**_coerce_fields(values))


def _flatten_sections(data: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for section, mapping in _SECTIONS.items():
        block = data.get(section, {}) or {}
        if not isinstance(block, dict):
            raise ValueError(f"[{section}] must be a table")
        for key, value in block.items():
            if key not in mapping:
                raise ValueError(f"Unknown setting [{section}].{key}")
            out[mapping[key]] = value
    return out


def _load_env_overrides(prefix: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(prefix):
            continue
        parts = env_key[len(prefix):].lower().split("__")
        if len(parts) != 2:
            raise ValueError(f"{env_key}: expected {prefix}<SECTION>__<KEY>")
        section, key = parts
        mapping = _SECTIONS.get(section)
        if mapping is None or key not in mapping:
            raise ValueError(f"{env_key}: unknown setting {section}.{key}")
        # raw string; converted by field type in _coerce_fields
        out[mapping[key]] = env_val
    return out


def _coerce_fields(values: Dict[str, Any]) -> Dict[str, Any]:
    types = {f.name: f.type for f in fields(TradeConfig)}
    out: Dict[str, Any] = {}
    for name, value in values.items():
        kind = types[name]
        try:
            if kind == "int":
                out[name] = int(value)
            elif kind == "float":
                out[name] = float(value)
            elif kind == "Decimal":
                out[name] = Decimal(str(value))
            else:
                out[name] = str(value)
        except (TypeError, ValueError, InvalidOperation):
            raise ValueError(f"Invalid value for {name}: {value!r}")
    return out


__all__ = ["TradeConfig", "load_config"]
