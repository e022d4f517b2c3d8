"""
Token identity resolution: map a caller-supplied token id (symbol slug or
contract address) to the pool, network and per-provider identifiers the
OHLCV adapters need.

Known slugs resolve to their most liquid reference pool. Raw addresses are
classified by shape: 0x + 40 hex chars is an EVM address on "eth"; a
33-49 char non-0x string is treated as a Solana address.
"""
from __future__ import annotations

import re
from typing import Dict, Tuple

from tokenfeed.providers.base import TokenRef

DEFAULT_POOL: Tuple[str, str] = ("eth", "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640")

# slug -> (network, pool address)
KNOWN_POOLS: Dict[str, Tuple[str, str]] = {
    "ethereum": ("eth", "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640"),
    "bitcoin": ("eth", "0x4585fe77225b41b697c938b018e2ac67ac5a20c0"),
    "solana": ("solana", "EP2ib6dYdEeqD8MfE2ezHCxX3kP3K2eLKkirfPm5eyMx"),
    "wif": ("solana", "EP2ib6dYdEeqD8MfE2ezHCxX3kP3K2eLKkirfPm5eyMx"),
    "usdc": ("eth", "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640"),
    "usdt": ("eth", "0x11b815efb8f581194ae79006d24e0d814b7697f6"),
    "pepe": ("eth", "0x11950d141ecb863f01007add7d1a342041227b58"),
    "bonk": ("solana", "EP2ib6dYdEeqD8MfE2ezHCxX3kP3K2eLKkirfPm5eyMx"),
}

CRYPTOCOMPARE_SYMBOLS: Dict[str, str] = {
    "ethereum": "ETH",
    "bitcoin": "BTC",
    "solana": "SOL",
    "pepe": "PEPE",
    "doge": "DOGE",
    "shib": "SHIB",
    "bonk": "BONK",
    "usdc": "USDC",
    "usdt": "USDT",
}

COINGECKO_IDS: Dict[str, str] = {
    "ethereum": "ethereum",
    "bitcoin": "bitcoin",
    "solana": "solana",
    "pepe": "pepe",
    "doge": "dogecoin",
    "shib": "shiba-inu",
}

_EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_evm_address(token_id: str) -> bool:
    return bool(_EVM_ADDRESS.match(token_id))


def is_solana_address(token_id: str) -> bool:
    return 32 < len(token_id) < 50 and not token_id.startswith("0x")


def resolve_token(token_id: str) -> TokenRef:
    """Resolve a token id to a TokenRef. Unknown slugs fall back to DEFAULT_POOL."""
    raw = token_id.strip()
    slug = raw.lower()
    if is_evm_address(raw):
        network, pool = "eth", raw.lower()
    elif is_solana_address(raw):
        network, pool = "solana", raw
    else:
        network, pool = KNOWN_POOLS.get(slug, DEFAULT_POOL)
    return TokenRef(
        token_id=raw if is_solana_address(raw) else slug,
        network=network,
        pool_address=pool,
        symbol=raw.upper(),
        cryptocompare_symbol=CRYPTOCOMPARE_SYMBOLS.get(slug),
        coingecko_id=COINGECKO_IDS.get(slug),
    )
