"""
Load config from config.yaml with optional env overrides.
Single source of truth for cache TTLs, retry/backoff, rate limits, provider
priorities, credentials, oracle and stream settings.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

# Defaults if no YAML or env
_DEFAULTS: Dict[str, Any] = {
    "cache": {"ttl_s": 30.0},
    "retry": {
        "max_retries": 3,
        "base_delay_s": 2.0,
        "max_delay_s": 30.0,
        "backoff_factor": 2.0,
    },
    "rate_limit": {
        "min_interval_s": 0.5,
        "soft_limit_per_minute": 20,
    },
    "http": {"timeout_s": 15.0, "user_agent": "tokenfeed/1.0"},
    "providers": {
        "ohlcv_priority": ["geckoterminal", "cryptocompare", "coingecko"],
        "holders_priority": ["birdeye", "helius"],
        "solana_security_priority": ["rugcheck", "goplus"],
        "evm_security_priority": ["goplus"],
    },
    "ohlcv": {"synthesize_on_exhaustion": True},
    "credentials": {
        "birdeye_holders": "",
        "birdeye_historical": "",
        "birdeye_transactions": "",
        "birdeye_trending": "",
        "helius": "",
        "cryptocompare": "",
    },
    "oracle": {
        "refresh_interval_s": 15.0,
        "ttl_s": 30.0,
        "default_prices": {"SOL": 240.0, "USDC": 1.0, "USDT": 1.0},
    },
    "trending": {
        "addresses_ttl_s": 3600.0,
        "tokens_ttl_s": 3.0,
        "limit": 20,
    },
    "holders": {"ttl_s": 300.0},
    "market_stats": {
        "series_ttl_s": 300.0,
        "transactions_ttl_s": 15.0,
        "default_supply": 1_000_000_000.0,
    },
    "stream": {
        "url": "wss://atlas-mainnet.helius-rpc.com",
        "ping_interval_s": 30.0,
        "reconnect_base_delay_s": 1.0,
        "max_reconnect_attempts": 10,
        "dust_threshold": 0.000001,
    },
}


def _config_yaml_path() -> Path:
    """Config.yaml lives at repo root (parent of package dir); TOKENFEED_CONFIG overrides."""
    override = os.environ.get("TOKENFEED_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    config_path = _config_yaml_path()
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


_ENV_CREDENTIALS = {
    "BIRDEYE_API_KEY_HOLDERS": "birdeye_holders",
    "BIRDEYE_API_KEY_HISTORICAL": "birdeye_historical",
    "BIRDEYE_API_KEY_TRANSACTIONS": "birdeye_transactions",
    "BIRDEYE_API_KEY_TRENDING": "birdeye_trending",
    "HELIUS_API_KEY": "helius",
    "CRYPTOCOMPARE_API_KEY": "cryptocompare",
}


def _env_overrides() -> dict:
    overrides: dict = {}
    for env_name, key in _ENV_CREDENTIALS.items():
        value = os.environ.get(env_name)
        if value:
            overrides.setdefault("credentials", {})[key] = value
    ttl = os.environ.get("TOKENFEED_CACHE_TTL_S")
    if ttl:
        overrides.setdefault("cache", {})["ttl_s"] = float(ttl)
    priority = os.environ.get("TOKENFEED_OHLCV_PRIORITY")
    if priority:
        names = [p.strip() for p in priority.split(",") if p.strip()]
        overrides.setdefault("providers", {})["ohlcv_priority"] = names
    synth = os.environ.get("TOKENFEED_SYNTHESIZE")
    if synth:
        overrides.setdefault("ohlcv", {})["synthesize_on_exhaustion"] = synth.lower() in {
            "1",
            "true",
            "yes",
            "on",
        }
    stream_url = os.environ.get("TOKENFEED_STREAM_URL")
    if stream_url:
        overrides.setdefault("stream", {})["url"] = stream_url
    return overrides


def get_config() -> dict:
    """Return merged config: defaults <- config.yaml <- env."""
    merged = _deep_merge(_DEFAULTS, _load_yaml())
    merged = _deep_merge(merged, _env_overrides())
    return merged


# Convenience accessors
def cache_ttl_s() -> float:
    return float(get_config()["cache"]["ttl_s"])


def ohlcv_priority() -> List[str]:
    return list(get_config()["providers"]["ohlcv_priority"])


def synthesize_on_exhaustion() -> bool:
    return bool(get_config()["ohlcv"]["synthesize_on_exhaustion"])


def credential(name: str) -> str:
    return str(get_config()["credentials"].get(name) or "")


def http_timeout_s() -> float:
    return float(get_config()["http"]["timeout_s"])
