"""
Shared HTTP plumbing for provider adapters.

get_json / post_json issue one request with requests and translate every
outcome into either parsed JSON or a classified ProviderError. Adapters do
their own shape validation on the returned payload.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from .errors import (
    ErrorKind,
    ProviderError,
    kind_for_status,
    looks_rate_limited,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 15.0
DEFAULT_HEADERS = {"Accept": "application/json", "User-Agent": "tokenfeed/1.0"}


def set_user_agent(user_agent: Optional[str]) -> None:
    """Process-wide User-Agent for every provider request; empty keeps the current one."""
    if user_agent:
        DEFAULT_HEADERS["User-Agent"] = str(user_agent)


def _safe_get(d: Any, path: str, default: Any = None) -> Any:
    cur: Any = d
    for key in path.split("."):
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def _to_float(x: Any, default: Optional[float] = None) -> Optional[float]:
    if x is None:
        return default
    try:
        return float(x)
    except (TypeError, ValueError):
        return default


def _to_int(x: Any) -> Optional[int]:
    if x is None:
        return None
    try:
        return int(x)
    except (TypeError, ValueError):
        return None


def _check_response(provider: str, resp: requests.Response) -> Any:
    if resp.status_code < 200 or resp.status_code >= 300:
        retry_after = parse_retry_after(resp.headers.get("Retry-After"))
        kind = kind_for_status(resp.status_code)
        raise ProviderError(
            provider,
            f"HTTP {resp.status_code}",
            kind=kind,
            status=resp.status_code,
            retry_after_s=retry_after,
        )
    try:
        return resp.json()
    except ValueError as exc:
        raise ProviderError(provider, f"malformed JSON: {exc}", kind=ErrorKind.PERMANENT) from exc


def _transport_error(provider: str, exc: requests.RequestException) -> ProviderError:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        kind = ErrorKind.TRANSIENT
    elif looks_rate_limited(str(exc)):
        kind = ErrorKind.TRANSIENT
    else:
        kind = ErrorKind.PERMANENT
    return ProviderError(provider, f"{type(exc).__name__}: {exc}", kind=kind)


def get_json(
    provider: str,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> Any:
    """GET url and return decoded JSON, or raise a classified ProviderError."""
    merged = dict(DEFAULT_HEADERS)
    if headers:
        merged.update(headers)
    logger.debug("%s GET %s params=%s", provider, url, params)
    try:
        resp = requests.get(url, params=params or {}, headers=merged, timeout=timeout_s)
    except requests.RequestException as exc:
        raise _transport_error(provider, exc) from exc
    return _check_response(provider, resp)


def post_json(
    provider: str,
    url: str,
    body: Dict[str, Any],
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> Any:
    """POST a JSON body and return decoded JSON, or raise a classified ProviderError."""
    merged = dict(DEFAULT_HEADERS)
    merged["Content-Type"] = "application/json"
    if headers:
        merged.update(headers)
    logger.debug("%s POST %s method=%s", provider, url, body.get("method"))
    try:
        resp = requests.post(url, params=params or {}, json=body, headers=merged, timeout=timeout_s)
    except requests.RequestException as exc:
        raise _transport_error(provider, exc) from exc
    return _check_response(provider, resp)


def require_dict(provider: str, data: Any, what: str = "response") -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ProviderError(provider, f"unexpected {what} type: {type(data).__name__}")
    return data
