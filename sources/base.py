"""
Shared HTTP plumbing for provider clients: client factory, JSON GET with retries, errors.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "SetlistRadar/1.0 (Spotify-driven concert finder bot)"
CONNECT_TIMEOUT = 10.0
READ_TIMEOUT = 30.0
RETRIES = 4
BACKOFF_BASE = 1.0  # 1s, 2s, 4s
RETRY_STATUSES = {429, 500, 502, 503, 504}


class ProviderError(Exception):
    """Upstream call failed: non-success status or a body that is not JSON."""

    def __init__(self, provider: str, detail: str, status: Optional[int] = None) -> None:
        self.provider = provider
        self.status = status
        self.detail = detail
        prefix = f"{provider} {status}" if status is not None else provider
        super().__init__(f"{prefix}: {detail}")


class ConfigError(Exception):
    """A required setting (usually an environment variable) is missing."""


def make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(CONNECT_TIMEOUT, read=READ_TIMEOUT),
        headers={"User-Agent": USER_AGENT},
    )


async def fetch_with_retries(
    client: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    method: str = "GET",
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    data: Optional[Dict[str, str]] = None,
    retries: int = RETRIES,
) -> httpx.Response:
    """
    Request with exponential backoff on transport errors, 429 and 5xx.
    Any other non-success status raises ProviderError immediately.
    """
    last_exc: Optional[Exception] = None
    for attempt in range(retries):
        try:
            resp = await client.request(method, url, params=params, headers=headers, data=data)
        except httpx.RequestError as e:
            last_exc = ProviderError(provider, f"{type(e).__name__}: {e}")
        else:
            if resp.is_success:
                return resp
            error = ProviderError(provider, resp.text[:500], status=resp.status_code)
            if resp.status_code not in RETRY_STATUSES:
                raise error
            last_exc = error
        if attempt < retries - 1:
            delay = BACKOFF_BASE * (2**attempt)
            logger.warning("Attempt %s failed for %s: %s; retry in %ss", attempt + 1, url, last_exc, delay)
            await asyncio.sleep(delay)
    raise last_exc  # type: ignore


def parse_json(resp: httpx.Response, provider: str) -> Dict[str, Any]:
    try:
        body = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProviderError(provider, f"malformed JSON body: {e}", status=resp.status_code) from e
    if not isinstance(body, dict):
        raise ProviderError(provider, "expected a JSON object", status=resp.status_code)
    return body


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    retries: int = RETRIES,
) -> Dict[str, Any]:
    """GET and decode a JSON object. Empty/None params are dropped."""
    clean = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
    resp = await fetch_with_retries(
        client, url, provider=provider, params=clean or None, headers=headers, retries=retries
    )
    return parse_json(resp, provider)
