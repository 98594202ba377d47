"""
HTTP client with HTTP/2 and Brotli support.
"""
from __future__ import annotations
import logging
import httpx
from typing import Dict, Tuple
from .config import HttpConfig

logger = logging.getLogger(__name__)


def _get_default_headers(cfg: HttpConfig) -> Dict[str, str]:
    """Get request headers; br decoding is handled by httpx when brotli is installed."""
    return {
        "User-Agent": cfg.user_agent,
        "Accept-Encoding": "gzip, deflate, br",
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.8,*/*;q=0.7",
    }


async def fetch(url: str, cfg: HttpConfig) -> Tuple[int, str, Dict[str, str], str, str]:
    """Return (status, final_url, headers, text, url) for a single request.

    Transport failures (DNS, timeout, TLS, ...) are reported as status 0 so the
    caller can drop the URL and carry on.
    """
    async with httpx.AsyncClient(
        http2=cfg.enable_http2,
        timeout=httpx.Timeout(cfg.timeout),
        headers=_get_default_headers(cfg),
        follow_redirects=True
    ) as client:
        try:
            response = await client.get(url)
            return response.status_code, str(response.url), dict(response.headers), response.text, url
        except httpx.HTTPError as e:
            logger.warning("Error fetching %s: %s", url, e)
            return 0, url, {}, "", url
