from __future__ import annotations
import asyncio
import logging
import aiohttp
from typing import Awaitable, Callable, Dict, Tuple
from .config import HttpConfig
from .http_client import fetch as http2_fetch, _get_default_headers

logger = logging.getLogger(__name__)

FetchResult = Tuple[int, str, Dict[str, str], str, str]
# Anything with this shape can stand in for the network (tests use canned sites)
Fetcher = Callable[[str, HttpConfig], Awaitable[FetchResult]]


def _resolve_backend(cfg: HttpConfig) -> str:
    backend = (cfg.http_backend or "httpx").lower()
    if backend not in ("httpx", "aiohttp"):
        raise ValueError(f"Unsupported HTTP backend: {cfg.http_backend}")
    return backend


async def fetch(url: str, cfg: HttpConfig) -> FetchResult:
    """Return (status, final_url, headers, text, url) for a single request."""
    if _resolve_backend(cfg) == "httpx":
        return await http2_fetch(url, cfg)

    timeout = aiohttp.ClientTimeout(total=cfg.timeout)
    async with aiohttp.ClientSession(headers=_get_default_headers(cfg), timeout=timeout) as session:
        try:
            async with session.get(url, allow_redirects=True) as resp:
                text = await resp.text(errors="ignore")
                return resp.status, str(resp.url), dict(resp.headers), text, url
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Error fetching %s: %s", url, e)
            return 0, url, {}, "", url


def is_success(status: int) -> bool:
    """2xx/3xx count as fetched; 0 is a transport failure."""
    return 200 <= status < 400
