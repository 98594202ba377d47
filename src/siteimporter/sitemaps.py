"""
Best-effort sitemap discovery used to seed the frontier.
"""
from __future__ import annotations
import logging
from typing import List
from urllib.parse import urlsplit, urlunsplit
from .config import HttpConfig
from .fetch import Fetcher, fetch, is_success
from .parse import parse_sitemap

logger = logging.getLogger(__name__)

# Generic name first, then the per-type names Shopify/Yoast/Rank Math publish
SITEMAP_PATHS = [
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap_products_1.xml",
    "/sitemap_pages_1.xml",
    "/product-sitemap.xml",
    "/page-sitemap.xml",
]


def _origin(root_url: str) -> str:
    parts = urlsplit(root_url)
    return urlunsplit((parts.scheme, parts.netloc, "", "", ""))


async def seed_from_sitemaps(root_url: str, http_config: HttpConfig, fetcher: Fetcher = fetch) -> List[str]:
    """
    Collect <url><loc> entries from the well-known sitemap locations.

    Sitemap index entries are noted but not fetched; nested sitemaps are only
    reached if they happen to live at one of the well-known paths. Returned
    URLs are candidates: the caller still runs them through the link filters.
    Never raises.
    """
    try:
        origin = _origin(root_url)
    except ValueError:
        return []

    urls: List[str] = []
    seen = set()
    for path in SITEMAP_PATHS:
        sitemap_url = origin + path
        try:
            status, _final_url, _headers, text, _ = await fetcher(sitemap_url, http_config)
        except Exception as e:
            logger.debug("Sitemap fetch failed for %s: %s", sitemap_url, e)
            continue
        if not is_success(status) or not text:
            continue

        kind, locs = parse_sitemap(text)
        if kind == "sitemap_index":
            logger.info("Sitemap index %s lists %d nested sitemaps (not traversed)", sitemap_url, len(locs))
            continue
        if kind == "invalid":
            logger.debug("Ignoring non-sitemap response at %s", sitemap_url)
            continue

        for loc in locs:
            if loc not in seen:
                seen.add(loc)
                urls.append(loc)
        logger.info("Sitemap %s: %d URLs", sitemap_url, len(locs))

    return urls
