from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urljoin, urlsplit
from bs4 import BeautifulSoup
from .blueprints import Detected, detect_blueprint, get_preset, merge_config
from .config import CrawlConfig, ExtractionRule, HttpConfig
from .context import TenantScope, job_logger
from .extract import extract_metadata
from .feed import import_from_feed, resolve_feed_url
from .fetch import Fetcher, fetch, is_success
from .hashing import structural_hash
from .models import ItemType, StagedItem
from .parse import Frontier, discover_links, enqueue_candidate, normalize_url, same_host
from .sitemaps import seed_from_sitemaps
from .state import SiteStatus
from .store import (
    get_site, get_site_status, refresh_page_count, save_site_config, transition_site, upsert_staged_item,
)

logger = logging.getLogger(__name__)

Extractor = Callable[[BeautifulSoup, List[ExtractionRule], str], Dict[str, Any]]

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class SkipReason(Enum):
    FETCH_FAILED = "fetch_failed"            # transport error, status 0
    HTTP_ERROR = "http_error"                # 4xx/5xx
    NOT_HTML = "not_html"
    OFF_DOMAIN_REDIRECT = "off_domain_redirect"


@dataclass(frozen=True)
class PageResult:
    """What happened to one frontier URL: staged, or skipped for a reason."""
    url: str
    item: Optional[StagedItem] = None
    reason: Optional[SkipReason] = None
    detail: str = ""

    @classmethod
    def ok(cls, url: str, item: StagedItem) -> "PageResult":
        return cls(url=url, item=item)

    @classmethod
    def skip(cls, url: str, reason: SkipReason, detail: str = "") -> "PageResult":
        return cls(url=url, reason=reason, detail=detail)

    @property
    def is_ok(self) -> bool:
        return self.item is not None


def _is_html(headers: Dict[str, str]) -> bool:
    content_type = ""
    for name, value in (headers or {}).items():
        if name.lower() == "content-type":
            content_type = str(value).lower()
            break
    # Servers that omit the header are given the benefit of the doubt
    return not content_type or any(t in content_type for t in HTML_CONTENT_TYPES)


def resolve_canonical(declared: Optional[str], page_url: str, root_domain: str) -> Optional[str]:
    """Normalized same-host canonical URL declared by a page, if any."""
    if not declared or not isinstance(declared, str):
        return None
    try:
        absolute = urljoin(page_url, declared.strip())
    except ValueError:
        return None
    canonical = normalize_url(absolute)
    if not canonical or not same_host(canonical, root_domain):
        return None
    return canonical


async def process_page(scope: TenantScope, site_id: int, url: str, root_domain: str, visited: set,
                       queue: Frontier, config: CrawlConfig, http_config: HttpConfig,
                       fetcher: Fetcher = fetch, extractor: Extractor = extract_metadata) -> PageResult:
    """
    Fetch one URL, stage it and queue the links it contains.

    Network and parse problems come back as a skip or as degraded data. Store
    errors are not caught here.
    """
    try:
        status, final_url, headers, text, _ = await fetcher(url, http_config)
    except Exception as e:
        return PageResult.skip(url, SkipReason.FETCH_FAILED, str(e))
    if status == 0:
        return PageResult.skip(url, SkipReason.FETCH_FAILED)
    if not is_success(status):
        return PageResult.skip(url, SkipReason.HTTP_ERROR, f"HTTP {status}")
    if not _is_html(headers):
        return PageResult.skip(url, SkipReason.NOT_HTML)

    final_url = final_url or url
    if not same_host(final_url, root_domain):
        return PageResult.skip(url, SkipReason.OFF_DOMAIN_REDIRECT, final_url)
    landed = normalize_url(final_url)
    if landed and landed != url:
        visited.add(landed)

    soup = BeautifulSoup(text or "", "html.parser")
    page_hash = structural_hash(text)
    try:
        metadata = extractor(soup, config.rules, url) or {}
    except Exception as e:
        logger.warning("Metadata extraction failed for %s: %s", url, e)
        metadata = {}

    stored_url = url
    canonical = resolve_canonical(metadata.get("canonical"), final_url, root_domain)
    if canonical:
        stored_url = canonical
        if canonical != url and canonical not in visited and canonical not in queue:
            queue.push_front(canonical)

    item = StagedItem(
        site_id=site_id,
        url=stored_url,
        title=str(metadata.get("title") or "Untitled"),
        item_type=ItemType.from_value(metadata.get("type")),
        raw_html=text,
        structural_hash=page_hash,
        metadata=metadata,
    )
    await upsert_staged_item(scope, item)

    discover_links(soup, final_url, root_domain, visited, queue, config)
    return PageResult.ok(url, item)


async def traditional_crawl(scope: TenantScope, site_id: int, root_url: str, config: CrawlConfig,
                            http_config: HttpConfig, fetcher: Fetcher = fetch,
                            extractor: Extractor = extract_metadata, visited: Optional[set] = None,
                            seeds: Iterable[str] = ()) -> int:
    """
    Breadth-first crawl from the root, priority paths first.

    Stops when the frontier runs dry, when ``config.max_pages`` items have been
    staged by this run, or when the site leaves the ``crawling`` state (an
    external cancel). Returns the number of items staged by this run.
    """
    log = job_logger(scope, site_id, __name__)
    config = config.with_defaults()
    visited = visited if visited is not None else set()
    root_domain = (urlsplit(root_url).hostname or "").lower()

    queue = Frontier()
    start = normalize_url(root_url)
    if start and start not in visited:
        queue.push_back(start)
    for seed in seeds:
        enqueue_candidate(seed, root_url, root_domain, visited, queue, config)

    if not await transition_site(scope, site_id, SiteStatus.CRAWLING):
        current = await get_site_status(scope, site_id)
        if current is None or current.is_terminal:
            log.info("Not crawling, site is %s", current.value if current else "gone")
            return 0

    log.info("Crawling %s (max %d pages, %d URLs queued)", root_domain, config.max_pages, len(queue))
    staged = 0
    while queue and staged < config.max_pages:
        current = await get_site_status(scope, site_id)
        if current is None or current.is_terminal:
            log.info("Stopping crawl, site is %s", current.value if current else "gone")
            return staged

        url = queue.pop()
        if url in visited:
            continue
        visited.add(url)

        result = await process_page(scope, site_id, url, root_domain, visited, queue, config,
                                    http_config, fetcher, extractor)
        if result.is_ok:
            staged += 1
            page_count = await refresh_page_count(scope, site_id)
            log.debug("Staged %s (%d/%d, page_count=%d)", result.item.url, staged, config.max_pages, page_count)
        else:
            log.warning("Skipped %s: %s %s", url, result.reason.value, result.detail)

        if http_config.delay_between_requests > 0:
            await asyncio.sleep(http_config.delay_between_requests)

    log.info("Crawl finished: %d pages staged, %d URLs left in queue", staged, len(queue))
    return staged


async def crawl_site(scope: TenantScope, site_id: int, root_url: str, http_config: Optional[HttpConfig] = None,
                     fetcher: Optional[Fetcher] = None, extractor: Optional[Extractor] = None):
    """
    Run the whole import for one site: detect the platform, take the feed
    fast path if there is one, then crawl pages until the frontier or the
    budget is exhausted.

    Only an unexpected error at this level marks the site ``failed``; an
    external ``cancelled`` is never overwritten.
    """
    http_config = http_config or HttpConfig()
    fetcher = fetcher or fetch
    extractor = extractor or extract_metadata
    log = job_logger(scope, site_id, __name__)

    try:
        site = await get_site(scope, site_id)
        if site is None:
            log.error("Site does not exist")
            return
        if site.status.is_terminal:
            log.info("Site is already %s, nothing to do", site.status.value)
            return

        config = site.config
        platform = None
        chosen = get_preset(config.preset) if config.preset else None
        if config.preset and chosen is None:
            log.warning("Unknown preset %r, ignoring it", config.preset)
        if chosen is not None:
            platform = chosen.key
            config = merge_config(chosen, config)
        elif config.auto_detect:
            detection = await detect_blueprint(root_url, http_config, fetcher)
            if isinstance(detection, Detected):
                platform = detection.preset.key
                config = merge_config(detection.preset, config)
            else:
                log.info("No blueprint detected: %s", detection.reason)
        await save_site_config(scope, site_id, config, platform)

        visited: set = set()
        feed_url = resolve_feed_url(config.feed_url, root_url)
        if feed_url:
            feed = await import_from_feed(scope, site_id, feed_url, http_config, fetcher)
            if feed:
                visited.update(feed.urls)
                log.info("Feed import staged %d products, crawling remaining pages", len(feed.urls))
            else:
                log.warning("Feed %s unusable (%s), falling back to crawling", feed_url, feed.reason)

        seeds = [] if http_config.skip_sitemaps else await seed_from_sitemaps(root_url, http_config, fetcher)

        await traditional_crawl(scope, site_id, root_url, config, http_config, fetcher, extractor,
                                visited=visited, seeds=seeds)

        if await transition_site(scope, site_id, SiteStatus.COMPLETED):
            log.info("Import completed")
    except Exception as e:
        log.exception("Import failed: %s", e)
        try:
            await transition_site(scope, site_id, SiteStatus.FAILED)
        except Exception as db_error:
            log.error("Could not mark site as failed: %s", db_error)
