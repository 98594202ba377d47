from __future__ import annotations
import re
from collections import deque
from typing import Iterable, Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit, parse_qsl, urlencode
from bs4 import BeautifulSoup
from defusedxml import ElementTree as SafeET
import idna
from .config import CrawlConfig

# ------------------ URL helpers ------------------

# Tracking / view parameters that never change which page is served
STRIP_PARAMS = {
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'utm_id', 'utm_source_platform', 'utm_creative_format', 'utm_marketing_tactic',
    'fbclid', 'gclid', 'msclkid', 'ref',
    'variant', 'view', 'sort_by', 'orderby',
    '_pos', '_sid', '_ss', '_psq', '_fid', '_v',
    'pr_prod_strat', 'pr_rec_id', 'pr_rec_pid', 'pr_ref_pid', 'pr_seq',
}

DEFAULT_PORTS = {'http': 80, 'https': 443}

STATIC_EXT = re.compile(
    r'\.(jpg|jpeg|png|gif|webp|avif|svg|ico|bmp|tiff?|pdf|zip|gz|tgz|rar|7z|tar'
    r'|mp4|mp3|m4a|mov|avi|webm|wav|ogg|css|js|mjs|map|woff2?|ttf|otf|eot)$'
)

# (pattern, replacement) applied to the path before dedup checks
URL_REWRITES = [
    # Shopify collection-scoped product -> flat product page
    (re.compile(r'^/collections/[^/]+/products/(.+)$'), r'/products/\1'),
]


def normalize_url(raw: str) -> Optional[str]:
    """
    Canonical string form of an absolute HTTP(S) URL, or None if unusable:
    - lowercase scheme and host, punycode for international hosts
    - default port stripped
    - fragment dropped
    - tracking/view query parameters removed
    - trailing slash removed unless the path is the root
    """
    if not raw:
        return None
    try:
        parsed = urlsplit(raw.strip())
        scheme = parsed.scheme.lower()
        host = (parsed.hostname or '').lower()
        port = parsed.port
    except ValueError:
        return None
    if scheme not in ('http', 'https') or not host:
        return None

    try:
        host = idna.encode(host).decode('ascii')
    except (idna.IDNAError, UnicodeError):
        # Fallback to lowercase if punycode conversion fails
        pass
    if ':' in host:
        host = f"[{host}]"
    netloc = host if port is None or port == DEFAULT_PORTS[scheme] else f"{host}:{port}"

    path = parsed.path.rstrip('/') or '/'

    query = parsed.query
    if query:
        params = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True)
                  if k.lower() not in STRIP_PARAMS]
        query = urlencode(params) if params else ""

    return urlunsplit((scheme, netloc, path, query, ""))


def rewrite_platform_url(url: str) -> str:
    """Collapse platform-specific alias URLs onto their canonical path."""
    parts = urlsplit(url)
    for pattern, replacement in URL_REWRITES:
        if pattern.match(parts.path):
            return urlunsplit((parts.scheme, parts.netloc, pattern.sub(replacement, parts.path), parts.query, parts.fragment))
    return url


def is_static_asset(path: str) -> bool:
    return bool(STATIC_EXT.search(path.lower()))


def same_host(url: str, root_domain: str) -> bool:
    try:
        return (urlsplit(url).hostname or '').lower() == root_domain.lower()
    except ValueError:
        return False

# ------------------ frontier ------------------

class Frontier:
    """FIFO queue with a binary priority: high-value URLs jump to the front.

    Positions never change after insertion, so discovery order is kept within
    each tier.
    """

    def __init__(self, urls: Iterable[str] = ()):
        self._queue: deque[str] = deque()
        self._queued: set[str] = set()
        for url in urls:
            self.push_back(url)

    def push_front(self, url: str):
        if url not in self._queued:
            self._queue.appendleft(url)
            self._queued.add(url)

    def push_back(self, url: str):
        if url not in self._queued:
            self._queue.append(url)
            self._queued.add(url)

    def pop(self) -> str:
        url = self._queue.popleft()
        self._queued.discard(url)
        return url

    def __contains__(self, url: str) -> bool:
        return url in self._queued

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self):
        return iter(list(self._queue))


def enqueue_candidate(href: str, current_url: str, root_domain: str, visited: set, queue: Frontier,
                      config: CrawlConfig) -> Optional[str]:
    """Run one link through the discovery filters; returns the queued URL or None."""
    try:
        absolute = urljoin(current_url, href.strip())
        parts = urlsplit(absolute)
    except ValueError:
        return None

    if parts.scheme.lower() not in ('http', 'https'):
        return None
    if not same_host(absolute, root_domain):
        return None
    if is_static_asset(parts.path):
        return None

    absolute = rewrite_platform_url(absolute)
    parts = urlsplit(absolute)
    path = parts.path.lower()
    query = parts.query.lower()

    if any(p in path or p in query for p in (config.exclude_patterns or [])):
        return None

    clean = normalize_url(absolute)
    if not clean or clean in visited or clean in queue:
        return None

    if any(p in path for p in (config.priority_patterns or [])):
        queue.push_front(clean)
    else:
        queue.push_back(clean)
    return clean


def discover_links(soup: BeautifulSoup, current_url: str, root_domain: str, visited: set, queue: Frontier,
                   config: CrawlConfig) -> int:
    """Queue every crawlable same-host link on the page. Returns how many were added."""
    found = 0
    for a in soup.find_all("a", href=True):
        if enqueue_candidate(a["href"], current_url, root_domain, visited, queue, config):
            found += 1
    return found

# ------------------ sitemaps ------------------

def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1].lower()


def parse_sitemap(xml_text: str) -> Tuple[str, list[str]]:
    """Return (kind, locs): kind is 'sitemap', 'sitemap_index' or 'invalid'.

    Namespace-agnostic, since plenty of generators omit or misspell the
    sitemaps.org namespace.
    """
    try:
        root = SafeET.fromstring(xml_text.encode("utf-8"))
    except Exception:
        return "invalid", []

    kind = _local_name(root.tag)
    if kind == "sitemapindex":
        entry_tag, kind = "sitemap", "sitemap_index"
    elif kind == "urlset":
        entry_tag, kind = "url", "sitemap"
    else:
        return "invalid", []

    locs = []
    for entry in root:
        if _local_name(entry.tag) != entry_tag:
            continue
        for child in entry:
            if _local_name(child.tag) == "loc" and child.text and child.text.strip():
                locs.append(child.text.strip())
    return kind, locs
