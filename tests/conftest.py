import pytest
import pytest_asyncio
import os
import sys

# Add src to python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from src.siteimporter.config import HttpConfig
from src.siteimporter.context import scope_for_tenant
from src.siteimporter.store import init_schema

HTML = {"content-type": "text/html; charset=utf-8"}
JSON = {"content-type": "application/json"}
XML = {"content-type": "application/xml"}


class FakeSite:
    """Canned responses keyed by URL, usable as the crawler's fetcher.

    ``pages`` maps url -> html (200) or url -> (status, headers, body[, final_url]).
    ``hooks`` maps url -> coroutine function run before the response is served.
    Unknown URLs answer 404.
    """

    def __init__(self, pages=None, hooks=None):
        self.pages = dict(pages or {})
        self.hooks = dict(hooks or {})
        self.fetched = []

    async def __call__(self, url, cfg):
        self.fetched.append(url)
        if url in self.hooks:
            await self.hooks[url]()
        entry = self.pages.get(url)
        if entry is None:
            return 404, url, {}, "", url
        if isinstance(entry, str):
            return 200, url, dict(HTML), entry, url
        status, headers, body, *rest = entry
        final_url = rest[0] if rest else url
        return status, final_url, dict(headers), body, url

    def count(self, url):
        return self.fetched.count(url)


def page(title, *links, canonical=None, body=""):
    """Small HTML page with a title, optional canonical link and anchors."""
    head = f"<title>{title}</title>"
    if canonical:
        head += f'<link rel="canonical" href="{canonical}">'
    anchors = "".join(f'<li><a href="{href}">{href}</a></li>' for href in links)
    return f"<html><head>{head}</head><body><div><h1>{title}</h1><ul>{anchors}</ul>{body}</div></body></html>"


@pytest.fixture
def http_config():
    return HttpConfig(
        user_agent="TestBot/1.0",
        timeout=10,
        feed_timeout=10,
        delay_between_requests=0,
        skip_sitemaps=True,
    )


@pytest_asyncio.fixture
async def scope(tmp_path):
    scope = scope_for_tenant("test-tenant", backend="sqlite", data_dir=str(tmp_path))
    await init_schema(scope)
    return scope
