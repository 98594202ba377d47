import pytest
from conftest import FakeSite, XML
from src.siteimporter.sitemaps import SITEMAP_PATHS, seed_from_sitemaps

ROOT = "https://shop.example.com/"


def urlset(*locs):
    entries = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</urlset>'


@pytest.mark.asyncio
async def test_collects_locs_from_direct_sitemaps(http_config):
    site = FakeSite({
        "https://shop.example.com/sitemap.xml": (200, XML, urlset("https://shop.example.com/a", "https://shop.example.com/b")),
        "https://shop.example.com/sitemap_products_1.xml": (200, XML, urlset("https://shop.example.com/products/x",
                                                                             "https://shop.example.com/a")),
    })
    urls = await seed_from_sitemaps(ROOT + "some/page", http_config, site)
    assert urls == ["https://shop.example.com/a", "https://shop.example.com/b", "https://shop.example.com/products/x"]
    assert site.fetched == ["https://shop.example.com" + path for path in SITEMAP_PATHS]


@pytest.mark.asyncio
async def test_index_entries_are_not_followed(http_config):
    index = ('<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
             '<sitemap><loc>https://shop.example.com/nested-1.xml</loc></sitemap></sitemapindex>')
    site = FakeSite({
        "https://shop.example.com/sitemap.xml": (200, XML, index),
        "https://shop.example.com/nested-1.xml": (200, XML, urlset("https://shop.example.com/deep")),
    })
    assert await seed_from_sitemaps(ROOT, http_config, site) == []
    assert "https://shop.example.com/nested-1.xml" not in site.fetched


@pytest.mark.asyncio
async def test_never_raises(http_config):
    async def flaky(url, cfg):
        if url.endswith("/sitemap.xml"):
            raise TimeoutError("slow")
        if url.endswith("/sitemap_index.xml"):
            return 200, url, {}, "<urlset><url><loc>broken", url
        if url.endswith("/page-sitemap.xml"):
            return 200, url, {}, urlset("https://shop.example.com/about"), url
        return 500, url, {}, "error", url

    assert await seed_from_sitemaps(ROOT, http_config, flaky) == ["https://shop.example.com/about"]


@pytest.mark.asyncio
async def test_no_sitemaps(http_config):
    assert await seed_from_sitemaps(ROOT, http_config, FakeSite()) == []
