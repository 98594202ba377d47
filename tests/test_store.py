import pytest
from src.siteimporter.config import CrawlConfig, ExtractionRule
from src.siteimporter.database import TenantDatabase, to_numbered_params
from src.siteimporter.hashing import FEED_ITEM_HASH
from src.siteimporter.models import ItemType, StagedItem
from src.siteimporter.state import SiteStatus
from src.siteimporter.store import (
    count_staged_items, create_site, get_site, get_site_status, get_staged_item, list_staged_items,
    refresh_page_count, reset_site, save_site_config, structural_groups, transition_site, upsert_staged_item,
)


@pytest.mark.asyncio
async def test_create_and_load_site(scope):
    config = CrawlConfig(max_pages=25, rules=[ExtractionRule(action="setType", value="product", selector=".p")])
    site_id = await create_site(scope, "https://shop.example.com/", config)

    site = await get_site(scope, site_id)
    assert site.root_url == "https://shop.example.com/"
    assert site.status is SiteStatus.PENDING
    assert site.page_count == 0
    assert site.config == config
    assert site.platform is None
    assert await get_site(scope, site_id + 100) is None


@pytest.mark.asyncio
async def test_save_site_config(scope):
    site_id = await create_site(scope, "https://shop.example.com/")
    await save_site_config(scope, site_id, CrawlConfig(feed_url="/products.json"), "shopify")
    site = await get_site(scope, site_id)
    assert site.platform == "shopify"
    assert site.config.feed_url == "/products.json"


@pytest.mark.asyncio
async def test_upsert_keeps_one_row_per_url(scope):
    site_id = await create_site(scope, "https://shop.example.com/")
    url = "https://shop.example.com/products/widget"
    await upsert_staged_item(scope, StagedItem(site_id=site_id, url=url, title="Old", structural_hash="h1"))
    await upsert_staged_item(scope, StagedItem(site_id=site_id, url=url, title="New", item_type=ItemType.PRODUCT,
                                               metadata={"price": 9.5}))

    assert await count_staged_items(scope, site_id) == 1
    item = await get_staged_item(scope, site_id, url)
    assert item.title == "New"
    assert item.item_type is ItemType.PRODUCT
    assert item.structural_hash is None
    assert item.metadata == {"price": 9.5}


@pytest.mark.asyncio
async def test_same_url_on_two_sites(scope):
    first = await create_site(scope, "https://shop.example.com/")
    second = await create_site(scope, "https://shop.example.com/")
    url = "https://shop.example.com/"
    await upsert_staged_item(scope, StagedItem(site_id=first, url=url, title="A"))
    await upsert_staged_item(scope, StagedItem(site_id=second, url=url, title="B"))
    assert (await get_staged_item(scope, first, url)).title == "A"
    assert (await get_staged_item(scope, second, url)).title == "B"


@pytest.mark.asyncio
async def test_title_is_truncated(scope):
    site_id = await create_site(scope, "https://shop.example.com/")
    await upsert_staged_item(scope, StagedItem(site_id=site_id, url="https://shop.example.com/x", title="  " + "t" * 400))
    item = (await list_staged_items(scope, site_id))[0]
    assert item.title == "t" * 255


@pytest.mark.asyncio
async def test_page_count_reflects_stored_items(scope):
    site_id = await create_site(scope, "https://shop.example.com/")
    for path in ("/a", "/b", "/a"):
        await upsert_staged_item(scope, StagedItem(site_id=site_id, url="https://shop.example.com" + path))
    assert await refresh_page_count(scope, site_id) == 2
    assert (await get_site(scope, site_id)).page_count == 2


@pytest.mark.asyncio
async def test_transitions_are_conditional(scope):
    site_id = await create_site(scope, "https://shop.example.com/")
    assert await transition_site(scope, site_id, SiteStatus.CRAWLING)
    assert not await transition_site(scope, site_id, SiteStatus.CRAWLING)
    assert await transition_site(scope, site_id, SiteStatus.CANCELLED)

    # a cancelled site is never overwritten by the crawler's own terminal writes
    assert not await transition_site(scope, site_id, SiteStatus.COMPLETED)
    assert not await transition_site(scope, site_id, SiteStatus.FAILED)
    assert await get_site_status(scope, site_id) is SiteStatus.CANCELLED


@pytest.mark.asyncio
async def test_reset_site(scope):
    site_id = await create_site(scope, "https://shop.example.com/")
    await upsert_staged_item(scope, StagedItem(site_id=site_id, url="https://shop.example.com/a"))
    await refresh_page_count(scope, site_id)

    assert not await reset_site(scope, site_id)
    assert await count_staged_items(scope, site_id) == 1

    await transition_site(scope, site_id, SiteStatus.COMPLETED)
    assert await reset_site(scope, site_id)
    site = await get_site(scope, site_id)
    assert site.status is SiteStatus.PENDING
    assert site.page_count == 0
    assert await count_staged_items(scope, site_id) == 0


@pytest.mark.asyncio
async def test_structural_groups(scope):
    site_id = await create_site(scope, "https://shop.example.com/")
    rows = [("/p1", "product"), ("/p2", "product"), ("/p3", "product"), ("/about", "page"),
            ("/broken", None), ("/products/feed", FEED_ITEM_HASH)]
    for path, digest in rows:
        await upsert_staged_item(scope, StagedItem(site_id=site_id, url="https://shop.example.com" + path,
                                                   structural_hash=digest))
    assert await structural_groups(scope, site_id) == {"product": 3, "page": 1}
    assert list(await structural_groups(scope, site_id)) == ["product", "page"]


def test_numbered_placeholders():
    assert to_numbered_params("SELECT ? WHERE a = ? AND b IN (?, ?)") == "SELECT $1 WHERE a = $2 AND b IN ($3, $4)"


def test_unknown_database_backend():
    with pytest.raises(ValueError):
        TenantDatabase(backend="oracle").connect()
