import json
import pytest
from conftest import FakeSite, JSON
from src.siteimporter.feed import FeedImport, build_product_metadata, import_from_feed, resolve_feed_url
from src.siteimporter.hashing import FEED_ITEM_HASH
from src.siteimporter.models import ItemType
from src.siteimporter.store import create_site, get_site, list_staged_items

FEED_URL = "https://shop.example.com/products.json"

WIDGET = {
    "id": 1,
    "title": "Widget",
    "handle": "widget",
    "body_html": "<p>A fine widget</p>",
    "vendor": "Acme",
    "product_type": "Tools",
    "tags": ["new", "sale"],
    "options": [{"name": "Size", "values": ["S", "M"]}],
    "images": [{"id": 10, "src": "https://cdn.example.com/w1.jpg"}, {"id": 11, "src": "https://cdn.example.com/w2.jpg"}],
    "variants": [
        {"title": "S", "sku": "W-S", "price": "10.00", "compare_at_price": "12.00", "option1": "S",
         "inventory_quantity": 3, "image_id": 11},
        {"title": "M", "sku": "W-M", "price": "11.00", "option1": "M",
         "featured_image": {"src": "https://cdn.example.com/m.jpg"}},
    ],
}

GADGET = {"id": 2, "title": "Gadget", "handle": "gadget", "body_html": "", "variants": [{"sku": "G", "price": "5"}]}


def feed_site(payload, status=200):
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return FakeSite({FEED_URL: (status, JSON, body)})


def test_resolve_feed_url():
    assert resolve_feed_url("/products.json", "https://shop.example.com/collections/all") == FEED_URL
    assert resolve_feed_url("https://feeds.example.net/p.json", "https://shop.example.com/") == "https://feeds.example.net/p.json"
    assert resolve_feed_url(None, "https://shop.example.com/") is None


def test_product_metadata():
    meta = build_product_metadata(WIDGET, "https://shop.example.com/products/widget")
    assert meta["type"] == "product"
    assert meta["sku"] == "W-S"
    assert meta["price"] == "10.00"
    assert meta["images"] == ["https://cdn.example.com/w1.jpg", "https://cdn.example.com/w2.jpg"]
    assert meta["options"] == [{"name": "Size", "values": ["S", "M"]}]
    assert meta["canonical"] == "https://shop.example.com/products/widget"

    first, second = meta["variants"]
    assert first == {
        "title": "S", "sku": "W-S", "price": "10.00", "compare_at_price": "12.00",
        "option1": "S", "option2": None, "option3": None, "inventory_quantity": 3,
        "image": "https://cdn.example.com/w2.jpg", "position": 1,
    }
    assert second["image"] == "https://cdn.example.com/m.jpg"
    assert second["position"] == 2


@pytest.mark.asyncio
async def test_import_stages_products(scope, http_config):
    site_id = await create_site(scope, "https://shop.example.com/")
    result = await import_from_feed(scope, site_id, FEED_URL, http_config, feed_site({"products": [WIDGET, GADGET]}))

    assert result
    assert result.urls == ["https://shop.example.com/products/widget", "https://shop.example.com/products/gadget"]
    items = await list_staged_items(scope, site_id)
    assert [i.url for i in items] == result.urls
    assert all(i.item_type is ItemType.PRODUCT and i.structural_hash == FEED_ITEM_HASH for i in items)
    assert items[0].raw_html == "<p>A fine widget</p>"
    assert (await get_site(scope, site_id)).page_count == 2


@pytest.mark.asyncio
async def test_import_is_idempotent(scope, http_config):
    site_id = await create_site(scope, "https://shop.example.com/")
    site = feed_site({"products": [WIDGET, GADGET]})
    await import_from_feed(scope, site_id, FEED_URL, http_config, site)
    await import_from_feed(scope, site_id, FEED_URL, http_config, site)
    assert len(await list_staged_items(scope, site_id)) == 2


@pytest.mark.asyncio
async def test_malformed_entries_are_skipped(scope, http_config):
    site_id = await create_site(scope, "https://shop.example.com/")
    broken_variant = dict(GADGET, handle="broken", variants=["not-a-variant"])
    payload = {"products": [
        {"title": "No handle"},
        "junk",
        broken_variant,
        dict(GADGET, handle="scalar-variants", variants=7),
        dict(GADGET, handle="option-object", options={"name": "Size"}),
        dict(GADGET, handle="image-string", images="https://cdn.example.com/g.jpg"),
        dict(GADGET, handle="numbered", title=123),
        WIDGET,
    ]}
    result = await import_from_feed(scope, site_id, FEED_URL, http_config, feed_site(payload))

    assert result
    assert result.skipped == 6
    assert result.urls == ["https://shop.example.com/products/numbered", "https://shop.example.com/products/widget"]
    items = {i.url: i for i in await list_staged_items(scope, site_id)}
    assert items["https://shop.example.com/products/numbered"].title == "123"
    assert (await get_site(scope, site_id)).page_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("payload,status", [
    ("<html>Not JSON</html>", 200),
    ({"items": []}, 200),
    ({"products": "nope"}, 200),
    ({"products": []}, 200),
    ({"products": [{"title": "no handle"}]}, 200),
    ({"products": [WIDGET]}, 404),
    ([WIDGET], 200),
])
async def test_unusable_feed_reports_failure(scope, http_config, payload, status):
    site_id = await create_site(scope, "https://shop.example.com/")
    result = await import_from_feed(scope, site_id, FEED_URL, http_config, feed_site(payload, status))
    assert isinstance(result, FeedImport)
    assert not result
    assert (await get_site(scope, site_id)).page_count == 0


@pytest.mark.asyncio
async def test_feed_uses_feed_timeout(scope, http_config):
    seen = []

    async def fetcher(url, cfg):
        seen.append(cfg.timeout)
        return 200, url, {}, json.dumps({"products": [GADGET]}), url

    http_config.feed_timeout = 42
    site_id = await create_site(scope, "https://shop.example.com/")
    await import_from_feed(scope, site_id, FEED_URL, http_config, fetcher)
    assert seen == [42]
