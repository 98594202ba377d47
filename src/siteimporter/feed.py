"""
Product feed fast path.

Storefronts that publish a JSON product list (Shopify's ``/products.json``)
can be staged in one request instead of one fetch per product page.
"""
from __future__ import annotations
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit
from .config import HttpConfig
from .fetch import Fetcher, fetch, is_success
from .hashing import FEED_ITEM_HASH
from .models import ItemType, StagedItem
from .parse import normalize_url
from .store import refresh_page_count, upsert_staged_item

if TYPE_CHECKING:
    from .context import TenantScope

logger = logging.getLogger(__name__)

MAX_OPTIONS = 3
LIST_FIELDS = ("variants", "options", "images")


@dataclass
class FeedImport:
    """Outcome of one feed import; truthy only if the feed was usable."""
    success: bool
    urls: List[str] = field(default_factory=list)
    skipped: int = 0
    reason: str = ""

    def __bool__(self) -> bool:
        return self.success


class MalformedEntry(ValueError):
    """A feed entry that cannot be turned into a staged product."""


def resolve_feed_url(template: Optional[str], root_url: str) -> Optional[str]:
    """Absolute feed URL for a configured value or a preset path template."""
    if not template:
        return None
    parts = urlsplit(root_url)
    origin = urlunsplit((parts.scheme, parts.netloc, "/", "", ""))
    return urljoin(origin, template)


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, "", "", ""))


def _image_index(product: Dict[str, Any]) -> Dict[Any, str]:
    return {img.get("id"): img.get("src") for img in (product.get("images") or [])
            if isinstance(img, dict) and img.get("src")}


def normalize_variant(variant: Dict[str, Any], position: int, images: Dict[Any, str]) -> Dict[str, Any]:
    """Flatten one feed variant; ``position`` is its 1-based place in the feed."""
    if not isinstance(variant, dict):
        raise MalformedEntry(f"variant {position} is not an object")
    image = None
    featured = variant.get("featured_image")
    if isinstance(featured, dict) and featured.get("src"):
        image = featured["src"]
    elif variant.get("image_id") is not None:
        image = images.get(variant["image_id"])
    return {
        "title": variant.get("title") or "",
        "sku": variant.get("sku") or "",
        "price": variant.get("price"),
        "compare_at_price": variant.get("compare_at_price"),
        "option1": variant.get("option1"),
        "option2": variant.get("option2"),
        "option3": variant.get("option3"),
        "inventory_quantity": variant.get("inventory_quantity"),
        "image": image,
        "position": position,
    }


def build_product_metadata(product: Dict[str, Any], product_url: str) -> Dict[str, Any]:
    images = _image_index(product)
    variants = [normalize_variant(v, i, images) for i, v in enumerate(product.get("variants") or [], start=1)]
    options = [
        {"name": opt.get("name"), "values": list(opt.get("values") or [])}
        for opt in (product.get("options") or [])[:MAX_OPTIONS]
        if isinstance(opt, dict) and opt.get("name")
    ]
    first = variants[0] if variants else {}
    tags = product.get("tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",") if t.strip()]
    return {
        "title": str(product.get("title") or ""),
        "description": product.get("body_html") or "",
        "images": list(images.values()),
        "sku": first.get("sku", ""),
        "price": first.get("price"),
        "vendor": product.get("vendor"),
        "product_type": product.get("product_type"),
        "tags": tags,
        "handle": product.get("handle"),
        "options": options,
        "variants": variants,
        "canonical": product_url,
        "type": ItemType.PRODUCT.value,
        "source": "feed",
    }


def _product_item(site_id: int, origin: str, product: Any) -> StagedItem:
    if not isinstance(product, dict):
        raise MalformedEntry("entry is not an object")
    for name in LIST_FIELDS:
        if product.get(name) is not None and not isinstance(product[name], list):
            raise MalformedEntry(f"{name} is not a list")
    handle = str(product.get("handle") or "").strip().strip("/")
    if not handle:
        raise MalformedEntry("missing handle")
    product_url = normalize_url(f"{origin}/products/{handle}")
    if not product_url:
        raise MalformedEntry(f"unusable handle {handle!r}")
    return StagedItem(
        site_id=site_id,
        url=product_url,
        title=str(product.get("title") or handle),
        item_type=ItemType.PRODUCT,
        raw_html=product.get("body_html") or "",
        structural_hash=FEED_ITEM_HASH,
        metadata=build_product_metadata(product, product_url),
    )


async def import_from_feed(scope: "TenantScope", site_id: int, feed_url: str, http_config: HttpConfig,
                           fetcher: Fetcher = fetch) -> FeedImport:
    """
    Stage every product in the feed as a PRODUCT item.

    A feed that cannot be fetched or does not have the ``{"products": [...]}``
    shape reports failure so the caller falls back to crawling. Individual bad
    entries are skipped. Store errors propagate.
    """
    feed_config = dataclasses.replace(http_config, timeout=http_config.feed_timeout)
    try:
        status, final_url, _headers, text, _ = await fetcher(feed_url, feed_config)
    except Exception as e:
        logger.warning("Feed fetch failed for %s: %s", feed_url, e)
        return FeedImport(success=False, reason=f"fetch error: {e}")
    if not is_success(status):
        return FeedImport(success=False, reason=f"HTTP {status}" if status else "fetch failed")

    try:
        data = json.loads(text)
    except ValueError:
        return FeedImport(success=False, reason="not JSON")
    products = data.get("products") if isinstance(data, dict) else None
    if not isinstance(products, list):
        return FeedImport(success=False, reason="no product list")

    origin = _origin(final_url or feed_url)
    result = FeedImport(success=False)
    for index, product in enumerate(products):
        try:
            item = _product_item(site_id, origin, product)
        except (MalformedEntry, TypeError, AttributeError) as e:
            logger.warning("Skipping feed entry %d from %s: %s", index, feed_url, e)
            result.skipped += 1
            continue
        await upsert_staged_item(scope, item)
        result.urls.append(item.url)

    if not result.urls:
        result.reason = "no importable products"
        return result

    result.success = True
    count = await refresh_page_count(scope, site_id)
    logger.info("Feed %s: staged %d products (%d skipped), site now has %d items",
                feed_url, len(result.urls), result.skipped, count)
    return result
