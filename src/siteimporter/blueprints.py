"""
Platform blueprints: detection of the storefront/CMS behind a root URL and
the preset crawl configuration that goes with it.

Detection is one GET of the root page run through an ordered table of
predicates; the first match wins, since plenty of sites trip more than one
heuristic (a WooCommerce shop embedding a Shopify buy button, say).
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union
from .config import CrawlConfig, ExtractionRule, HttpConfig
from .fetch import Fetcher, fetch, is_success

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlueprintPreset:
    key: str
    name: str
    max_pages: int = 1000
    priority_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()
    feed_url: Optional[str] = None  # path template, resolved against the root origin
    rules: Tuple[ExtractionRule, ...] = ()


def _rule(selector: str, action: str, value: str) -> ExtractionRule:
    return ExtractionRule(action=action, value=value, selector=selector)


SHOPIFY = BlueprintPreset(
    key="shopify",
    name="Shopify",
    feed_url="/products.json",
    priority_patterns=("/products/", "/collections/", "/pages/", "/blogs/"),
    exclude_patterns=("/tagged/", "/search", "sort_by=", "view=", "variant="),
    rules=(
        _rule('form[action="/cart/add"]', "setType", "product"),
        _rule(".product-single__title, .product__title", "setField", "title"),
        _rule(".product-single__description, .product__description", "setField", "description"),
        _rule("[data-product-sku]", "setField", "sku"),
    ),
)

WOOCOMMERCE = BlueprintPreset(
    key="woocommerce",
    name="WooCommerce",
    priority_patterns=("/product/", "/product-category/"),
    exclude_patterns=("/cart", "/checkout", "/my-account", "add-to-cart="),
    rules=(
        _rule(".type-product", "setType", "product"),
        _rule(".product_title", "setField", "title"),
        _rule(".woocommerce-product-details__short-description", "setField", "description"),
        _rule(".sku", "setField", "sku"),
    ),
)

MAGENTO = BlueprintPreset(
    key="magento",
    name="Magento",
    priority_patterns=(".html",),
    exclude_patterns=("/checkout", "/customer/", "/wishlist", "/catalogsearch", "product_list_order="),
    rules=(
        _rule(".catalog-product-view", "setType", "product"),
        _rule(".page-title .base", "setField", "title"),
        _rule('.product.attribute.sku .value, [itemprop="sku"]', "setField", "sku"),
        _rule('.product-info-price [data-price-type="finalPrice"] .price', "setField", "price"),
    ),
)

BIGCOMMERCE = BlueprintPreset(
    key="bigcommerce",
    name="BigCommerce",
    priority_patterns=("/products/", "/categories/"),
    exclude_patterns=("/cart.php", "/checkout", "/login.php", "/account.php", "sort="),
    rules=(
        _rule(".productView", "setType", "product"),
        _rule(".productView-title", "setField", "title"),
        _rule("[data-product-sku]", "setField", "sku"),
        _rule("[data-product-price-without-tax]", "setField", "price"),
    ),
)

PRESTASHOP = BlueprintPreset(
    key="prestashop",
    name="PrestaShop",
    priority_patterns=("/product/", "id_product="),
    exclude_patterns=("/cart", "/order", "/my-account", "/login", "orderby="),
    rules=(
        _rule("#product", "setType", "product"),
        _rule('h1[itemprop="name"], .product-detail-name', "setField", "title"),
        _rule('.current-price [itemprop="price"], .current-price-value', "setField", "price"),
        _rule('[itemprop="sku"]', "setField", "sku"),
    ),
)

WEBFLOW = BlueprintPreset(
    key="webflow",
    name="Webflow",
    priority_patterns=("/product/", "/blog/"),
    exclude_patterns=("/search",),
    rules=(
        _rule("[data-wf-sku-bindings]", "setType", "product"),
        _rule("[data-commerce-type=\"variation-price\"]", "setField", "price"),
    ),
)

SQUARESPACE = BlueprintPreset(
    key="squarespace",
    name="Squarespace",
    priority_patterns=("/shop/p/", "/store/p/", "/blog/"),
    exclude_patterns=("/cart", "/account", "format="),
    rules=(
        _rule(".ProductItem", "setType", "product"),
        _rule(".ProductItem-details-title", "setField", "title"),
        _rule(".ProductItem-details-excerpt", "setField", "description"),
    ),
)

WIX = BlueprintPreset(
    key="wix",
    name="Wix",
    priority_patterns=("/product-page/", "/post/"),
    exclude_patterns=("/cart-page", "/account/"),
    rules=(
        _rule('[data-hook="product-page"]', "setType", "product"),
        _rule('[data-hook="product-title"]', "setField", "title"),
        _rule('[data-hook="formatted-primary-price"]', "setField", "price"),
    ),
)

# Selectable by key only; no detector points at these.
GENERIC_ECOMMERCE = BlueprintPreset(
    key="generic_ecommerce",
    name="Generic Store",
    max_pages=800,
    priority_patterns=("/p/", "/product", "/item/"),
    exclude_patterns=("/cart", "/login", "/admin"),
    rules=(
        _rule("product-card, .product-card", "setType", "product"),
    ),
)

BLOG = BlueprintPreset(
    key="blog",
    name="Blog/CMS",
    max_pages=2000,
    priority_patterns=("/post/", "/article/", "/blog/"),
    exclude_patterns=("/wp-admin/", "/admin/", "/login", "/search"),
    rules=(
        _rule("article", "setType", "page"),
        _rule(".post-title, h1", "setField", "title"),
        _rule(".post-content, .entry-content", "setField", "description"),
    ),
)

CORPORATE = BlueprintPreset(
    key="corporate",
    name="Corporate Site",
    max_pages=1500,
    priority_patterns=("/about", "/services", "/products", "/contact"),
    exclude_patterns=("/admin", "/login", "/wp-admin"),
    rules=(
        _rule("main", "setType", "page"),
        _rule("h1", "setField", "title"),
    ),
)

# ------------------ detection ------------------


# (body, headers) -> matched signal or None; body and header names/values are lowercased
Predicate = Callable[[str, Dict[str, str]], Optional[str]]


def _body_markers(*markers: str) -> Predicate:
    def check(body: str, headers: Dict[str, str]) -> Optional[str]:
        for marker in markers:
            if marker in body:
                return marker
        return None
    return check


def _header_markers(names: Tuple[str, ...] = (), prefixes: Tuple[str, ...] = (),
                    values: Tuple[Tuple[str, str], ...] = ()) -> Predicate:
    def check(body: str, headers: Dict[str, str]) -> Optional[str]:
        for name in headers:
            if name in names or any(name.startswith(p) for p in prefixes):
                return f"header:{name}"
        for name, needle in values:
            if needle in headers.get(name, ""):
                return f"header:{name}"
        return None
    return check


def _any_of(*predicates: Predicate) -> Predicate:
    def check(body: str, headers: Dict[str, str]) -> Optional[str]:
        for predicate in predicates:
            signal = predicate(body, headers)
            if signal:
                return signal
        return None
    return check


DETECTORS: List[Tuple[Predicate, BlueprintPreset]] = [
    (_any_of(
        _body_markers("cdn.shopify.com", "shopify.theme", "window.shopify"),
        _header_markers(names=("x-shopid", "x-shopify-stage"), values=(("powered-by", "shopify"),)),
    ), SHOPIFY),
    (_body_markers("/wp-content/plugins/woocommerce/", "woocommerce-page", "woocommerce-no-js",
                   'class="woocommerce'), WOOCOMMERCE),
    (_any_of(
        _body_markers("mage/cookies", "text/x-magento-init", "mage-cache-storage"),
        _header_markers(prefixes=("x-magento-",)),
    ), MAGENTO),
    (_body_markers("cdn11.bigcommerce.com", "data-stencil", "stencil-utils"), BIGCOMMERCE),
    (_body_markers("var prestashop", "/modules/ps_"), PRESTASHOP),
    (_body_markers("data-wf-page", "data-wf-site"), WEBFLOW),
    (_body_markers("static1.squarespace.com", "squarespace-cdn"), SQUARESPACE),
    (_any_of(
        _body_markers("static.wixstatic.com", "static.parastorage.com"),
        _header_markers(names=("x-wix-request-id",)),
    ), WIX),
]

BLUEPRINTS: Dict[str, BlueprintPreset] = {preset.key: preset for _, preset in DETECTORS}
PRESETS: Dict[str, BlueprintPreset] = {
    **BLUEPRINTS,
    **{preset.key: preset for preset in (GENERIC_ECOMMERCE, BLOG, CORPORATE)},
}


def get_preset(key: Optional[str]) -> Optional[BlueprintPreset]:
    """Any preset by key, detected or selectable only."""
    return PRESETS.get((key or "").lower())


@dataclass(frozen=True)
class Detected:
    preset: BlueprintPreset
    signal: str


@dataclass(frozen=True)
class Undetected:
    reason: str


DetectionResult = Union[Detected, Undetected]


def classify(body: str, headers: Dict[str, str]) -> DetectionResult:
    """Run the predicate table over an already fetched root page."""
    body = (body or "").lower()
    headers = {k.lower(): str(v).lower() for k, v in (headers or {}).items()}
    for predicate, preset in DETECTORS:
        signal = predicate(body, headers)
        if signal:
            return Detected(preset=preset, signal=signal)
    return Undetected(reason="no platform markers")


async def detect_blueprint(root_url: str, http_config: HttpConfig, fetcher: Fetcher = fetch) -> DetectionResult:
    """Fetch the root page once and classify the platform behind it.

    Never raises: any failure degrades to ``Undetected`` and a generic crawl.
    """
    try:
        status, _final_url, headers, text, _ = await fetcher(root_url, http_config)
    except Exception as e:
        logger.warning("Blueprint detection fetch failed for %s: %s", root_url, e)
        return Undetected(reason=f"fetch error: {e}")
    if status == 0:
        return Undetected(reason="fetch failed")
    if not is_success(status):
        return Undetected(reason=f"HTTP {status}")

    result = classify(text, headers)
    if isinstance(result, Detected):
        logger.info("Detected %s for %s (%s)", result.preset.name, root_url, result.signal)
    return result


def merge_config(preset: Optional[BlueprintPreset], explicit: Optional[CrawlConfig]) -> CrawlConfig:
    """Combine a detected preset with the site's own configuration.

    Explicitly set fields win field by field. Rules are unioned on their
    (field, value) key, explicit rules first.
    """
    explicit = explicit or CrawlConfig()
    if preset is None:
        return CrawlConfig.from_dict(explicit.to_dict())

    rules: List[ExtractionRule] = []
    seen = set()
    for rule in list(explicit.rules) + list(preset.rules):
        if rule.key in seen:
            continue
        seen.add(rule.key)
        rules.append(rule)

    def pick(value, fallback):
        return value if value is not None else fallback

    return CrawlConfig(
        max_pages=pick(explicit.max_pages, preset.max_pages),
        priority_patterns=list(pick(explicit.priority_patterns, preset.priority_patterns)),
        exclude_patterns=list(pick(explicit.exclude_patterns, preset.exclude_patterns)),
        feed_url=pick(explicit.feed_url, preset.feed_url),
        rules=rules,
        auto_detect=explicit.auto_detect,
        preset=explicit.preset,
    )
