"""
Default page metadata extractor.

Reads JSON-LD first, falls back to OpenGraph/meta tags, then lets the site's
selector rules override what was found. Any callable with the same
``(soup, rules, url) -> dict`` signature can replace it in the crawler.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit
from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError
from .config import ExtractionRule

logger = logging.getLogger(__name__)

ARTICLE_TYPES = {"Article", "BlogPosting", "NewsArticle", "WebPage"}
SETTABLE_FIELDS = {"price", "sku", "title", "description"}
NUMERIC_FIELDS = ("price", "compare_at_price", "cost", "inventory_quantity", "weight")
_NON_NUMERIC = re.compile(r"[^\d.]")


def _meta(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    return (tag.get("content") or "").strip() if tag else ""


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _image_urls(value: Any) -> List[str]:
    return [img.get("url", "") if isinstance(img, dict) else str(img) for img in _as_list(value)]


def _types(item: Dict[str, Any]) -> set:
    return set(_as_list(item.get("@type")))


def _json_ld_items(soup: BeautifulSoup) -> Iterable[Dict[str, Any]]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        for schema in _as_list(data):
            if not isinstance(schema, dict):
                continue
            for item in _as_list(schema.get("@graph", schema)):
                if isinstance(item, dict):
                    yield item


def _apply_json_ld(soup: BeautifulSoup, result: Dict[str, Any]):
    for item in _json_ld_items(soup):
        types = _types(item)
        if "Product" in types:
            result["type"] = "product"
            if item.get("name"):
                result["title"] = item["name"]
            if item.get("description"):
                result["description"] = item["description"]
            result["images"].extend(_image_urls(item.get("image")))
            if item.get("sku"):
                result["sku"] = item["sku"]
            offers = [o for o in _as_list(item.get("offers")) if isinstance(o, dict)]
            if offers:
                if offers[0].get("price"):
                    result["price"] = offers[0]["price"]
                result["variants"] = [{
                    "title": offer.get("name") or item.get("name") or "",
                    "price": _to_number(offer.get("price")) or 0,
                    "sku": offer.get("sku") or item.get("sku") or "",
                    "availability": 1 if "InStock" in str(offer.get("availability") or "") else 0,
                } for offer in offers]
        if types & ARTICLE_TYPES:
            if not result["title"]:
                result["title"] = item.get("headline") or item.get("name") or ""
            if not result["description"]:
                result["description"] = item.get("description") or item.get("articleBody") or ""
            if not result["images"]:
                result["images"].extend(_image_urls(item.get("image")))


def _apply_fallbacks(soup: BeautifulSoup, result: Dict[str, Any]):
    if not result["title"]:
        title = soup.title.get_text() if soup.title else ""
        result["title"] = _meta(soup, property="og:title") or title
    if not result["description"]:
        result["description"] = _meta(soup, property="og:description") or _meta(soup, name="description")
    if not result["images"]:
        og_image = _meta(soup, property="og:image")
        if og_image:
            result["images"].append(og_image)
    if not result["price"]:
        result["price"] = _meta(soup, property="og:price:amount") or _meta(soup, property="product:price:amount") or None
    if soup.find("product-card"):
        result["type"] = "product"


def _rule_matches_url(rule: ExtractionRule, url: str) -> Optional[bool]:
    try:
        path = urlsplit(url).path if url else ""
        return bool(re.search(rule.url_pattern, path))
    except (re.error, ValueError):
        return None


def _select(soup: BeautifulSoup, selector: str) -> Optional[List[Tag]]:
    try:
        return soup.select(selector)
    except (SelectorSyntaxError, ValueError, NotImplementedError):
        return None


def apply_rules(soup: BeautifulSoup, rules: Iterable[ExtractionRule], url: str, result: Dict[str, Any]):
    """Apply selector/url-pattern rules in order; later rules override earlier ones."""
    for rule in rules:
        if not rule.action or not (rule.selector or rule.url_pattern):
            continue
        if rule.url_pattern and not _rule_matches_url(rule, url):
            continue
        matches = None
        if rule.selector:
            matches = _select(soup, rule.selector)
            if not matches:
                continue

        if rule.action == "setType":
            result["type"] = rule.value
        elif rule.action == "setField":
            if rule.value in SETTABLE_FIELDS and matches:
                result[rule.value] = matches[0].get_text().strip()
        elif rule.action == "setConst":
            name, _, value = rule.value.partition(":")
            if name and value and name in result:
                result[name] = value
        else:
            logger.debug("Unknown rule action %r", rule.action)


def _to_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    cleaned = _NON_NUMERIC.sub("", str(value))
    try:
        return float(cleaned) if cleaned else None
    except ValueError:
        return None


def extract_metadata(soup: BeautifulSoup, rules: Optional[Iterable[ExtractionRule]] = None,
                     url: str = "") -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "title": "",
        "description": "",
        "images": [],
        "price": None,
        "sku": "",
        "canonical": "",
        "type": "page",
        "options": [],
        "variants": [],
    }

    canonical = soup.find("link", rel="canonical")
    if canonical and canonical.get("href"):
        result["canonical"] = canonical["href"].strip()

    _apply_json_ld(soup, result)
    _apply_fallbacks(soup, result)
    apply_rules(soup, rules or [], url, result)

    for name in NUMERIC_FIELDS:
        if result.get(name):
            result[name] = _to_number(result[name])

    result["title"] = str(result["title"] or "").strip()
    result["images"] = list(dict.fromkeys(img for img in result["images"] if img))
    return result
