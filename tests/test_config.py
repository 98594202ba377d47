import pytest
from src.siteimporter.config import (
    DEFAULT_EXCLUDE_PATTERNS, DEFAULT_MAX_PAGES, DEFAULT_PRIORITY_PATTERNS, CrawlConfig, ExtractionRule, HttpConfig,
    get_tenant_db_name,
)
from src.siteimporter.fetch import fetch, is_success


class TestCrawlConfig:
    def test_from_camel_case(self):
        config = CrawlConfig.from_dict({
            "maxPages": "50",
            "priorityPatterns": ["/p/"],
            "feedUrl": "/products.json",
            "autoDetect": False,
            "preset": "blog",
            "rules": [{"selector": ".sku", "action": "setField", "value": "sku", "urlPattern": "^/p/"}],
        })
        assert config.max_pages == 50
        assert config.priority_patterns == ["/p/"]
        assert config.exclude_patterns is None
        assert config.feed_url == "/products.json"
        assert config.auto_detect is False
        assert config.preset == "blog"
        assert config.rules == [ExtractionRule(action="setField", value="sku", selector=".sku", url_pattern="^/p/")]

    def test_round_trip(self):
        config = CrawlConfig(max_pages=3, rules=[ExtractionRule(action="setType", value="product", selector="x")])
        assert CrawlConfig.from_dict(config.to_dict()) == config
        assert CrawlConfig.from_dict(None) == CrawlConfig()

    def test_defaults_fill_unset_fields_only(self):
        config = CrawlConfig(exclude_patterns=[]).with_defaults()
        assert config.max_pages == DEFAULT_MAX_PAGES
        assert config.priority_patterns == DEFAULT_PRIORITY_PATTERNS
        assert config.exclude_patterns == []
        assert CrawlConfig().with_defaults().exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
        assert CrawlConfig(preset="blog").with_defaults().preset == "blog"


@pytest.mark.parametrize("rule,key", [
    (ExtractionRule(action="setType", value="product"), ("type", "product")),
    (ExtractionRule(action="setField", value="sku"), ("sku", "sku")),
    (ExtractionRule(action="setConst", value="vendor:Acme"), ("vendor", "vendor:Acme")),
])
def test_rule_key(rule, key):
    assert rule.key == key


def test_tenant_db_name():
    assert get_tenant_db_name("Shop-One.example.com") == "shop_one_example_com"
    assert get_tenant_db_name("a b/c") == "a_b_c"
    assert get_tenant_db_name("") == "default"


def test_is_success():
    assert is_success(200)
    assert is_success(304)
    assert not is_success(0)
    assert not is_success(404)


@pytest.mark.asyncio
async def test_unknown_http_backend():
    with pytest.raises(ValueError):
        await fetch("https://example.com/", HttpConfig(http_backend="curl"))
