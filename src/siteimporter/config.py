from __future__ import annotations
import os
from dataclasses import dataclass, field, asdict
from typing import Optional

DATA_DIR = os.getenv("SITEIMPORTER_DATA", os.path.abspath("./data"))

# Database backend configuration
DATABASE_BACKEND = os.getenv("SITEIMPORTER_DB_BACKEND", "sqlite")  # "sqlite" or "postgresql"

# PostgreSQL configuration
POSTGRES_HOST = os.getenv("SITEIMPORTER_POSTGRES_HOST", "localhost")
POSTGRES_PORT = int(os.getenv("SITEIMPORTER_POSTGRES_PORT", "5432"))
POSTGRES_USER = os.getenv("SITEIMPORTER_POSTGRES_USER", "importer")
POSTGRES_PASSWORD = os.getenv("SITEIMPORTER_POSTGRES_PASSWORD", "")

# Used when a site record carries no explicit value and no blueprint supplies one
DEFAULT_MAX_PAGES = int(os.getenv("SITEIMPORTER_MAX_PAGES", "1000"))
DEFAULT_PRIORITY_PATTERNS = ["/products/"]
DEFAULT_EXCLUDE_PATTERNS = ["/tagged/", "/search", "sort_by="]

USER_AGENT = "SiteImporter/1.0"


@dataclass
class HttpConfig:
    user_agent: str = os.getenv("SITEIMPORTER_UA", USER_AGENT)
    timeout: int = int(os.getenv("SITEIMPORTER_TIMEOUT", "10"))
    feed_timeout: int = int(os.getenv("SITEIMPORTER_FEED_TIMEOUT", "15"))
    delay_between_requests: float = float(os.getenv("SITEIMPORTER_DELAY", "0.2"))
    http_backend: str = os.getenv("SITEIMPORTER_HTTP_BACKEND", "httpx")  # "httpx" or "aiohttp"
    enable_http2: bool = os.getenv("SITEIMPORTER_HTTP2", "1") == "1"
    skip_sitemaps: bool = os.getenv("SITEIMPORTER_SKIP_SITEMAPS", "0") == "1"

    def __post_init__(self):
        self.http_backend = (self.http_backend or "httpx").lower()


@dataclass
class ExtractionRule:
    """One selector rule understood by the metadata extractor.

    ``action`` is ``setType``, ``setField`` or ``setConst``. A rule applies when
    its ``selector`` matches the document and/or its ``url_pattern`` regex
    matches the page path.
    """
    action: str
    value: str
    selector: str = ""
    url_pattern: str = ""

    @property
    def field(self) -> str:
        if self.action == "setType":
            return "type"
        if self.action == "setConst":
            return self.value.split(":", 1)[0]
        return self.value

    @property
    def key(self) -> tuple[str, str]:
        return self.field, self.value

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractionRule":
        return cls(
            action=data.get("action", ""),
            value=data.get("value", ""),
            selector=data.get("selector", "") or "",
            url_pattern=data.get("url_pattern", data.get("urlPattern", "")) or "",
        )


@dataclass
class CrawlConfig:
    """Per-site crawl configuration.

    ``None`` means "not set": a detected blueprint may fill it in, and
    ``with_defaults`` supplies the generic fallback afterwards.
    """
    max_pages: Optional[int] = None
    priority_patterns: Optional[list[str]] = None
    exclude_patterns: Optional[list[str]] = None
    feed_url: Optional[str] = None
    rules: list[ExtractionRule] = field(default_factory=list)
    auto_detect: bool = True
    preset: Optional[str] = None  # chosen blueprint key; skips detection

    def with_defaults(self) -> "CrawlConfig":
        return CrawlConfig(
            max_pages=self.max_pages if self.max_pages is not None else DEFAULT_MAX_PAGES,
            priority_patterns=list(self.priority_patterns if self.priority_patterns is not None else DEFAULT_PRIORITY_PATTERNS),
            exclude_patterns=list(self.exclude_patterns if self.exclude_patterns is not None else DEFAULT_EXCLUDE_PATTERNS),
            feed_url=self.feed_url,
            rules=list(self.rules),
            auto_detect=self.auto_detect,
            preset=self.preset,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CrawlConfig":
        """Build from a stored/caller-supplied dict; accepts camelCase keys too."""
        data = data or {}

        def pick(snake: str, camel: str):
            return data.get(snake, data.get(camel))

        max_pages = pick("max_pages", "maxPages")
        auto_detect = pick("auto_detect", "autoDetect")
        return cls(
            max_pages=int(max_pages) if max_pages is not None else None,
            priority_patterns=pick("priority_patterns", "priorityPatterns"),
            exclude_patterns=pick("exclude_patterns", "excludePatterns"),
            feed_url=pick("feed_url", "feedUrl") or None,
            rules=[r if isinstance(r, ExtractionRule) else ExtractionRule.from_dict(r) for r in (data.get("rules") or [])],
            auto_detect=True if auto_detect is None else bool(auto_detect),
            preset=data.get("preset") or None,
        )


def get_tenant_db_name(tenant_key: str) -> str:
    """Create a safe database name from a tenant key."""
    safe_name = tenant_key.lower().replace('.', '_').replace('-', '_')
    safe_name = ''.join(c if c.isalnum() or c == '_' else '_' for c in safe_name)
    return safe_name or "default"


def get_tenant_db_path(tenant_key: str, data_dir: str = None) -> str:
    """SQLite file holding one tenant's import data."""
    data_dir = data_dir or DATA_DIR
    os.makedirs(data_dir, exist_ok=True)
    return os.path.join(data_dir, f"{get_tenant_db_name(tenant_key)}_import.db")
