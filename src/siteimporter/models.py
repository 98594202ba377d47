from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from .config import CrawlConfig
from .state import SiteStatus

TITLE_MAX_LENGTH = 255


class ItemType(Enum):
    PAGE = "page"
    PRODUCT = "product"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "ItemType":
        return cls.PRODUCT if value == cls.PRODUCT.value else cls.PAGE


@dataclass
class ImportedSite:
    """One crawl job."""
    id: int
    root_url: str
    status: SiteStatus = SiteStatus.PENDING
    page_count: int = 0
    config: CrawlConfig = field(default_factory=CrawlConfig)
    platform: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0


@dataclass
class StagedItem:
    """One fetched page or feed product, keyed by (site_id, url)."""
    site_id: int
    url: str
    title: str = ""
    item_type: ItemType = ItemType.PAGE
    raw_html: Optional[str] = None
    structural_hash: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: str = "completed"
    created_at: int = 0
    updated_at: int = 0

    def __post_init__(self):
        self.title = str(self.title or "").strip()[:TITLE_MAX_LENGTH]
