"""
Persistence for imported sites and staged items.

Every operation takes the tenant scope explicitly and opens its own
connection from it; nothing here reads process-wide database settings.
"""

from __future__ import annotations
import json
import time
from typing import TYPE_CHECKING, Dict, List, Optional
from .config import CrawlConfig
from .hashing import FEED_ITEM_HASH
from .models import ImportedSite, ItemType, StagedItem
from .schema import get_schema_statements
from .state import SiteStatus, allowed_sources

if TYPE_CHECKING:
    from .context import TenantScope

SITE_COLUMNS = "id, root_url, status, page_count, config_json, platform, created_at, updated_at"
ITEM_COLUMNS = ("site_id, url, title, item_type, raw_html, structural_hash, metadata_json, status, "
                "created_at, updated_at")


def _now() -> int:
    return int(time.time())


def _row_to_site(row) -> ImportedSite:
    return ImportedSite(
        id=row[0],
        root_url=row[1],
        status=SiteStatus(row[2]),
        page_count=row[3],
        config=CrawlConfig.from_dict(json.loads(row[4]) if row[4] else {}),
        platform=row[5],
        created_at=row[6],
        updated_at=row[7],
    )


def _row_to_item(row) -> StagedItem:
    return StagedItem(
        site_id=row[0],
        url=row[1],
        title=row[2] or "",
        item_type=ItemType.from_value(row[3]),
        raw_html=row[4],
        structural_hash=row[5],
        metadata=json.loads(row[6]) if row[6] else {},
        status=row[7],
        created_at=row[8],
        updated_at=row[9],
    )


async def init_schema(scope: "TenantScope"):
    """Create the import tables for this tenant if they do not exist yet."""
    async with scope.connect() as conn:
        for stmt in get_schema_statements(scope.backend):
            await conn.execute(stmt)
        await conn.commit()

# ------------------ imported sites ------------------

async def create_site(scope: "TenantScope", root_url: str, config: Optional[CrawlConfig] = None) -> int:
    """Insert a new site in `pending` state and return its id."""
    now = _now()
    config_json = json.dumps((config or CrawlConfig()).to_dict())
    async with scope.connect() as conn:
        rows = await conn.fetchall(
            "INSERT INTO imported_sites (root_url, status, page_count, config_json, created_at, updated_at) "
            "VALUES (?, ?, 0, ?, ?, ?) RETURNING id",
            root_url, SiteStatus.PENDING.value, config_json, now, now
        )
        await conn.commit()
    return rows[0][0]


async def get_site(scope: "TenantScope", site_id: int) -> Optional[ImportedSite]:
    async with scope.connect() as conn:
        row = await conn.fetchone(f"SELECT {SITE_COLUMNS} FROM imported_sites WHERE id = ?", site_id)
    return _row_to_site(row) if row else None


async def get_site_status(scope: "TenantScope", site_id: int) -> Optional[SiteStatus]:
    async with scope.connect() as conn:
        row = await conn.fetchone("SELECT status FROM imported_sites WHERE id = ?", site_id)
    return SiteStatus(row[0]) if row else None


async def transition_site(scope: "TenantScope", site_id: int, target: SiteStatus) -> bool:
    """Move the site to `target` if its current status allows it.

    The check and the write are one conditional UPDATE, so a status written
    concurrently by someone else (typically `cancelled`) is never overwritten.
    Returns whether the transition happened.
    """
    sources = sorted(s.value for s in allowed_sources(target))
    placeholders = ", ".join("?" for _ in sources)
    async with scope.connect() as conn:
        rows = await conn.fetchall(
            f"UPDATE imported_sites SET status = ?, updated_at = ? "
            f"WHERE id = ? AND status IN ({placeholders}) RETURNING id",
            target.value, _now(), site_id, *sources
        )
        await conn.commit()
    return bool(rows)


async def save_site_config(scope: "TenantScope", site_id: int, config: CrawlConfig, platform: Optional[str]):
    """Persist the effective (detected + explicit) configuration of a run."""
    async with scope.connect() as conn:
        await conn.execute(
            "UPDATE imported_sites SET config_json = ?, platform = ?, updated_at = ? WHERE id = ?",
            json.dumps(config.to_dict()), platform, _now(), site_id
        )
        await conn.commit()


async def refresh_page_count(scope: "TenantScope", site_id: int) -> int:
    """Set page_count to the number of staged items persisted for the site."""
    async with scope.connect() as conn:
        row = await conn.fetchone("SELECT COUNT(*) FROM staged_items WHERE site_id = ?", site_id)
        count = row[0]
        await conn.execute(
            "UPDATE imported_sites SET page_count = ?, updated_at = ? WHERE id = ?",
            count, _now(), site_id
        )
        await conn.commit()
    return count


async def reset_site(scope: "TenantScope", site_id: int) -> bool:
    """Drop a finished site's staged items and put it back to `pending` for a fresh run."""
    sources = sorted(s.value for s in allowed_sources(SiteStatus.PENDING))
    placeholders = ", ".join("?" for _ in sources)
    async with scope.connect() as conn:
        rows = await conn.fetchall(
            f"UPDATE imported_sites SET status = ?, page_count = 0, updated_at = ? "
            f"WHERE id = ? AND status IN ({placeholders}) RETURNING id",
            SiteStatus.PENDING.value, _now(), site_id, *sources
        )
        if rows:
            await conn.execute("DELETE FROM staged_items WHERE site_id = ?", site_id)
        await conn.commit()
    return bool(rows)

# ------------------ staged items ------------------

async def upsert_staged_item(scope: "TenantScope", item: StagedItem):
    """Insert or update the item stored under (site_id, url)."""
    now = _now()
    async with scope.connect() as conn:
        await conn.execute(
            f"INSERT INTO staged_items ({ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (site_id, url) DO UPDATE SET "
            "title = excluded.title, item_type = excluded.item_type, raw_html = excluded.raw_html, "
            "structural_hash = excluded.structural_hash, metadata_json = excluded.metadata_json, "
            "status = excluded.status, updated_at = excluded.updated_at",
            item.site_id, item.url, item.title, item.item_type.value, item.raw_html,
            item.structural_hash, json.dumps(item.metadata, default=str), item.status, now, now
        )
        await conn.commit()


async def get_staged_item(scope: "TenantScope", site_id: int, url: str) -> Optional[StagedItem]:
    async with scope.connect() as conn:
        row = await conn.fetchone(
            f"SELECT {ITEM_COLUMNS} FROM staged_items WHERE site_id = ? AND url = ?", site_id, url
        )
    return _row_to_item(row) if row else None


async def list_staged_items(scope: "TenantScope", site_id: int) -> List[StagedItem]:
    async with scope.connect() as conn:
        rows = await conn.fetchall(
            f"SELECT {ITEM_COLUMNS} FROM staged_items WHERE site_id = ? ORDER BY id", site_id
        )
    return [_row_to_item(row) for row in rows]


async def count_staged_items(scope: "TenantScope", site_id: int) -> int:
    async with scope.connect() as conn:
        row = await conn.fetchone("SELECT COUNT(*) FROM staged_items WHERE site_id = ?", site_id)
    return row[0]


async def structural_groups(scope: "TenantScope", site_id: int) -> Dict[str, int]:
    """Page count per structural hash (feed items excluded), largest template family first."""
    async with scope.connect() as conn:
        rows = await conn.fetchall(
            "SELECT structural_hash, COUNT(*) AS pages FROM staged_items "
            "WHERE site_id = ? AND structural_hash IS NOT NULL AND structural_hash <> ? "
            "GROUP BY structural_hash ORDER BY pages DESC, structural_hash",
            site_id, FEED_ITEM_HASH
        )
    return {row[0]: row[1] for row in rows}
