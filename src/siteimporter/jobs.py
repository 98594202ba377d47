"""
Fire-and-forget job control for site imports.

Each running import is one asyncio task, registered under (tenant, site) so a
second start request for the same site gets the running task back instead of
a concurrent crawl.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Dict, Tuple
from .context import TenantScope
from .crawl import crawl_site
from .state import SiteStatus
from .store import reset_site, transition_site

logger = logging.getLogger(__name__)

JobKey = Tuple[str, int]

_jobs: Dict[JobKey, asyncio.Task] = {}


def _key(scope: TenantScope, site_id: int) -> JobKey:
    return scope.tenant_key, site_id


def start_crawl(scope: TenantScope, site_id: int, root_url: str, **kwargs) -> asyncio.Task:
    """Schedule ``crawl_site`` in the background and return its task.

    Must be called from a running event loop. Extra keyword arguments
    (``http_config``, ``fetcher``, ``extractor``) are passed through.
    """
    key = _key(scope, site_id)
    running = _jobs.get(key)
    if running is not None and not running.done():
        logger.info("Import for %s/%s already running", *key)
        return running

    task = asyncio.create_task(crawl_site(scope, site_id, root_url, **kwargs),
                               name=f"import-{scope.tenant_key}-{site_id}")
    _jobs[key] = task

    def _unregister(done: asyncio.Task):
        if _jobs.get(key) is done:
            del _jobs[key]

    task.add_done_callback(_unregister)
    return task


def active_jobs() -> Dict[JobKey, asyncio.Task]:
    return {key: task for key, task in _jobs.items() if not task.done()}


async def request_cancel(scope: TenantScope, site_id: int) -> bool:
    """Ask a running import to stop; it halts at its next loop iteration.

    Returns False if the site had already finished.
    """
    cancelled = await transition_site(scope, site_id, SiteStatus.CANCELLED)
    if cancelled:
        logger.info("Cancellation requested for %s/%s", scope.tenant_key, site_id)
    return cancelled


async def restart_crawl(scope: TenantScope, site_id: int, root_url: str, **kwargs) -> asyncio.Task:
    """Discard a finished import's staged items and run it again from scratch."""
    running = _jobs.get(_key(scope, site_id))
    if running is not None and not running.done():
        raise RuntimeError(f"Import for site {site_id} is still running")
    if not await reset_site(scope, site_id):
        raise ValueError(f"Site {site_id} is not in a finished state")
    return start_crawl(scope, site_id, root_url, **kwargs)
