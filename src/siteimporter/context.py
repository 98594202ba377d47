"""
Tenant scoping for import jobs.

Every store call takes a ``TenantScope`` argument instead of reading ambient
state, so interleaved jobs for different tenants can never pick up each
other's database, whatever the task scheduling looks like.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar
from . import config as settings
from .database import Connection, TenantDatabase
from .store import init_schema

T = TypeVar("T")


@dataclass(frozen=True)
class TenantScope:
    tenant_key: str
    db: TenantDatabase

    def connect(self) -> Connection:
        """Async context manager yielding a connection to this tenant's database."""
        return self.db.connect()

    @property
    def backend(self) -> str:
        return self.db.backend


def scope_for_tenant(tenant_key: str, backend: str = None, data_dir: str = None) -> TenantScope:
    """Each tenant gets its own database: a SQLite file, or a PostgreSQL database."""
    backend = backend or settings.DATABASE_BACKEND
    if backend == "postgresql":
        db = TenantDatabase(
            backend="postgresql",
            postgres_host=settings.POSTGRES_HOST,
            postgres_port=settings.POSTGRES_PORT,
            postgres_database=f"{settings.get_tenant_db_name(tenant_key)}_import",
            postgres_user=settings.POSTGRES_USER,
            postgres_password=settings.POSTGRES_PASSWORD,
        )
    elif backend == "sqlite":
        db = TenantDatabase(backend="sqlite", sqlite_path=settings.get_tenant_db_path(tenant_key, data_dir))
    else:
        raise ValueError(f"Unsupported database backend: {backend}")
    return TenantScope(tenant_key=tenant_key, db=db)


async def run_scoped(tenant_key: str, fn: Callable[..., Awaitable[T]], *args: Any,
                     backend: str = None, data_dir: str = None, **kwargs: Any) -> T:
    """Run ``fn(scope, *args, **kwargs)`` against the tenant's (initialized) database."""
    scope = scope_for_tenant(tenant_key, backend=backend, data_dir=data_dir)
    await init_schema(scope)
    return await fn(scope, *args, **kwargs)


class JobLogAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[{self.extra['tenant']}/{self.extra['site_id']}] {msg}", kwargs


def job_logger(scope: TenantScope, site_id: int, name: str = "siteimporter.job") -> JobLogAdapter:
    return JobLogAdapter(logging.getLogger(name), {"tenant": scope.tenant_key, "site_id": site_id})
