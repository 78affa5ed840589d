"""
Async engine and session factory.

One engine per process. Celery tasks run each job on a fresh event loop and
dispose the pool afterwards (see ``infrastructure.tasks.utils.run_async``).
"""
from typing import Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.config import DatabaseSettings, settings
from infrastructure.models import Base


ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _build_async_url(database_url: str) -> str:
    """Swap a bare ``postgresql://`` or ``sqlite://`` URL onto its async driver"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    if url.drivername not in ASYNC_DRIVERS:
        raise ValueError(f"Unsupported database driver: {url.drivername}; use an async driver URL")
    return url.set(drivername=ASYNC_DRIVERS[url.drivername]).render_as_string(hide_password=False)


def engine_options(url: URL, cfg: DatabaseSettings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": cfg.echo, "pool_pre_ping": True}
    if url.get_backend_name() != "sqlite":
        options.update(
            pool_size=cfg.pool_size,
            max_overflow=cfg.max_overflow,
            pool_recycle=cfg.pool_recycle,
        )
    return options


_url = make_url(_build_async_url(settings.database.url))
engine = create_async_engine(_url, **engine_options(_url, settings.database))

AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables() -> None:
    """DEBUG start-up only; deployed databases are migrated with alembic"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

