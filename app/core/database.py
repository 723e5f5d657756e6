from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from app.config import settings

logger = logging.getLogger(__name__)


def build_engine(
    database_url: str,
    *,
    pool_min_size: int | None = None,
    pool_max_size: int | None = None,
) -> Engine:
    """Create a synchronous SQLAlchemy engine from DATABASE_URL."""
    parsed_url = make_url(database_url)
    sync_url, connect_args, drivername = coerce_sync_database_url(parsed_url)
    engine_kwargs: dict[str, Any] = {"echo": settings.debug, "connect_args": connect_args}
    if drivername.startswith("sqlite"):
        if parsed_url.database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        pool_min = max(pool_min_size or settings.db_pool_min_size, 1)
        pool_max = max(pool_max_size or settings.db_pool_max_size, pool_min)
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = pool_min
        engine_kwargs["max_overflow"] = max(pool_max - pool_min, 0)
    engine = create_engine(sync_url, **engine_kwargs)
    logger.info("database.engine.initialized", extra={"backend": resolve_backend_tag(parsed_url, drivername)})
    return engine


def coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Convert async connection strings into sync SQLAlchemy URLs."""
    drivername = url.drivername
    connect_args: dict[str, Any] = {}
    if drivername.endswith("+asyncpg") or drivername.endswith("+psycopg"):
        drivername = drivername.rsplit("+", 1)[0] + "+psycopg2"
    elif drivername.endswith("+aiosqlite"):
        drivername = "sqlite"
    sync_url = url.set(drivername=drivername)

    query = dict(sync_url.query) if sync_url.query else {}
    removed_ssl = query.pop("ssl", None) is not None
    sync_url = sync_url.set(query=query)

    host = (url.host or "").lower()
    if drivername.startswith("postgresql") and "sslmode" not in query and (removed_ssl or "supabase.co" in host):
        connect_args["sslmode"] = "require"
    if drivername.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return sync_url.render_as_string(hide_password=False), connect_args, drivername


def resolve_backend_tag(url: URL, drivername: str) -> str:
    if "supabase.co" in (url.host or "").lower():
        return "supabase"
    if drivername.startswith("sqlite"):
        return "sqlite"
    return "postgres"


def check_database_health(engine: Engine) -> bool:
    """Return True when a trivial query succeeds."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
