"""Database connection helpers for catalog inspection.

This module centralizes resolution of the database URL and creation of a
SQLAlchemy Engine. Connections are acquired through `open_inspector`, a
scoped context manager that guarantees release on every exit path; the
connection handle is owned by the caller, never by the rules or the engine.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Mapping

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from zoneguard.core.adapters.postgres import PostgresCatalogAdapter
from zoneguard.core.errors import CatalogError

log = logging.getLogger(__name__)

DATABASE_URL_ENV = "ZONEGUARD_DATABASE_URL"
DEFAULT_DRIVER = "postgresql+psycopg"

# Local Supabase-style stack defaults.
_PART_DEFAULTS = {
    "DB_USER": "postgres",
    "DB_PASSWORD": "postgres",
    "DB_HOST": "localhost",
    "DB_NAME": "postgres",
    "DB_PORT": "54322",
}


def _compose_url(env: Mapping[str, str]) -> str:
    """Build a URL from the individual DB_* variables."""
    parts = {k: env.get(k) or default for k, default in _PART_DEFAULTS.items()}
    try:
        port = int(parts["DB_PORT"])
    except ValueError as exc:
        raise CatalogError(f"DB_PORT must be an integer, got {parts['DB_PORT']!r}") from exc
    url = URL.create(
        DEFAULT_DRIVER,
        username=parts["DB_USER"],
        password=parts["DB_PASSWORD"],
        host=parts["DB_HOST"],
        port=port,
        database=parts["DB_NAME"],
    )
    return url.render_as_string(hide_password=False)


def database_url(
    override: str | None = None, env: Mapping[str, str] | None = None
) -> str:
    """
    Resolve the database URL.

    Precedence: explicit override, then ZONEGUARD_DATABASE_URL, then a URL
    composed from DB_USER / DB_PASSWORD / DB_HOST / DB_NAME / DB_PORT.
    """
    env = os.environ if env is None else env
    if override:
        return override
    configured = env.get(DATABASE_URL_ENV)
    if configured:
        return configured
    return _compose_url(env)


def _redact(url: str) -> str:
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable url>"


def create_catalog_engine(url: str) -> Engine:
    """
    Create an Engine for catalog inspection.

    Raises:
        CatalogError: If the URL is malformed or does not target PostgreSQL.
    """
    try:
        parsed = make_url(url)
    except ArgumentError as exc:
        raise CatalogError(f"Invalid database URL: {exc}") from exc
    if not parsed.drivername.startswith("postgresql"):
        raise CatalogError(
            f"Catalog inspection requires PostgreSQL, got: {parsed.drivername}"
        )
    log.debug("Creating engine for %s", _redact(url))
    return create_engine(parsed, pool_pre_ping=True)


@contextmanager
def open_inspector(engine: Engine) -> Iterator[PostgresCatalogAdapter]:
    """
    Acquire a read-only connection and yield a catalog adapter bound to it.

    The connection is released when the block exits, whether it completes,
    raises a PolicyFailure, or is abandoned by an error.

    Raises:
        CatalogError: If a connection cannot be established.
    """
    try:
        conn = engine.connect().execution_options(postgresql_readonly=True)
    except SQLAlchemyError as exc:
        raise CatalogError(f"Could not connect to the database: {exc}") from exc
    try:
        yield PostgresCatalogAdapter(conn)
    finally:
        conn.close()
