"""Application context management for the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.engine import Engine

from zoneguard.core.connection import create_catalog_engine, database_url


@dataclass
class GateAppContext:
    """Application context holding the database URL and a lazily built engine."""

    database_url: str
    _engine: Engine | None = field(default=None, repr=False)

    @property
    def engine(self) -> Engine:
        """Return the shared Engine, creating it on first use.

        Raises:
            CatalogError: If the URL is invalid or not PostgreSQL.
        """
        if self._engine is None:
            self._engine = create_catalog_engine(self.database_url)
        return self._engine

    def close(self) -> None:
        """Dispose of pooled connections, if an engine was created."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


def build_gate_context(database_url_opt: str | None) -> GateAppContext:
    """Build and return the application context.

    Args:
        database_url_opt: Optional URL from --database-url / environment.

    Returns:
        GateAppContext: Context whose engine is created on first access.
    """
    return GateAppContext(database_url=database_url(database_url_opt))
