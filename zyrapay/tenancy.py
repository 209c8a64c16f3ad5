"""
Tenant Database Management

Every tenant gets its own database. This module creates and drops those
databases and hands out sessions bound to them.

Naming: <TENANT_DATABASE_PREFIX><tenant_id><TENANT_DATABASE_SUFFIX>
- SQLite: a file in TENANT_DATABASE_DIR
- PostgreSQL/MySQL: a database on the same server as the central registry

NOTE: A tenant session is a separate transaction from the central
registry session. Committing one says nothing about the other, so callers
that need both to succeed must compensate themselves (see
zyrapay.services.registration).
"""
from contextlib import contextmanager
from typing import Dict, Iterator
import logging
import os
import threading

from sqlalchemy import text
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import Session, sessionmaker

from zyrapay.config import Settings
from zyrapay.database import TenantBase, create_database_engine

logger = logging.getLogger(__name__)


class TenantDatabaseManager:
    """Creates, drops and connects to per-tenant databases."""

    def __init__(self, settings: Settings, central_engine: Engine):
        self.settings = settings
        self.central_engine = central_engine
        self._central_url = make_url(settings.DATABASE_URL)
        self._engines: Dict[str, Engine] = {}
        self._lock = threading.Lock()

    @property
    def is_sqlite(self) -> bool:
        return self._central_url.get_backend_name() == "sqlite"

    def database_name(self, tenant_id: str) -> str:
        return f"{self.settings.TENANT_DATABASE_PREFIX}{tenant_id}{self.settings.TENANT_DATABASE_SUFFIX}"

    def database_path(self, tenant_id: str) -> str:
        """SQLite file path for a tenant database."""
        return os.path.join(self.settings.TENANT_DATABASE_DIR, f"{self.database_name(tenant_id)}.sqlite")

    def database_url(self, tenant_id: str) -> URL:
        if self.is_sqlite:
            return self._central_url.set(database=self.database_path(tenant_id))
        return self._central_url.set(database=self.database_name(tenant_id))

    def engine_for(self, tenant_id: str) -> Engine:
        with self._lock:
            tenant_engine = self._engines.get(tenant_id)
            if tenant_engine is None:
                tenant_engine = create_database_engine(
                    self.database_url(tenant_id).render_as_string(hide_password=False),
                    pool_size=2,
                    max_overflow=5,
                    echo=self.settings.DEBUG,
                )
                self._engines[tenant_id] = tenant_engine
            return tenant_engine

    def create_database(self, tenant_id: str) -> None:
        """
        Create the tenant database and its tables.

        Raises whatever the driver raises if the database already exists.
        """
        name = self.database_name(tenant_id)

        if self.is_sqlite:
            path = self.database_path(tenant_id)
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            if os.path.exists(path):
                raise FileExistsError(f"Tenant database already exists: {path}")
        else:
            quoted = self.central_engine.dialect.identifier_preparer.quote(name)
            with self.central_engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
                conn.execute(text(f"CREATE DATABASE {quoted}"))

        TenantBase.metadata.create_all(bind=self.engine_for(tenant_id))
        logger.info(f"Created tenant database {name}", extra={"tenant_id": tenant_id})

    def release(self, tenant_id: str) -> None:
        """Dispose the cached engine for a tenant and close its pooled connections."""
        with self._lock:
            tenant_engine = self._engines.pop(tenant_id, None)
        if tenant_engine is not None:
            tenant_engine.dispose()

    def drop_database(self, tenant_id: str) -> None:
        """Drop the tenant database. Missing databases are ignored."""
        name = self.database_name(tenant_id)
        self.release(tenant_id)

        if self.is_sqlite:
            path = self.database_path(tenant_id)
            if os.path.exists(path):
                os.remove(path)
        else:
            quoted = self.central_engine.dialect.identifier_preparer.quote(name)
            with self.central_engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
                conn.execute(text(f"DROP DATABASE IF EXISTS {quoted}"))

        logger.info(f"Dropped tenant database {name}", extra={"tenant_id": tenant_id})

    @contextmanager
    def session(self, tenant_id: str) -> Iterator[Session]:
        """
        Run work inside a tenant database.

        Commits when the block exits cleanly, rolls back and re-raises otherwise.
        """
        factory = sessionmaker(
            bind=self.engine_for(tenant_id),
            autoflush=False,
            expire_on_commit=False,
        )
        db = factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        """Dispose all cached tenant engines."""
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for tenant_engine in engines:
            tenant_engine.dispose()
