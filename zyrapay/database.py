"""
Database Configuration and Session Management

This module handles SQLAlchemy setup for the central registry database
(tenants and their domains). Per-tenant databases are managed by
zyrapay.tenancy and use the separate TenantBase metadata declared here.

NOTE: The two metadata objects are never created in the same database.
Base tables live in the central registry, TenantBase tables live in
every tenant database.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool
from zyrapay.config import get_settings
import logging

logger = logging.getLogger(__name__)

settings = get_settings()


def _on_connect(dbapi_connection, connection_record):
    """Set connection-level configuration on new connections."""
    cursor = dbapi_connection.cursor()
    module = type(dbapi_connection).__module__
    if module.startswith("sqlite3"):
        # Domain rows rely on ON DELETE CASCADE
        cursor.execute("PRAGMA foreign_keys=ON")
    elif module.startswith("psycopg2"):
        cursor.execute("SET TIME ZONE 'UTC'")
    cursor.close()
    logger.debug("New database connection established")


def create_database_engine(
    url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
) -> Engine:
    """
    Create an engine with the connection setup shared by central and tenant databases.

    SQLite connections are shared across the request threadpool, so
    same-thread checking is disabled for them.
    """
    connect_args = {}
    if make_url(url).get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False

    new_engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,  # Verify connections before using (handles stale connections)
        echo=echo,
        connect_args=connect_args,
    )
    event.listen(new_engine, "connect", _on_connect)
    return new_engine


# Central registry engine
engine = create_database_engine(
    settings.DATABASE_URL,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    echo=settings.DEBUG,
)

# Session factory
# expire_on_commit=False so tenant attributes stay readable after the
# registration commit without another round trip.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False
)

# Central registry models
Base = declarative_base()

# Models created inside every tenant database
TenantBase = declarative_base()


def get_db() -> Session:
    """
    Dependency function that provides a central registry session.

    The session is automatically closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None):
    """
    Initialize central registry tables.

    In production, you'd use Alembic migrations instead.
    """
    logger.warning("init_db() called - use Alembic migrations in production!")
    Base.metadata.create_all(bind=bind or engine)
