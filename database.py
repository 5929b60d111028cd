"""
Database connection and session management.
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy import event
from config import DATABASE_URL, DB_POOL_SIZE
from models import Base
import logging

logger = logging.getLogger(__name__)


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable WAL mode and other SQLite optimizations."""
    cursor = dbapi_conn.cursor()
    # Enable WAL mode for better concurrency
    cursor.execute("PRAGMA journal_mode=WAL")
    # Enable foreign keys so bookings cascade to trips/payments/notifications
    cursor.execute("PRAGMA foreign_keys=ON")
    # Set synchronous mode to NORMAL (good balance between safety and performance)
    cursor.execute("PRAGMA synchronous=NORMAL")
    # Set busy timeout
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def build_engine(url: str = DATABASE_URL) -> AsyncEngine:
    """
    Create the async engine for the given URL.

    SQLite runs on a single pooled connection so writers never interleave;
    other backends get a regular pool.
    """
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=False,
            connect_args={
                "check_same_thread": False,  # SQLite-specific: allow multi-threaded access
                "timeout": 30.0,
            },
            pool_pre_ping=True,
            pool_size=1,
            max_overflow=0,
        )
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragma)
        logger.info("SQLite engine created with WAL mode and foreign keys enabled")
        return engine

    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=DB_POOL_SIZE,
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine):
    """
    Initialize database tables.
    Creates all tables defined in models if they don't exist; safe to run repeatedly.
    """
    try:
        logger.info("Initializing database tables...")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("✅ Database tables initialized successfully (created if not existed)")
    except Exception as e:
        logger.error(f"⚠️  Failed to initialize database: {e}")
        logger.error("Please check your DATABASE_URL in .env file")
        raise


async def close_db(engine: AsyncEngine):
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connection closed")
