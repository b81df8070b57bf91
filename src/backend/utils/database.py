from fastapi import HTTPException
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
import logging

from src.backend.config import settings
from src.backend.utils.exceptions import StaleRecord

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    # SQLite (dev/tests) has no server pool or connect timeout
    if url.startswith("sqlite"):
        return {"echo": settings.DB_ECHO}
    return {
        "echo": settings.DB_ECHO,  # Logs all SQL queries if True
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "connect_args": {"timeout": settings.DB_TIMEOUT},
        "pool_pre_ping": True,  # Ensures the connections are valid before using them
    }


# Create the asynchronous engine with connection pooling and timeout handling
try:
    engine = create_async_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
except SQLAlchemyError as e:
    logger.error(f"Error creating database engine: {e}")
    raise Exception(f"Database connection failed: {e}")

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,  # Don't expire objects after commit
)

# Base class for SQLAlchemy ORM models
Base = declarative_base()


async def create_all_tables() -> None:
    """Create missing tables (dev convenience; production runs migrations)."""
    # registers every model on Base.metadata
    import src.backend.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Dependency to retrieve a database session in FastAPI
# Ensures the session is properly closed after use
async def get_db():
    try:
        async with AsyncSessionLocal() as session:
            yield session
    except SQLAlchemyError as e:
        logger.error(f"Error: while interacting with the database: {e}")
        raise HTTPException(status_code=500, detail="Database operation failed")


async def commit_versioned(db: AsyncSession) -> None:
    """Commit rows guarded by a version column; a lost race becomes StaleRecord (409)."""
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise StaleRecord()
    except IntegrityError:
        await db.rollback()
        raise
