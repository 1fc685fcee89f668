"""
Database configuration and session management
"""

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import JSON, Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
import structlog

logger = structlog.get_logger(__name__)


def normalize_database_url(url: str) -> str:
    """Force the async driver for plain postgres URLs"""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class Database:
    """Owns the async engine and session factory for one application instance"""

    def __init__(self, url: str, echo: bool = False):
        self.url = normalize_database_url(url)
        engine_kwargs = {"echo": echo, "future": True}

        if self.url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            # In-memory databases only live as long as their single connection
            if self.url in ("sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_async_engine(self.url, **engine_kwargs)
        self.session_maker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create tables that do not exist yet"""
        # Registers every table on SQLModel.metadata
        import member_directory.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database tables created")

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")

def dialect_insert(session: AsyncSession, table: Table):
    """Return an INSERT construct that supports ON CONFLICT for the bound dialect"""
    dialect_name = session.bind.dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported on dialect {dialect_name}")


# JSONB on PostgreSQL so custom field maps can be merged with ||
JSONType = JSON().with_variant(postgresql.JSONB(), "postgresql")
