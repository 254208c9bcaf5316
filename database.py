import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

# Table classes must be registered on the metadata before create_all
import models  # noqa: F401

logger = logging.getLogger(__name__)


class Database:
    """Storage client owning the async engine and the session factory.

    Constructed explicitly and passed to every operation. ``open`` on
    startup, ``close`` on shutdown.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def open(self, reset: bool = False) -> None:
        self._engine = create_async_engine(self.url, echo=self.echo, future=True)
        self._sessionmaker = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        async with self._engine.begin() as conn:
            if reset:
                # Development bootstrap only: wipes every slot and booking
                logger.warning("Dropping all tables before startup")
                await conn.run_sync(SQLModel.metadata.drop_all)
            # This creates the tables if they don't exist
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Connected to database (%s)", self.dialect_name)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database connection closed")
        self._engine = None
        self._sessionmaker = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not open")
        async with self._sessionmaker() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside one transaction: commit on exit, rollback on any error."""
        async with self.session() as session:
            async with session.begin():
                yield session
