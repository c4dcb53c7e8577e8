from __future__ import annotations
from typing import AsyncIterator
from contextlib import asynccontextmanager
from logging import getLogger
from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, async_sessionmaker
from sqlalchemy.ext.asyncio.session import AsyncSession
from graphql_service.interfaces.schemas import PersistedQueryRecord
from graphql_service.pipeline.errors import StoreUnavailableError


logger = getLogger(__name__)


# -------------------------------------------------------------------------------------------
# BASE ADAPTER
# -------------------------------------------------------------------------------------------
class DatabaseAdapter:
    engine: AsyncEngine
    connection_uri: str

    def __init__(
        self, connection_uri="", pool_size=4, max_overflow=64, echo=False, **kwargs
    ):
        self.connection_uri = connection_uri
        if not connection_uri.startswith("sqlite"):
            kwargs.update(pool_size=pool_size, max_overflow=max_overflow)
        self.engine = create_async_engine(
            self.connection_uri,
            echo=echo,
            future=True,
            **kwargs,
        )
        self.sessionmaker = self.asyncSessionGenerator()

    def asyncSessionGenerator(self):
        return async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def getSession(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def create_tables(self, metadata: MetaData) -> None:
        async with self.engine.begin() as connection:
            await connection.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def persisted_query_table(metadata: MetaData, name: str = "graphql_query") -> Table:
    # The primary key on the hash makes create-if-absent atomic across workers
    return Table(
        name,
        metadata,
        Column("id", String(128), primary_key=True),
        Column("query_text", Text, nullable=False),
        Column("label", String(255), nullable=False, default=""),
        Column("created_at", DateTime(timezone=True), nullable=False),
    )


class DatabasePersistedQueryBackend:
    def __init__(self, adapter: DatabaseAdapter, table_name: str = "graphql_query"):
        self.adapter = adapter
        self.metadata = MetaData()
        self.table = persisted_query_table(self.metadata, table_name)

    async def create_tables(self) -> None:
        try:
            await self.adapter.create_tables(self.metadata)
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"Unable to create {self.table.name}: {e}") from e

    async def get(self, query_id: str) -> PersistedQueryRecord | None:
        query = select(self.table).where(self.table.c.id == query_id)
        try:
            async with self.adapter.getSession() as session:
                result = await session.execute(query)
                row = result.mappings().one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(str(e)) from e
        return PersistedQueryRecord(**row) if row is not None else None

    async def create_if_absent(self, record: PersistedQueryRecord) -> bool:
        statement = insert(self.table).values(**record.model_dump())
        try:
            async with self.adapter.getSession() as session:
                await session.execute(statement)
        except IntegrityError:
            logger.debug("persisted query already stored id=%s", record.id)
            return False
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(str(e)) from e
        return True
