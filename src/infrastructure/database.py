import logging
from typing import Any, Dict, List, Mapping, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy import Table, Column, String, DateTime, MetaData, text, select, update, delete

from src.domain.exceptions import DatabaseException
from src.domain.models import RepositoryEntity

logger = logging.getLogger(__name__)

# SQLAlchemy core Table definition
metadata = MetaData()
repos_table = Table(
    'repositories', metadata,
    Column('id', String, primary_key=True),
    Column('repository_name', String, nullable=False, index=True),
    Column('repository_url', String, nullable=False),
    Column('repository_type', String, nullable=False, server_default=text("'primary'")),
    Column('open_issue_count', String, nullable=False, server_default=text("''")),
    Column('closed_issue_count', String, nullable=False, server_default=text("''")),
    Column('commit_count', String, nullable=False, server_default=text("''")),
    Column('stargazer_count', String, nullable=False, server_default=text("''")),
    Column('creation_date', String, nullable=False, server_default=text("''")),
    Column('license_info', String, nullable=False, server_default=text("''")),
    Column('latest_release', String, nullable=False, server_default=text("''")),
    Column('primary_language', String, nullable=False, server_default=text("''")),
    Column('original_codebase_size', String, nullable=False, server_default=text("''")),
    Column('library_codebase_size', String, nullable=False, server_default=text("''")),
    Column('updated_at', DateTime(timezone=True), server_default=text('NOW()')),
)

ENTITY_COLUMNS = tuple(RepositoryEntity.model_fields)
# Columns a merge may touch; the primary key and name are never rewritten by an update.
MUTABLE_COLUMNS = frozenset(ENTITY_COLUMNS) - {'id', 'repository_name'}


class PostgresRepository:
    """
    Repository class for interacting with the PostgreSQL research store.
    Every write is keyed by the record id and only touches the columns it names,
    so workers writing disjoint fields of the same record never clobber each other.
    """

    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url, echo=False)

    async def create_schema(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except SQLAlchemyError as e:
            raise DatabaseException(f"Could not create schema: {e}") from e

    async def dispose(self) -> None:
        await self.engine.dispose()

    @staticmethod
    def _to_entity(row: Mapping[str, Any]) -> RepositoryEntity:
        return RepositoryEntity(**{column: (row.get(column) or "") for column in ENTITY_COLUMNS})

    async def find_all(self) -> List[RepositoryEntity]:
        stmt = select(*[repos_table.c[column] for column in ENTITY_COLUMNS]).order_by(repos_table.c.id)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
                rows = result.mappings().all()
        except SQLAlchemyError as e:
            raise DatabaseException(f"Could not list repositories: {e}") from e
        return [self._to_entity(row) for row in rows]

    async def _find_one(self, stmt) -> Optional[RepositoryEntity]:
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
                row = result.mappings().first()
        except SQLAlchemyError as e:
            raise DatabaseException(f"Lookup failed: {e}") from e
        # A miss means "not seen yet", not an error.
        return self._to_entity(row) if row is not None else None

    async def find_by_id(self, record_id: str) -> Optional[RepositoryEntity]:
        columns = [repos_table.c[column] for column in ENTITY_COLUMNS]
        return await self._find_one(select(*columns).where(repos_table.c.id == record_id))

    async def find_by_name(self, name: str) -> Optional[RepositoryEntity]:
        columns = [repos_table.c[column] for column in ENTITY_COLUMNS]
        return await self._find_one(
            select(*columns).where(repos_table.c.repository_name == name).order_by(repos_table.c.id).limit(1)
        )

    async def insert(self, entity: RepositoryEntity) -> None:
        """Inserts a record; inserting the same id twice is a no-op."""
        stmt = insert(repos_table).values(entity.model_dump()).on_conflict_do_nothing(index_elements=['id'])
        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise DatabaseException(f"Could not insert {entity.repository_name}: {e}") from e

    async def update(self, record_id: str, fields: Dict[str, str]) -> None:
        """
        Merges `fields` into the record with id `record_id`.

        Args:
            record_id (str): Primary key of the record.
            fields (Dict[str, str]): Column values to overwrite; other columns are left as they are.
        """
        unknown = set(fields) - MUTABLE_COLUMNS
        if unknown:
            raise DatabaseException(f"Refusing to update unknown or immutable columns: {sorted(unknown)}")
        if not fields:
            return

        stmt = (
            update(repos_table)
            .where(repos_table.c.id == record_id)
            .values(**fields, updated_at=text('NOW()'))
        )
        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise DatabaseException(f"Could not update record {record_id}: {e}") from e

    async def delete(self, entity: RepositoryEntity) -> None:
        stmt = delete(repos_table).where(repos_table.c.id == entity.id)
        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise DatabaseException(f"Could not delete record {entity.id}: {e}") from e
        logger.info(f"Deleted duplicate record {entity.id} ({entity.repository_name}).")
