"""
Load canonical records with conflict-tolerant inserts (idempotency)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence
import logging

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, SQLAlchemyError, StatementError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import DatabaseError
from ingestion.tables import TableDescriptor
from models.base import ConflictPolicy

logger = logging.getLogger(__name__)

# Never overwritten on conflict
PROTECTED_COLUMNS = {"id", "ingested_at", "fetched_at"}

# Kept when the incoming value is NULL
USD_SUFFIX = "_usd"

DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def is_record_error(error: SQLAlchemyError) -> bool:
    """
    True when the failure is caused by the record itself.

    Constraint and data errors from the driver qualify, as do bind errors
    raised before the statement reached the driver. Everything else
    (connection loss, missing table) means the store is unusable.
    """
    if isinstance(error, (IntegrityError, DataError)):
        return True
    return isinstance(error, StatementError) and not isinstance(error, DBAPIError)


class RecordRejected(Exception):
    """A single record was refused by the store"""

    def __init__(self, key: Any, error: SQLAlchemyError):
        self.key = key
        self.error = error
        self.detail = str(getattr(error, "orig", None) or error)
        super().__init__(f"{key}: {self.detail}")


@dataclass
class LoadResult:
    """
    Outcome of one ``load_batch`` call.

    ``inserted`` counts records the store accepted, including ones that
    already existed (ignored or overwritten on conflict).
    """
    inserted: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def extend(self, other: "LoadResult"):
        self.inserted += other.inserted
        self.errors.extend(other.errors)


class BulkLoader:
    """
    Write records to the table described by a ``TableDescriptor``.

    Ensures:
    - No duplicate rows on repeated runs (conflicts on the natural key are
      ignored or overwritten, per table)
    - One bad record never fails the batch: a failed bulk statement is
      rolled back and the chunk is retried record by record
    - A ``DatabaseError`` only when the store itself is unusable
    """

    def __init__(self, db_session: AsyncSession, descriptor: TableDescriptor, chunk_size: int = 500):
        self.db = db_session
        self.descriptor = descriptor
        self.chunk_size = chunk_size
        self._columns = set(descriptor.model.__table__.columns.keys())

    @property
    def table_name(self) -> str:
        return self.descriptor.table_name

    def _dialect_name(self) -> str:
        bind = getattr(self.db, "bind", None)
        dialect = getattr(bind, "dialect", None)
        return getattr(dialect, "name", "postgresql")

    def _row(self, record: BaseModel) -> Dict[str, Any]:
        return {k: v for k, v in record.model_dump().items() if k in self._columns}

    def _key(self, record: BaseModel) -> Any:
        return getattr(record, self.descriptor.key_column)

    def _statement(self, rows: List[Dict[str, Any]]):
        insert = DIALECT_INSERTS.get(self._dialect_name(), postgresql.insert)
        stmt = insert(self.descriptor.model).values(rows)
        key = self.descriptor.key_column

        if self.descriptor.conflict_policy == ConflictPolicy.OVERWRITE:
            update_columns = sorted(set(rows[0]) - PROTECTED_COLUMNS - {key})
            table = self.descriptor.model.__table__
            set_ = {}
            for name in update_columns:
                if name.endswith(USD_SUFFIX):
                    # A failed price lookup must not erase a stored USD value
                    set_[name] = func.coalesce(stmt.excluded[name], table.c[name])
                else:
                    set_[name] = stmt.excluded[name]
            return stmt.on_conflict_do_update(index_elements=[key], set_=set_)
        return stmt.on_conflict_do_nothing(index_elements=[key])

    def dedupe(self, records: Sequence[BaseModel]) -> List[BaseModel]:
        """Keep the last occurrence of each key; one statement may not touch a row twice"""
        by_key: Dict[Any, BaseModel] = {}
        for record in records:
            by_key.pop(self._key(record), None)
            by_key[self._key(record)] = record
        return list(by_key.values())

    async def load_batch(self, records: Sequence[BaseModel]) -> LoadResult:
        """
        Load records in chunks.

        Returns:
            LoadResult with the accepted count and per-record errors

        Raises:
            DatabaseError: The store rejected the batch for reasons unrelated
                to any single record (connection loss, missing table, ...)
        """
        result = LoadResult()
        if not records:
            return result

        unique_records = self.dedupe(records)
        if len(unique_records) < len(records):
            logger.debug(f"[{self.table_name}] dropped {len(records) - len(unique_records)} in-batch duplicates")

        for i in range(0, len(unique_records), self.chunk_size):
            chunk = unique_records[i:i + self.chunk_size]
            result.extend(await self._load_chunk(chunk))

        if result.errors:
            logger.warning(
                f"[{self.table_name}] loaded {result.inserted}/{len(unique_records)} records, "
                f"{result.failed} failed"
            )
        else:
            logger.info(f"[{self.table_name}] loaded {result.inserted} records")
        return result

    async def _load_chunk(self, chunk: List[BaseModel]) -> LoadResult:
        try:
            await self.db.execute(self._statement([self._row(r) for r in chunk]))
            await self.db.commit()
            return LoadResult(inserted=len(chunk))
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(
                f"[{self.table_name}] bulk insert of {len(chunk)} records failed, "
                f"falling back to per-record inserts: {type(e).__name__}"
            )

        result = LoadResult()
        for record in chunk:
            try:
                await self._insert(record)
                result.inserted += 1
            except RecordRejected as e:
                error_detail = {
                    "key": str(e.key),
                    "error_type": type(e.error).__name__,
                    "error_message": e.detail,
                }
                result.errors.append(error_detail)
                logger.error(
                    f"[{self.table_name}] record {error_detail['key']} rejected: {error_detail['error_message']}",
                    extra={"error_context": error_detail}
                )

        return result

    async def _insert(self, record: BaseModel):
        try:
            await self.db.execute(self._statement([self._row(record)]))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            if is_record_error(e):
                raise RecordRejected(self._key(record), e)
            raise DatabaseError(
                "Failed to write to the store",
                context={
                    "operation": "UPSERT" if self.descriptor.conflict_policy == ConflictPolicy.OVERWRITE else "INSERT",
                    "table_name": self.table_name,
                    "key": str(self._key(record)),
                },
                original_exception=e
            )

    async def insert_one(self, record: BaseModel) -> bool:
        """
        Insert a single record under the same conflict rule as batches.

        Returns:
            False when the record itself was rejected (already logged)

        Raises:
            DatabaseError: The store is unusable
        """
        try:
            await self._insert(record)
        except RecordRejected as e:
            logger.error(f"[{self.table_name}] record {e.key} rejected: {e.detail}")
            return False
        logger.debug(f"[{self.table_name}] stored {self._key(record)}")
        return True
