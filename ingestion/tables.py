"""
Table registry: which table, natural key and conflict policy each
(source, record kind) pair writes to.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type
import logging

from sqlalchemy import UniqueConstraint

from core.config import settings
from core.exceptions import ConfigurationError
from models.base import Base, ConflictPolicy, DataSource, RecordKind
from models.chainflip_swap import ChainflipSwap
from models.closing_price import ClosingPrice
from models.swap_history import NativeSwap, TradeSwap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableDescriptor:
    model: Type[Base]
    key_column: str
    conflict_policy: ConflictPolicy
    requires_usd: bool = False
    settlement_asset: Optional[str] = None

    @property
    def table_name(self) -> str:
        return self.model.__tablename__


TableKey = Tuple[DataSource, RecordKind]

TABLES: Dict[TableKey, TableDescriptor] = {
    (DataSource.MIDGARD_NATIVE, RecordKind.SWAP): TableDescriptor(
        model=NativeSwap,
        key_column="tx_id",
        conflict_policy=ConflictPolicy.IGNORE,
        settlement_asset=settings.NATIVE_SETTLEMENT_ASSET,
    ),
    # Trade swaps get revised upstream after first sight
    (DataSource.MIDGARD_TRADE, RecordKind.SWAP): TableDescriptor(
        model=TradeSwap,
        key_column="tx_id",
        conflict_policy=ConflictPolicy.OVERWRITE,
        requires_usd=True,
        settlement_asset=settings.NATIVE_SETTLEMENT_ASSET,
    ),
    (DataSource.CHAINFLIP, RecordKind.SWAP): TableDescriptor(
        model=ChainflipSwap,
        key_column="swap_id",
        conflict_policy=ConflictPolicy.OVERWRITE,
    ),
    (DataSource.COINGECKO, RecordKind.CLOSING_PRICE): TableDescriptor(
        model=ClosingPrice,
        key_column="date",
        conflict_policy=ConflictPolicy.IGNORE,
    ),
}


def _is_unique(model: Type[Base], column_name: str) -> bool:
    table = model.__table__
    column = table.columns[column_name]
    if column.unique or column.primary_key:
        return True
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint) and [c.name for c in constraint.columns] == [column_name]:
            return True
    return any(index.unique and [c.name for c in index.columns] == [column_name] for index in table.indexes)


def validate_registry(tables: Optional[Dict[TableKey, TableDescriptor]] = None):
    """
    Check every descriptor against its model.

    Raises:
        ConfigurationError: A key column is missing or not unique, or a
            descriptor is registered under the wrong kind of key
    """
    tables = TABLES if tables is None else tables
    for (source, kind), descriptor in tables.items():
        if not isinstance(source, DataSource) or not isinstance(kind, RecordKind):
            raise ConfigurationError(
                "Table registry keys must be (DataSource, RecordKind)",
                context={"key": (source, kind)}
            )
        context = {"source": source.value, "kind": kind.value, "table": descriptor.table_name}
        if descriptor.key_column not in descriptor.model.__table__.columns:
            raise ConfigurationError("Key column missing from table", context={**context, "key_column": descriptor.key_column})
        if not _is_unique(descriptor.model, descriptor.key_column):
            raise ConfigurationError("Key column has no unique constraint", context={**context, "key_column": descriptor.key_column})
    logger.info(f"Table registry validated ({len(tables)} tables)")


def get_table(source: DataSource, kind: RecordKind = RecordKind.SWAP) -> TableDescriptor:
    try:
        return TABLES[(source, kind)]
    except KeyError:
        raise ConfigurationError(
            "No table registered",
            context={"source": source.value, "kind": kind.value}
        )
