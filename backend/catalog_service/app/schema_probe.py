# backend/catalog_service/app/schema_probe.py

import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    MetaData,
    String,
    Table,
    Text,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.schema import CreateColumn

logger = logging.getLogger(__name__)

PRODUCTS_TABLE = "products"
RELEASE_COLUMNS = ("release", "release_date")

# Column definitions used when an optional column has to be added.
_optional_columns = Table(
    PRODUCTS_TABLE,
    MetaData(),
    Column("id", String(128), primary_key=True),
    Column("specs", JSON, nullable=True),
    Column("tags", JSON, nullable=True),
    Column("active", Boolean, server_default=text("TRUE")),
    Column("featured", Boolean, server_default=text("FALSE")),
    Column("release_date", Date, nullable=True),
    Column("warranty", String(255), nullable=True),
    Column("notes", Text, nullable=True),
)

OPTIONAL_COLUMNS = ("specs", "tags", "active", "featured", "warranty", "notes")

_DUPLICATE_COLUMN_MARKERS = ("already exists", "duplicate column")


@dataclass(frozen=True)
class SchemaSnapshot:
    """Column names of the products table as seen by the last probe."""

    columns: FrozenSet[str] = frozenset()

    def has_column(self, name: str) -> bool:
        return name in self.columns

    @property
    def release_column(self) -> Optional[str]:
        for name in RELEASE_COLUMNS:
            if name in self.columns:
                return name
        return None


def is_duplicate_column_error(exc: BaseException) -> bool:
    message = str(getattr(exc, "orig", None) or exc).lower()
    return any(marker in message for marker in _DUPLICATE_COLUMN_MARKERS)


class SchemaProbe:
    """
    Tracks which optional product columns exist and adds the missing ones.

    The snapshot is replaced, never mutated, so a caller holding a reference
    keeps a consistent view for the whole request.
    """

    def __init__(self, engine: Engine, table_name: str = PRODUCTS_TABLE):
        self.engine = engine
        self.table_name = table_name
        self._snapshot = SchemaSnapshot()

    @property
    def snapshot(self) -> SchemaSnapshot:
        return self._snapshot

    def refresh(self) -> SchemaSnapshot:
        try:
            columns = inspect(self.engine).get_columns(self.table_name)
        except NoSuchTableError:
            logger.warning(
                f"Catalog Service: Table '{self.table_name}' not found while probing columns."
            )
            columns = []
        self._snapshot = SchemaSnapshot(frozenset(c["name"] for c in columns))
        logger.info(
            f"Catalog Service: Probed '{self.table_name}' columns: {sorted(self._snapshot.columns)}"
        )
        return self._snapshot

    def missing_columns(self):
        snapshot = self._snapshot
        missing = [name for name in OPTIONAL_COLUMNS if not snapshot.has_column(name)]
        if snapshot.release_column is None:
            missing.append("release_date")
        return missing

    def _add_column_ddl(self, name: str) -> str:
        dialect = self.engine.dialect
        column_spec = CreateColumn(_optional_columns.c[name]).compile(dialect=dialect)
        table = dialect.identifier_preparer.quote(self.table_name)
        return f"ALTER TABLE {table} ADD COLUMN {column_spec}"

    def ensure_columns(self) -> SchemaSnapshot:
        """Add every missing optional column, then re-probe.

        A column that turns out to exist already counts as added. Any other
        failure (typically missing ALTER privilege) leaves the column absent.
        """
        for name in self.missing_columns():
            ddl = self._add_column_ddl(name)
            try:
                with self.engine.begin() as conn:
                    conn.execute(text(ddl))
                logger.info(f"Catalog Service: Added column '{name}' to '{self.table_name}'.")
            except SQLAlchemyError as e:
                if is_duplicate_column_error(e):
                    logger.debug(
                        f"Catalog Service: Column '{name}' already exists on '{self.table_name}'."
                    )
                else:
                    logger.warning(
                        f"Catalog Service: Could not add column '{name}' to '{self.table_name}', "
                        f"continuing without it. Error: {e}"
                    )
        return self.refresh()
