# backend/catalog_service/app/statements.py
"""
Statement builder for the products table.

The products table has a per-deployment shape (see ``schema_probe``), so its
statements are assembled here from a ``SchemaSnapshot``. This is the only
module that turns product column names into SQL; values always travel as
bound parameters.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import column, select, table, update
from sqlalchemy.dialects import mysql, postgresql, sqlite

from .schema_probe import OPTIONAL_COLUMNS, PRODUCTS_TABLE, SchemaSnapshot

BASE_COLUMNS = ("name", "brand", "category", "price", "stock", "colors", "features")

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
    "mysql": mysql.insert,
    "mariadb": mysql.insert,
}


def writable_columns(schema: SchemaSnapshot) -> List[str]:
    """Columns a product write touches, in statement order."""
    columns = list(BASE_COLUMNS)
    columns.extend(name for name in OPTIONAL_COLUMNS if schema.has_column(name))
    if schema.release_column:
        columns.append(schema.release_column)
    return columns


def _column_values(schema: SchemaSnapshot, values: Dict[str, Any]) -> Dict[str, Any]:
    # ``values`` uses the logical name "release" for whichever column exists
    row = {}
    for name in writable_columns(schema):
        key = "release" if name in ("release", "release_date") else name
        row[name] = values.get(key)
    return row


def _products(names) -> Any:
    return table(PRODUCTS_TABLE, *(column(name) for name in names))


def build_upsert(
    schema: SchemaSnapshot, product_id: str, values: Dict[str, Any], dialect_name: str
):
    """INSERT the product; on an id conflict overwrite every inserted column."""
    try:
        insert = _INSERT_BY_DIALECT[dialect_name]
    except KeyError:
        raise ValueError(f"Upsert is not supported for dialect '{dialect_name}'")

    row = _column_values(schema, values)
    products = _products(["id", *row])
    stmt = insert(products).values(id=product_id, **row)
    if dialect_name in ("mysql", "mariadb"):
        return stmt.on_duplicate_key_update({name: stmt.inserted[name] for name in row})
    return stmt.on_conflict_do_update(
        index_elements=["id"],
        set_={name: stmt.excluded[name] for name in row},
    )


def build_update(schema: SchemaSnapshot, product_id: str, values: Dict[str, Any]):
    row = _column_values(schema, values)
    products = _products(["id", *row])
    return update(products).where(products.c.id == product_id).values(**row)


def build_select(schema: SchemaSnapshot, product_id: Optional[str] = None):
    """Select every column the snapshot knows about (base columns at minimum)."""
    names = sorted(schema.columns | {"id", "created_at", *BASE_COLUMNS})
    products = _products(names)
    stmt = select(*products.c)
    if product_id is not None:
        return stmt.where(products.c.id == product_id)
    return stmt.order_by(products.c.created_at.desc(), products.c.id)
