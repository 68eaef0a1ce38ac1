"""Table and column descriptions read from a database catalogue."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from itertools import groupby
from operator import itemgetter
from typing import Any


@dataclass
class ColumnSchema:
    """One column of a table."""

    name: str
    type: str
    is_id: bool = False
    nullable: bool = False
    max_length: int = 0


@dataclass
class TableSchema:
    """A table with its columns and, if present, its ``id`` primary key."""

    name: str
    columns: list[ColumnSchema] = field(default_factory=list)
    has_id: bool = False
    id_col: str = ""


def tables_from_rows(rows: Iterable[Any]) -> list[TableSchema]:
    """Group catalogue rows into table schemas.

    Each row is ``(table, column, data_type, nullable, primary, max_length)``.
    Consecutive rows of the same table form one schema, in the order given.
    """
    schemas: list[TableSchema] = []
    for table_name, table_rows in groupby(rows, key=itemgetter(0)):
        schema = TableSchema(name=table_name)
        for _, column_name, data_type, nullable, primary, max_length in table_rows:
            column = ColumnSchema(
                name=column_name,
                type=data_type,
                is_id=bool(primary) and column_name == "id",
                nullable=bool(nullable),
                max_length=int(max_length or 0),
            )
            if column.is_id:
                schema.has_id = True
                schema.id_col = column_name
            schema.columns.append(column)
        schemas.append(schema)
    return schemas