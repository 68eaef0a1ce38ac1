"""Database connections, schema discovery and row transfer.

Statements are written with named bind parameters ``:p1``, ``:p2`` and so on,
numbered in the order of the values they take. The driver's own parameter
style is handled by SQLAlchemy.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from newnames.config import Config
from newnames.schema import TableSchema, tables_from_rows


class DBType(str, Enum):
    """Supported database kinds."""

    MYSQL = "mysql"
    POSTGRESQL = "postgres"

    def __str__(self) -> str:
        return self.value


class DatabaseError(Exception):
    """Raised when a database operation fails."""


_MYSQL_SCHEMA_QUERY = """
        SELECT
            t.TABLE_NAME,
            c.COLUMN_NAME,
            c.DATA_TYPE,
            CASE WHEN c.IS_NULLABLE = 'YES' THEN 1 ELSE 0 END as IS_NULLABLE,
            CASE WHEN c.COLUMN_KEY = 'PRI' THEN 1 ELSE 0 END as IS_PRIMARY,
            COALESCE(c.CHARACTER_MAXIMUM_LENGTH, 0) as MAX_LENGTH
        FROM information_schema.TABLES t
        JOIN information_schema.COLUMNS c
            ON t.TABLE_NAME = c.TABLE_NAME AND t.TABLE_SCHEMA = c.TABLE_SCHEMA
        WHERE t.TABLE_SCHEMA = :p1
            AND t.TABLE_TYPE = 'BASE TABLE'
        ORDER BY t.TABLE_NAME, c.ORDINAL_POSITION"""

_POSTGRES_SCHEMA_QUERY = """
        SELECT
            t.table_name,
            c.column_name,
            c.data_type,
            CASE WHEN c.is_nullable = 'YES' THEN 1 ELSE 0 END as is_nullable,
            CASE WHEN pk.column_name IS NOT NULL THEN 1 ELSE 0 END as is_primary,
            COALESCE(c.character_maximum_length, 0) as max_length
        FROM information_schema.tables t
        JOIN information_schema.columns c
            ON t.table_name = c.table_name
        LEFT JOIN (
            SELECT tc.table_name, kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
            WHERE tc.constraint_type = 'PRIMARY KEY'
        ) pk ON t.table_name = pk.table_name
            AND c.column_name = pk.column_name
        WHERE t.table_schema = 'public'
            AND t.table_type = 'BASE TABLE'
        ORDER BY t.table_name, c.ordinal_position"""


def escape_identifier(identifier: str, db_type: DBType | str) -> str:
    """Quote an identifier the way the given database expects."""
    if db_type == DBType.MYSQL:
        return f"`{identifier}`"
    if db_type == DBType.POSTGRESQL:
        return f'"{identifier}"'
    return identifier


def escape_identifiers(identifiers: Sequence[str], db_type: DBType | str) -> list[str]:
    """Quote each identifier in turn."""
    return [escape_identifier(identifier, db_type) for identifier in identifiers]


def escape_update_clauses(clauses: Sequence[str], db_type: DBType | str) -> list[str]:
    """Quote the column on the left of each ``column = value`` clause."""
    escaped = []
    for clause in clauses:
        parts = clause.split(" = ")
        if len(parts) == 2:
            escaped.append(f"{escape_identifier(parts[0], db_type)} = {parts[1]}")
        else:
            escaped.append(clause)
    return escaped


def _bind(values: Sequence[Any]) -> dict[str, Any]:
    return {f"p{index}": value for index, value in enumerate(values, start=1)}


def _placeholders(count: int, start: int = 1) -> list[str]:
    return [f":p{index}" for index in range(start, start + count)]


def _type_name(db_type: DBType | str) -> str:
    return db_type.value if isinstance(db_type, DBType) else str(db_type)


class Connection:
    """A pooled connection to a MySQL or PostgreSQL database."""

    def __init__(self, engine: Any, db_type: DBType | str, cfg: Config | None = None) -> None:
        self.engine = engine
        self.db_type = db_type
        self.cfg = cfg if cfg is not None else Config()

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release every pooled connection."""
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    def _require_engine(self) -> Any:
        if self.engine is None:
            raise DatabaseError("sql: database is closed")
        return self.engine

    def _unsupported(self) -> DatabaseError:
        return DatabaseError(f"unsupported database type: {_type_name(self.db_type)}")

    def _log(self, query: str) -> None:
        if self.cfg.verbose:
            print(f"Executing SQL: {query}")

    @staticmethod
    def _run(conn: Any, query: str, values: Sequence[Any]) -> Any:
        try:
            return conn.execute(text(query), _bind(values))
        except SQLAlchemyError as exc:
            raise DatabaseError(f"failed to execute query: {query}, error: {exc}") from exc

    def _autocommit(self, query: str, values: Sequence[Any] = ()) -> int:
        with self._require_engine().connect() as conn:
            result = conn.execute(text(query), _bind(values))
            count = result.rowcount
            conn.commit()
        return count

    @contextmanager
    def _transaction(self) -> Iterator[Any]:
        with self._require_engine().connect() as conn:
            try:
                tx = conn.begin()
            except SQLAlchemyError as exc:
                raise DatabaseError(f"failed to begin transaction: {exc}") from exc
            try:
                yield conn
            except BaseException:
                tx.rollback()
                raise
            try:
                tx.commit()
            except SQLAlchemyError as exc:
                raise DatabaseError(f"failed to commit transaction: {exc}") from exc

    def _foreign_key_query(self, enable: bool) -> str:
        if self.db_type == DBType.MYSQL:
            return "SET FOREIGN_KEY_CHECKS=1;" if enable else "SET FOREIGN_KEY_CHECKS=0;"
        if self.db_type == DBType.POSTGRESQL:
            return "SET CONSTRAINTS ALL IMMEDIATE;" if enable else "SET CONSTRAINTS ALL DEFERRED;"
        raise self._unsupported()

    def disable_foreign_key_checks(self, tx: Any) -> None:
        """Turn off foreign key checking inside the open transaction ``tx``."""
        query = self._foreign_key_query(enable=False)
        try:
            tx.execute(text(query))
        except SQLAlchemyError as exc:
            raise DatabaseError(f"failed to disable foreign key checks: {exc}") from exc

    def enable_foreign_key_checks(self) -> None:
        """Turn foreign key checking back on."""
        query = self._foreign_key_query(enable=True)
        try:
            self._autocommit(query)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"failed to enable foreign key checks: {exc}") from exc

    def get_schema(self) -> list[TableSchema]:
        """Describe every base table of the database."""
        if self.db_type == DBType.MYSQL:
            with self._require_engine().connect() as conn:
                try:
                    db_name = conn.execute(text("SELECT DATABASE()")).scalar()
                except SQLAlchemyError as exc:
                    raise DatabaseError(f"failed to get database name: {exc}") from exc
            return self.process_schema_rows(_MYSQL_SCHEMA_QUERY, db_name)
        if self.db_type == DBType.POSTGRESQL:
            return self.process_schema_rows(_POSTGRES_SCHEMA_QUERY)
        raise self._unsupported()

    def process_schema_rows(self, query: str, *args: Any) -> list[TableSchema]:
        """Run a catalogue query and group its rows into table schemas."""
        with self._require_engine().connect() as conn:
            try:
                result = conn.execute(text(query), _bind(args))
            except SQLAlchemyError as exc:
                raise DatabaseError(f"failed to query schema: {exc}") from exc
            try:
                rows = [tuple(row) for row in result]
            except SQLAlchemyError as exc:
                raise DatabaseError(f"error iterating schema rows: {exc}") from exc
        try:
            return tables_from_rows(rows)
        except (ValueError, TypeError) as exc:
            raise DatabaseError(f"failed to scan schema row: {exc}") from exc

    def query_rows(self, query: str, *args: Any) -> Iterator[dict[str, Any]]:
        """Yield each row of a query as a mapping of column name to value."""
        with self._require_engine().connect() as conn:
            try:
                result = conn.execute(text(query), _bind(args))
                columns = list(result.keys())
                for row in result:
                    yield dict(zip(columns, row))
            except SQLAlchemyError as exc:
                raise DatabaseError(str(exc)) from exc

    def upsert_row(self, schema: TableSchema, data: Mapping[str, Any]) -> None:
        """Insert a row, or update it by id when the table has an id column."""
        if not schema.has_id:
            self.insert_row(schema, data)
        elif self.db_type == DBType.MYSQL:
            self.mysql_upsert(schema, data)
        elif self.db_type == DBType.POSTGRESQL:
            self.postgres_upsert(schema, data)
        else:
            raise self._unsupported()

    def insert_row(self, schema: TableSchema, data: Mapping[str, Any]) -> None:
        """Insert a row inside a transaction with foreign key checks off."""
        self._require_engine()
        columns = [column.name for column in schema.columns if column.name in data]
        values = [data[name] for name in columns]
        query = "INSERT INTO {} ({}) VALUES ({})".format(
            escape_identifier(schema.name, self.db_type),
            ", ".join(escape_identifiers(columns, self.db_type)),
            ", ".join(_placeholders(len(values))),
        )
        self._log(query)
        with self._transaction() as conn:
            self.disable_foreign_key_checks(conn)
            self._run(conn, query, values)

    def mysql_upsert(self, schema: TableSchema, data: Mapping[str, Any]) -> None:
        """Insert or update a row with ``ON DUPLICATE KEY UPDATE``."""
        self._require_engine()
        columns = [column.name for column in schema.columns if column.name in data]
        values = [data[name] for name in columns]
        placeholders = ", ".join(_placeholders(len(values)))
        updates = []
        for column in schema.columns:
            if not column.is_id and column.name in data:
                quoted = escape_identifier(column.name, self.db_type)
                updates.append(f"{quoted} = VALUES({quoted})")

        if updates:
            query = "INSERT INTO {} ({}) VALUES ({}) ON DUPLICATE KEY UPDATE {}".format(
                escape_identifier(schema.name, self.db_type),
                ", ".join(escape_identifiers(columns, self.db_type)),
                placeholders,
                ", ".join(updates),
            )
        else:
            query = f"INSERT INTO {schema.name} ({', '.join(columns)}) VALUES ({placeholders})"

        self._log(query)
        with self._transaction() as conn:
            self.disable_foreign_key_checks(conn)
            self._run(conn, query, values)

    def postgres_upsert(self, schema: TableSchema, data: Mapping[str, Any]) -> None:
        """Insert or update a row with ``ON CONFLICT``."""
        engine = self._require_engine()
        present = [column for column in schema.columns if column.name in data]
        columns = [column.name for column in present]
        values = [data[name] for name in columns]
        id_columns = [column.name for column in present if column.is_id]
        placeholders = ", ".join(_placeholders(len(values)))
        updates = []
        for column in present:
            if not column.is_id:
                quoted = escape_identifier(column.name, self.db_type)
                updates.append(f"{quoted} = EXCLUDED.{quoted}")

        if updates:
            query = "INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO UPDATE SET {}".format(
                escape_identifier(schema.name, self.db_type),
                ", ".join(escape_identifiers(columns, self.db_type)),
                placeholders,
                ", ".join(escape_identifiers(id_columns, self.db_type)),
                ", ".join(updates),
            )
        else:
            query = "INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO NOTHING".format(
                schema.name, ", ".join(columns), placeholders, ", ".join(id_columns)
            )

        self._log(query)
        with engine.connect() as conn:
            self._run(conn, query, values)
            conn.commit()

    def delete_batch_with_count(self, table: str, id_col: str, ids: Sequence[Any]) -> int:
        """Delete rows in the id range of ``ids`` that are not among them.

        ``ids`` must be sorted. With a single id, every row after it is
        deleted. Returns the number of rows deleted.
        """
        if not ids:
            return 0
        quoted_table = escape_identifier(table, self.db_type)
        quoted_id = escape_identifier(id_col, self.db_type)
        if len(ids) == 1:
            query = f"DELETE FROM {quoted_table} WHERE {quoted_id} > :p1"
            values: list[Any] = [ids[0]]
        else:
            keep = ", ".join(_placeholders(len(ids), start=3))
            query = (
                f"DELETE FROM {quoted_table} WHERE {quoted_id} BETWEEN :p1 AND :p2 "
                f"AND {quoted_id} NOT IN ({keep})"
            )
            values = [ids[0], ids[-1], *ids]

        self._log(query)
        try:
            return self._autocommit(query, values)
        except SQLAlchemyError as exc:
            if self.cfg.debug:
                print(f"Error deleting from table {table}: {exc}", file=sys.stderr)
            raise DatabaseError(str(exc)) from exc

    def delete_batch(self, table: str, id_col: str, ids: Sequence[Any]) -> None:
        """Delete rows in the id range of ``ids`` that are not among them."""
        self.delete_batch_with_count(table, id_col, ids)

    def truncate_table(self, table: str) -> None:
        """Remove every row of a table."""
        query = f"TRUNCATE TABLE {table}"
        self._log(query)
        try:
            self._autocommit(query)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"failed to truncate destination table '{table}': {exc}") from exc


def connect(db_url: str, cfg: Config, max_open_conns: int) -> Connection:
    """Open and check a connection from a ``mysql://`` or ``postgres://`` URL."""
    try:
        parts = urlsplit(db_url)
    except ValueError as exc:
        raise DatabaseError(f"invalid database URL: {exc}") from exc

    print(f"Connecting to {db_url} database...")

    if parts.scheme == "mysql":
        db_type = DBType.MYSQL
        engine_url = f"mysql+pymysql://{parts.netloc}/{parts.path.lstrip('/')}"
    elif parts.scheme in ("postgres", "postgresql"):
        db_type = DBType.POSTGRESQL
        engine_url = parts._replace(scheme="postgresql").geturl()
    else:
        raise DatabaseError(f"unsupported database type: {parts.scheme}")

    if max_open_conns > 0:
        pool_options = {"pool_size": max_open_conns, "max_overflow": 0}
    else:
        pool_options = {"max_overflow": -1}

    try:
        engine = create_engine(engine_url, **pool_options)
    except (SQLAlchemyError, ImportError, ValueError) as exc:
        raise DatabaseError(f"failed to open database connection: {exc}") from exc

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        engine.dispose()
        raise DatabaseError(f"failed to ping database: {exc}") from exc

    return Connection(engine, db_type, cfg)