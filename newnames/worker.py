"""Worker pools that read rows from the source and write them to the destination."""

from __future__ import annotations

import dataclasses
import sys
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from newnames.anonymizer import Row, anonymize
from newnames.config import Config
from newnames.db import DatabaseError
from newnames.schema import TableSchema

BATCH_SIZE = 1000
_QUEUE_PER_WORKER = 200


@dataclass
class Progress:
    """How far the reader has got through the tables."""

    current_table: str = ""
    total_tables: int = 0
    processed_tables: int = 0
    start_time: float = field(default_factory=time.time)


@dataclass
class WriterProgress:
    """Counts of the writer's finished, deleted and failed operations."""

    current_table: str = ""
    processed_rows: int = 0
    deleted_rows: int = 0
    error_count: int = 0
    start_time: float = field(default_factory=time.time)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def compare_id(a: Any, b: Any) -> int:
    """Order two ids: numerically when both are integers, else as text."""
    if _is_integer(a) and _is_integer(b):
        return (a > b) - (a < b)
    left, right = str(a), str(b)
    return (left > right) - (left < right)


def _pool_size(max_workers: int) -> int | None:
    return max_workers if max_workers > 0 else None


class Writer:
    """Writes rows to the destination database from a pool of threads."""

    def __init__(self, dest: Any, max_workers: int, cfg: Config) -> None:
        self._dest = dest
        self._cfg = cfg
        self._pool = ThreadPoolExecutor(
            max_workers=_pool_size(max_workers), thread_name_prefix="writer"
        )
        # Bounds the number of queued jobs so a fast reader waits for the writers.
        self._slots = (
            threading.BoundedSemaphore(max_workers * (_QUEUE_PER_WORKER + 1))
            if max_workers > 0
            else None
        )
        self._lock = threading.Lock()
        self._progress = WriterProgress()

    @property
    def progress(self) -> WriterProgress:
        """A snapshot of the current progress."""
        with self._lock:
            return dataclasses.replace(self._progress)

    def _enqueue(self, job: Callable[[], None]) -> None:
        if self._slots is None:
            self._pool.submit(job)
            return
        self._slots.acquire()
        try:
            future: Future[None] = self._pool.submit(job)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(lambda _: self._slots.release())

    def submit(self, row: Row) -> None:
        """Queue a row to be upserted into the destination."""
        with self._lock:
            self._progress.current_table = row.schema.name
        self._enqueue(lambda: self._upsert(row))

    def _upsert(self, row: Row) -> None:
        try:
            self._dest.upsert_row(row.schema, row.data)
        except Exception as exc:
            with self._lock:
                self._progress.error_count += 1
            if self._cfg.debug:
                print(f"Error writing to table {row.schema.name}: {exc}", file=sys.stderr)
            return
        with self._lock:
            self._progress.processed_rows += 1

    def delete_batch(self, table: str, id_col: str, ids: Sequence[Any]) -> None:
        """Queue deletion of rows in the range of ``ids`` that are not among them."""
        if not ids:
            return
        kept = list(ids)
        self._enqueue(lambda: self._delete(table, id_col, kept))

    def _delete(self, table: str, id_col: str, ids: list[Any]) -> None:
        try:
            deleted = self._dest.delete_batch_with_count(table, id_col, ids)
        except DatabaseError:
            return
        with self._lock:
            self._progress.deleted_rows += deleted

    def stop_and_wait(self) -> None:
        """Stop accepting work and wait for every queued job to finish."""
        self._pool.shutdown(wait=True)


class Reader:
    """Reads tables from the source database from a pool of threads."""

    def __init__(
        self,
        source: Any,
        writer: Writer,
        max_workers: int,
        cfg: Config,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self._source = source
        self._writer = writer
        self._cfg = cfg
        self._batch_size = batch_size
        self._pool = ThreadPoolExecutor(
            max_workers=_pool_size(max_workers), thread_name_prefix="reader"
        )
        self._lock = threading.Lock()
        self._progress = Progress()

    @property
    def progress(self) -> Progress:
        """A snapshot of the current progress."""
        with self._lock:
            return dataclasses.replace(self._progress)

    def process_tables(self, schemas: Sequence[TableSchema]) -> None:
        """Read every table not marked to skip; raise the first error met."""
        with self._lock:
            self._progress.total_tables = len(schemas)
        skip = set(self._cfg.skip_tables)
        futures = [
            self._pool.submit(self._process_table, schema)
            for schema in schemas
            if schema.name not in skip
        ]
        first_error: BaseException | None = None
        for future in as_completed(futures):
            error = future.exception()
            if error is not None and first_error is None:
                first_error = error
        if first_error is not None:
            raise first_error

    def _process_table(self, schema: TableSchema) -> None:
        with self._lock:
            self._progress.current_table = schema.name
        try:
            if schema.has_id:
                self._process_with_id(schema)
            else:
                self._process_without_id(schema)
        finally:
            with self._lock:
                self._progress.processed_tables += 1

    def _read(self, schema: TableSchema, query: str, *args: Any) -> Iterator[dict[str, Any]]:
        try:
            yield from self._source.query_rows(query, *args)
        except DatabaseError as exc:
            if self._cfg.debug:
                print(f"Error reading from table {schema.name}: {exc}", file=sys.stderr)
            raise DatabaseError(f"failed to query table {schema.name}: {exc}") from exc

    def _forward(self, schema: TableSchema, data: dict[str, Any]) -> None:
        row = Row(schema=schema, data=data)
        anonymize(row, self._cfg)
        self._writer.submit(row)

    def _sample_modulus(self, table: str) -> int:
        pct = self._cfg.sample_tables.get(table)
        if pct is None:
            return 1
        if pct <= 0:
            raise ValueError(f"sample percentage for table {table} must be positive")
        return max(1, int(1 / (pct / 100)))

    def _process_without_id(self, schema: TableSchema) -> None:
        modulus = self._sample_modulus(schema.name)
        query = f"SELECT * FROM {schema.name}"
        for index, data in enumerate(self._read(schema, query)):
            if index % modulus == 0:
                self._forward(schema, data)

    def _process_with_id(self, schema: TableSchema) -> None:
        size = self._batch_size
        pct = self._cfg.sample_tables.get(schema.name)
        write_limit = size if pct is None else int(size * pct / 100)

        last_id: Any = None
        first = True
        while True:
            if first:
                query = f"SELECT * FROM {schema.name} ORDER BY {schema.id_col} LIMIT {size}"
                args: tuple[Any, ...] = ()
                first = False
            else:
                query = (
                    f"SELECT * FROM {schema.name} WHERE {schema.id_col} > :p1 "
                    f"ORDER BY {schema.id_col} LIMIT {size}"
                )
                args = (last_id,)

            ids: list[Any] = []
            max_id: Any = None
            for count, data in enumerate(self._read(schema, query, *args)):
                if count < write_limit:
                    self._forward(schema, data)
                id_value = data.get(schema.id_col)
                ids.append(id_value)
                if max_id is None or compare_id(id_value, max_id) > 0:
                    max_id = id_value

            if not ids:
                break
            self._writer.delete_batch(schema.name, schema.id_col, ids)
            last_id = max_id
            if len(ids) < size:
                break

    def stop(self) -> None:
        """Stop the pool and wait for running tables to finish."""
        self._pool.shutdown(wait=True)