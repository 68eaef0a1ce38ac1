import threading

import pytest
from sqlalchemy import create_engine, text

from newnames.anonymizer import Row
from newnames.config import Config
from newnames.db import Connection, DatabaseError
from newnames.schema import ColumnSchema, TableSchema
from newnames.worker import Reader, Writer, compare_id


class RecordingDestination:
    def __init__(self, fail=False, deleted=1):
        self.fail = fail
        self.deleted = deleted
        self.lock = threading.Lock()
        self.rows = []
        self.deletes = []

    def upsert_row(self, schema, data):
        if self.fail:
            raise DatabaseError("write refused")
        with self.lock:
            self.rows.append((schema.name, dict(data)))

    def delete_batch_with_count(self, table, id_col, ids):
        with self.lock:
            self.deletes.append((table, id_col, list(ids)))
        return self.deleted


ITEM_SCHEMA = TableSchema(
    name="items",
    columns=[ColumnSchema("id", "int", is_id=True), ColumnSchema("label", "text")],
    has_id=True,
    id_col="id",
)
LOG_SCHEMA = TableSchema(name="logs", columns=[ColumnSchema("message", "text")])
PEOPLE_SCHEMA = TableSchema(
    name="people",
    columns=[ColumnSchema("id", "int", is_id=True), ColumnSchema("name", "varchar", max_length=60)],
    has_id=True,
    id_col="id",
)

ITEM_IDS = [1, 2, 3, 4, 5]
LOG_MESSAGES = ["m0", "m1", "m2", "m3"]
PEOPLE = {1: "Original Person One", 2: "Original Person Two", 3: "Original Person Three"}


def make_source(tmp_path, cfg):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'source.db'}", connect_args={"check_same_thread": False}
    )
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT)"))
        for item_id in ITEM_IDS:
            conn.execute(
                text("INSERT INTO items (id, label) VALUES (:i, :l)"),
                {"i": item_id, "l": f"label{item_id}"},
            )
        conn.execute(text("CREATE TABLE logs (message TEXT)"))
        for message in LOG_MESSAGES:
            conn.execute(text("INSERT INTO logs (message) VALUES (:m)"), {"m": message})
        conn.execute(text("CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT)"))
        for person_id, name in PEOPLE.items():
            conn.execute(
                text("INSERT INTO people (id, name) VALUES (:i, :n)"), {"i": person_id, "n": name}
            )
    return Connection(engine, "sqlite", cfg)


def run_reader(tmp_path, cfg, schemas, batch_size=2):
    source = make_source(tmp_path, cfg)
    dest = RecordingDestination()
    writer = Writer(dest, 2, cfg)
    reader = Reader(source, writer, 2, cfg, batch_size=batch_size)
    try:
        reader.process_tables(schemas)
    finally:
        reader.stop()
        writer.stop_and_wait()
        source.close()
    return reader, writer, dest


def test_compare_id_integers_numeric():
    assert compare_id(1, 2) == -1
    assert compare_id(10, 9) == 1
    assert compare_id(7, 7) == 0


def test_compare_id_falls_back_to_text():
    assert compare_id("b", "a") == 1
    assert compare_id("10", 9) == -1
    assert compare_id("same", "same") == 0


def test_writer_counts_processed_rows():
    dest = RecordingDestination()
    writer = Writer(dest, 2, Config())
    for person_id in PEOPLE:
        writer.submit(Row(schema=PEOPLE_SCHEMA, data={"id": person_id}))
    writer.stop_and_wait()
    progress = writer.progress
    assert progress.processed_rows == len(PEOPLE)
    assert progress.error_count == 0
    assert progress.current_table == "people"
    assert sorted(data["id"] for _, data in dest.rows) == sorted(PEOPLE)


def test_writer_counts_errors():
    dest = RecordingDestination(fail=True)
    writer = Writer(dest, 1, Config())
    for person_id in PEOPLE:
        writer.submit(Row(schema=PEOPLE_SCHEMA, data={"id": person_id}))
    writer.stop_and_wait()
    assert writer.progress.error_count == len(PEOPLE)
    assert writer.progress.processed_rows == 0


def test_writer_delete_batch_counts_deleted():
    dest = RecordingDestination(deleted=4)
    writer = Writer(dest, 1, Config())
    writer.delete_batch("items", "id", [1, 2])
    writer.delete_batch("items", "id", [])
    writer.stop_and_wait()
    assert dest.deletes == [("items", "id", [1, 2])]
    assert writer.progress.deleted_rows == dest.deleted


def test_reader_with_id_writes_all_rows_in_batches(tmp_path):
    reader, writer, dest = run_reader(tmp_path, Config(), [ITEM_SCHEMA])
    written = sorted(data["id"] for _, data in dest.rows)
    assert written == ITEM_IDS
    batches = sorted((ids for _, _, ids in dest.deletes), key=lambda ids: ids[0])
    assert [item for batch in batches for item in batch] == ITEM_IDS
    assert all(len(batch) <= 2 for batch in batches)
    assert writer.progress.deleted_rows == len(batches)
    assert reader.progress.processed_tables == 1


def test_reader_with_id_sampling_limits_each_batch(tmp_path):
    cfg = Config(sample_tables={"items": 50.0})
    _, _, dest = run_reader(tmp_path, cfg, [ITEM_SCHEMA])
    assert len(dest.rows) == len(dest.deletes)
    assert len(dest.rows) < len(ITEM_IDS)


def test_reader_without_id_writes_every_row(tmp_path):
    _, writer, dest = run_reader(tmp_path, Config(), [LOG_SCHEMA])
    assert sorted(data["message"] for _, data in dest.rows) == LOG_MESSAGES
    assert dest.deletes == []
    assert writer.progress.processed_rows == len(LOG_MESSAGES)


def test_reader_without_id_sampling_takes_every_nth(tmp_path):
    cfg = Config(sample_tables={"logs": 50.0})
    _, _, dest = run_reader(tmp_path, cfg, [LOG_SCHEMA])
    assert {data["message"] for _, data in dest.rows} == {"m0", "m2"}


def test_reader_rejects_non_positive_sample(tmp_path):
    cfg = Config(sample_tables={"logs": 0})
    with pytest.raises(ValueError, match="logs"):
        run_reader(tmp_path, cfg, [LOG_SCHEMA])


def test_reader_skips_tables(tmp_path):
    cfg = Config(skip_tables=["logs"])
    reader, _, dest = run_reader(tmp_path, cfg, [ITEM_SCHEMA, LOG_SCHEMA])
    assert {table for table, _ in dest.rows} == {"items"}
    assert reader.progress.total_tables == 2
    assert reader.progress.processed_tables == 1


def test_reader_anonymizes_configured_fields(tmp_path):
    cfg = Config(anonymize_fields={"people": ["name"]})
    _, _, dest = run_reader(tmp_path, cfg, [PEOPLE_SCHEMA], batch_size=10)
    assert sorted(data["id"] for _, data in dest.rows) == sorted(PEOPLE)
    assert all(data["name"] not in PEOPLE.values() for _, data in dest.rows)


def test_reader_reports_query_errors(tmp_path):
    ghost = TableSchema(name="ghost", columns=[ColumnSchema("value", "text")])
    with pytest.raises(DatabaseError, match="failed to query table ghost"):
        run_reader(tmp_path, Config(), [ghost])