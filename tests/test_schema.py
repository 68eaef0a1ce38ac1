from newnames.schema import ColumnSchema, TableSchema, tables_from_rows


def test_rows_group_into_tables_in_order():
    rows = [
        ("users", "id", "int", True, True, 0),
        ("users", "name", "varchar", False, False, 255),
        ("posts", "id", "int", True, True, 0),
        ("posts", "title", "varchar", False, False, 100),
    ]
    schemas = tables_from_rows(rows)
    assert [s.name for s in schemas] == ["users", "posts"]
    assert schemas[0].has_id is True
    assert schemas[0].id_col == "id"
    assert schemas[0].columns[0].is_id is True
    assert schemas[0].columns[1].max_length == 255
    assert schemas[1].columns[1] == ColumnSchema(
        name="title", type="varchar", is_id=False, nullable=False, max_length=100
    )


def test_primary_key_not_named_id_is_not_an_id():
    schemas = tables_from_rows([("tags", "tag_id", "int", False, True, 0)])
    assert schemas == [
        TableSchema(
            name="tags",
            columns=[ColumnSchema(name="tag_id", type="int", is_id=False)],
            has_id=False,
            id_col="",
        )
    ]


def test_id_column_without_primary_key_is_not_an_id():
    schemas = tables_from_rows([("logs", "id", "int", False, False, 0)])
    assert schemas[0].has_id is False
    assert schemas[0].columns[0].is_id is False


def test_integer_flags_and_null_length_are_converted():
    schemas = tables_from_rows([("users", "email", "varchar", 1, 0, None)])
    column = schemas[0].columns[0]
    assert column.nullable is True
    assert column.is_id is False
    assert column.max_length == 0


def test_no_rows_gives_no_tables():
    assert tables_from_rows([]) == []


def test_table_seen_again_later_starts_a_new_schema():
    rows = [
        ("a", "id", "int", False, True, 0),
        ("b", "x", "text", True, False, 0),
        ("a", "y", "text", True, False, 0),
    ]
    schemas = tables_from_rows(rows)
    assert [s.name for s in schemas] == ["a", "b", "a"]
    assert sum(len(s.columns) for s in schemas) == len(rows)