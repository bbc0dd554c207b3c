from __future__ import annotations

import pytest

from projectqa.errors import TableNotFoundError
from projectqa.tabular.store import TabularRepository, TabularStore
from projectqa.utils import is_valid_identifier, normalize_column_name, normalize_table_name


class TestNormalization:
    @pytest.mark.parametrize("raw,expected", [
        ("Sales Data", "sales_data"),
        ("  Q1 -- Results!! ", "q1_results"),
        ("2024 Budget", "t_2024_budget"),
        ("___", "table_1"),
        ("", "table_1"),
    ])
    def test_table_names(self, raw, expected):
        assert normalize_table_name(raw) == expected

    def test_table_name_truncated(self):
        name = normalize_table_name("x" * 100)
        assert len(name) == 63
        assert is_valid_identifier(name)

    def test_column_names(self):
        assert normalize_column_name("First Name") == "first_name"
        assert normalize_column_name("1st") == "c_1st"
        assert normalize_column_name("", 4) == "col_5"
        assert normalize_column_name(None, 0) == "col_1"


class TestTabularStore:
    def test_import_normalizes_names_and_columns(self):
        store = TabularStore()
        table = store.import_table("Staff List", [{"First Name": "Ann", "Dept.": "eng"}])

        assert table.name == "staff_list"
        assert table.columns == ("first_name", "dept")
        assert table.rows == [{"first_name": "Ann", "dept": "eng"}]

    def test_every_row_has_all_columns(self):
        store = TabularStore()
        table = store.import_table("t", [{"a": 1}, {"b": 2}])

        assert table.columns == ("a", "b")
        assert table.rows == [{"a": 1, "b": ""}, {"a": "", "b": 2}]

    def test_duplicate_normalized_columns_get_suffixes(self):
        store = TabularStore()
        table = store.import_table("t", [{"Amount": 1, "amount ": 2, "AMOUNT!": 3}])
        assert table.columns == ("amount", "amount_2", "amount_3")

    def test_empty_table_is_skipped(self):
        store = TabularStore()
        assert store.import_table("empty", []) is None
        assert len(store) == 0

    def test_get_table_not_found(self):
        store = TabularStore()
        with pytest.raises(TableNotFoundError):
            store.get_table("missing")

    def test_get_table_is_case_insensitive(self):
        store = TabularStore()
        store.import_table("employees", [{"name": "Ann"}])
        assert store.get_table("Employees").name == "employees"
        assert store.has_table("EMPLOYEES")

    def test_reimport_replaces_table(self):
        store = TabularStore()
        store.import_table("t", [{"a": 1}])
        store.import_table("t", [{"a": 1}, {"a": 2}])
        assert store.get_table("t").row_count == 2
        assert store.table_names() == ["t"]

    def test_list_schemas(self):
        store = TabularStore()
        store.import_table("employees", [{"name": "Ann", "dept": "eng"}, {"name": "Bob", "dept": "ops"}])

        schemas = store.list_schemas()
        assert len(schemas) == 1
        assert schemas[0].to_dict() == {"table": "employees", "columns": ["name", "dept"], "rowCount": 2}

    def test_remove_table(self):
        store = TabularStore()
        store.import_table("t", [{"a": 1}])
        assert store.remove_table("t") is True
        assert store.remove_table("t") is False


class TestTabularRepository:
    def test_stores_are_per_project(self, repository):
        repository.get_store("p1").import_table("t", [{"a": 1}])

        assert repository.has_tables("p1")
        assert not repository.has_tables("p2")
        assert repository.get_store("p1") is repository.get_store("p1")

    def test_drop(self, repository):
        repository.get_store("p1").import_table("t", [{"a": 1}])
        repository.drop("p1")
        assert not repository.has_tables("p1")

    def test_persist_and_load_round_trip(self, tmp_path):
        first = TabularRepository(data_dir=str(tmp_path))
        first.get_store("p1").import_table("employees", [
            {"name": "Ann", "age": 30},
            {"name": "Bob", "age": 41},
        ])
        assert first.persist("p1") == 1
        assert (tmp_path / "p1.duckdb").exists()

        second = TabularRepository(data_dir=str(tmp_path))
        store = second.load("p1")

        table = store.get_table("employees")
        assert table.columns == ("name", "age")
        assert [row["name"] for row in table.rows] == ["Ann", "Bob"]
        assert [row["age"] for row in table.rows] == [30, 41]
