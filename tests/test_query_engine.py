from __future__ import annotations

import pytest

from projectqa.errors import ForbiddenOperationError, TableNotAllowedError
from projectqa.query import QueryEngine, QueryErrorCode, parse_query, validate_statement
from projectqa.query.parser import AggregateCall, EqualsCondition, UnparsedCondition
from projectqa.tabular.store import TabularStore


class ExplodingStore:
    """Fails the test if the engine touches the store."""

    def __getattr__(self, name):
        raise AssertionError(f"store.{name} accessed")


@pytest.fixture
def store() -> TabularStore:
    store = TabularStore()
    store.import_table("employees", [
        {"name": "Ann", "dept": "eng", "age": 30, "salary": 100},
        {"name": "Bob", "dept": "sales", "age": 41, "salary": 200},
        {"name": "Cid", "dept": "Eng", "age": 25, "salary": ""},
    ])
    store.import_table("orders", [{"id": i} for i in range(500)])
    return store


@pytest.fixture
def engine(store) -> QueryEngine:
    return QueryEngine(store)


ALL = {"employees", "orders"}


class TestValidation:
    @pytest.mark.parametrize("query", [
        "update employees set dept = 'x'",
        "delete from employees",
        "with x as (select 1) select * from x",
        "  explain select * from employees",
        "selectx * from employees",
    ])
    def test_not_select_never_touches_store(self, query):
        result = QueryEngine(ExplodingStore()).execute(query, ALL, 100)

        assert not result.success
        assert result.error.code == QueryErrorCode.NOT_SELECT

    @pytest.mark.parametrize("keyword", ["update", "delete", "insert", "drop", "create", "alter"])
    def test_forbidden_keywords(self, engine, keyword):
        result = engine.execute(f"select * from employees where name = 'x' {keyword} employees", ALL, 100)
        assert result.error.code == QueryErrorCode.FORBIDDEN_KEYWORD

    def test_statement_separator(self, engine):
        result = engine.execute("select * from employees; select * from orders", ALL, 100)
        assert result.error.code == QueryErrorCode.FORBIDDEN_KEYWORD

    def test_keyword_inside_identifier_is_allowed(self):
        store = TabularStore()
        store.import_table("t", [{"created_at": "2024-01-01"}])
        result = QueryEngine(store).execute("select created_at from t", {"t"}, 100)
        assert result.success

    def test_missing_from(self, engine):
        result = engine.execute("select 1", ALL, 100)
        assert result.error.code == QueryErrorCode.MISSING_FROM

    def test_table_not_allowed_even_if_it_exists(self, engine):
        result = engine.execute("select * from orders", {"employees"}, 100)

        assert result.error.code == QueryErrorCode.TABLE_NOT_ALLOWED
        with pytest.raises(TableNotAllowedError):
            result.raise_for_error()

    def test_table_not_found(self, engine):
        result = engine.execute("select * from ghosts", {"ghosts"}, 100)
        assert result.error.code == QueryErrorCode.TABLE_NOT_FOUND

    def test_first_violation_wins(self, engine):
        result = engine.execute("select * from ghosts; drop table ghosts", set(), 100)
        assert result.error.code == QueryErrorCode.FORBIDDEN_KEYWORD

    def test_validate_statement(self):
        assert validate_statement("SELECT * FROM t") is None
        assert validate_statement("drop table t").code == QueryErrorCode.NOT_SELECT
        assert validate_statement("select * from t;").code == QueryErrorCode.FORBIDDEN_KEYWORD

    def test_error_category(self):
        error = validate_statement("insert into t values (1)")
        assert error.category is ForbiddenOperationError


class TestParseErrors:
    @pytest.mark.parametrize("query", [
        "select dept, count(*) from employees group by dept",
        "select * from employees join orders on employees.name = orders.id",
        "select * from employees limit many",
        "select name, count(*) from employees",
        "select * from employees where name = 'unterminated",
        "select median(age) from employees",
    ])
    def test_unsupported_grammar(self, engine, query):
        result = engine.execute(query, ALL, 100)
        assert result.error.code == QueryErrorCode.PARSE_ERROR

    def test_parse_column_query(self):
        statement = parse_query("SELECT name, dept AS team FROM t WHERE a = 'X' AND b > 3 ORDER BY name DESC LIMIT 5")

        assert statement.table == "t"
        assert [c.output_name for c in statement.columns] == ["name", "team"]
        assert statement.conditions[0] == EqualsCondition(column="a", value="X")
        assert isinstance(statement.conditions[1], UnparsedCondition)
        assert statement.order_by[0].descending
        assert statement.limit == 5
        assert not statement.aggregates

    def test_parse_aggregate_query(self):
        statement = parse_query("SELECT COUNT(*) AS n, MAX(age) FROM t WHERE a = 'X'")

        assert all(isinstance(c, AggregateCall) for c in statement.columns)
        assert [c.output_name for c in statement.columns] == ["n", "max(age)"]
        assert statement.limit is None


class TestExecution:
    def test_where_is_case_insensitive(self, engine):
        result = engine.execute("select * from employees where dept='eng'", ALL, 100)

        assert result.success
        assert [r["name"] for r in result.rows] == ["Ann", "Cid"]

    def test_where_numeric_literal(self, engine):
        result = engine.execute("select name from employees where age = 30", ALL, 100)
        assert result.rows == [{"name": "Ann"}]

    def test_where_conditions_are_anded(self, engine):
        result = engine.execute("select name from employees where dept = 'eng' and name = 'cid'", ALL, 100)
        assert result.rows == [{"name": "Cid"}]

    def test_unparseable_condition_keeps_rows(self, engine):
        result = engine.execute("select name from employees where age > 26", ALL, 100)
        assert len(result.rows) == 3

    def test_limit_is_clamped_to_ceiling(self, engine):
        result = engine.execute("select * from orders limit 9999", ALL, 100)
        assert result.success
        assert len(result.rows) == 100

    def test_explicit_lower_limit_wins(self, engine):
        result = engine.execute("select * from orders limit 7", ALL, 100)
        assert len(result.rows) == 7

    def test_default_limit_applies(self, engine):
        result = engine.execute("select * from orders", ALL, 50)
        assert len(result.rows) == 50

    def test_order_by_is_stable(self):
        store = TabularStore()
        store.import_table("t", [{"a": 1, "id": 1}, {"a": 1, "id": 2}, {"a": 2, "id": 3}])
        engine = QueryEngine(store)

        ascending = engine.execute("select * from t order by a", {"t"}, 100)
        descending = engine.execute("select * from t order by a desc", {"t"}, 100)

        assert [r["id"] for r in ascending.rows] == [1, 2, 3]
        assert [r["id"] for r in descending.rows] == [3, 1, 2]

    def test_order_by_numbers_and_missing_values(self):
        store = TabularStore()
        store.import_table("t", [{"v": "10"}, {"v": ""}, {"v": "9"}, {"v": "b"}, {"v": "A"}])
        result = QueryEngine(store).execute("select v from t order by v", {"t"}, 100)
        assert [r["v"] for r in result.rows] == ["", "9", "10", "A", "b"]

    @pytest.mark.parametrize("values", [
        [9, 12, "1x"],
        [12, "1x", 9],
        ["1x", 9, 12],
    ])
    def test_order_by_mixed_column_ignores_input_order(self, values):
        store = TabularStore()
        store.import_table("t", [{"v": v} for v in values])
        engine = QueryEngine(store)

        ascending = engine.execute("select v from t order by v", {"t"}, 100)
        descending = engine.execute("select v from t order by v desc", {"t"}, 100)

        assert [r["v"] for r in ascending.rows] == [9, 12, "1x"]
        assert [r["v"] for r in descending.rows] == ["1x", 12, 9]

    def test_order_by_multiple_keys(self, engine):
        result = engine.execute("select name from employees order by dept, age desc", ALL, 100)
        assert [r["name"] for r in result.rows] == ["Ann", "Cid", "Bob"]

    def test_projection_and_alias(self, engine):
        result = engine.execute("select name as who, dept from employees limit 1", ALL, 100)
        assert result.rows == [{"who": "Ann", "dept": "eng"}]
        assert result.columns == ["who", "dept"]

    def test_aggregates(self, engine):
        result = engine.execute(
            "select count(*), count(salary), sum(salary), avg(salary), min(age), max(age) from employees",
            ALL, 100,
        )
        assert result.rows == [{
            "count(*)": 3,
            "count(salary)": 2,
            "sum(salary)": 300,
            "avg(salary)": 150,
            "min(age)": 25,
            "max(age)": 41,
        }]

    def test_aggregate_alias_with_filter(self, engine):
        result = engine.execute("select count(*) as n from employees where dept = 'eng'", ALL, 100)
        assert result.rows == [{"n": 2}]

    def test_unknown_column_is_execution_failure(self, engine):
        result = engine.execute("select bogus from employees", ALL, 100)
        assert result.error.code == QueryErrorCode.EXECUTION_FAILED

    def test_rows_are_copies(self, engine, store):
        result = engine.execute("select * from employees", ALL, 100)
        result.rows[0]["name"] = "changed"
        assert store.get_table("employees").rows[0]["name"] == "Ann"
