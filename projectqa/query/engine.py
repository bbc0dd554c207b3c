# ------------------------------
# Module: engine.py
# Description: Validate and evaluate restricted SELECT queries against a project's tabular store
# ------------------------------

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from projectqa.constants import DEFAULT_SQL_LIMIT, FORBIDDEN_SQL_KEYWORDS, MAX_SQL_LIMIT
from projectqa.errors import (
    ExecutionFailedError,
    ForbiddenOperationError,
    ProjectQAError,
    QueryParseError,
    TableNotAllowedError,
    TableNotFoundError,
)
from projectqa.query.parser import AggregateCall, OrderItem, SelectStatement, parse_query
from projectqa.tabular.store import TabularStore
from projectqa.utils import Timer, as_number, stringify_value

logger = logging.getLogger(__name__)


class QueryErrorCode(str, Enum):
    NOT_SELECT = "not_select"
    FORBIDDEN_KEYWORD = "forbidden_keyword"
    MISSING_FROM = "missing_from"
    TABLE_NOT_ALLOWED = "table_not_allowed"
    TABLE_NOT_FOUND = "table_not_found"
    PARSE_ERROR = "parse_error"
    EXECUTION_FAILED = "execution_failed"


_ERROR_CLASSES: Dict[QueryErrorCode, Type[ProjectQAError]] = {
    QueryErrorCode.NOT_SELECT: ForbiddenOperationError,
    QueryErrorCode.FORBIDDEN_KEYWORD: ForbiddenOperationError,
    QueryErrorCode.MISSING_FROM: QueryParseError,
    QueryErrorCode.TABLE_NOT_ALLOWED: TableNotAllowedError,
    QueryErrorCode.TABLE_NOT_FOUND: TableNotFoundError,
    QueryErrorCode.PARSE_ERROR: QueryParseError,
    QueryErrorCode.EXECUTION_FAILED: ExecutionFailedError,
}


@dataclass(frozen=True)
class QueryError:
    code: QueryErrorCode
    message: str

    @property
    def category(self) -> Type[ProjectQAError]:
        """The exception class of the error taxonomy this code belongs to."""
        return _ERROR_CLASSES[self.code]

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


@dataclass
class QueryResult:
    success: bool
    rows: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[QueryError] = None

    @classmethod
    def failure(cls, code: QueryErrorCode, message: str) -> "QueryResult":
        return cls(success=False, rows=[], error=QueryError(code=code, message=message))

    @property
    def columns(self) -> List[str]:
        return list(self.rows[0].keys()) if self.rows else []

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error.category(self.error.message)


_SELECT_PREFIX = re.compile(r"^select\s", re.IGNORECASE)
_FORBIDDEN = re.compile(r"\b(" + "|".join(FORBIDDEN_SQL_KEYWORDS) + r")\b", re.IGNORECASE)
_FROM_TABLE = re.compile(r"\bfrom\s+[\"`]?([a-z0-9_]+)[\"`]?", re.IGNORECASE)


def validate_statement(query: str) -> Optional[QueryError]:
    '''
        Check that a statement is a read-only SELECT.
        Returns None when it is, otherwise the first violation.
    '''
    text = (query or "").strip()
    if not _SELECT_PREFIX.match(text):
        return QueryError(QueryErrorCode.NOT_SELECT, "Only SELECT queries are allowed")

    if ";" in text:
        return QueryError(QueryErrorCode.FORBIDDEN_KEYWORD, "Statement separators are not allowed")

    match = _FORBIDDEN.search(text)
    if match:
        return QueryError(
            QueryErrorCode.FORBIDDEN_KEYWORD,
            f"Forbidden keyword '{match.group(1).lower()}' in query",
        )
    return None


# :::::: Evaluation Related :::::: #

def sort_key(value: Any) -> Tuple[int, float, str]:
    '''
        Total order over cell values: missing first, then numbers, then text (case-insensitive).
    '''
    text = stringify_value(value)
    if text == "":
        return (0, 0.0, "")
    number = as_number(text)
    if number is not None:
        return (1, number, "")
    return (2, 0.0, text.lower())


def _sort_rows(rows: List[Dict[str, Any]], order_by: Iterable[OrderItem]) -> List[Dict[str, Any]]:
    ordered = list(rows)
    # One stable pass per key, last key first; reverse=True keeps ties in row order
    for item in reversed(list(order_by)):
        ordered.sort(key=lambda row: sort_key(row.get(item.column, "")), reverse=item.descending)
    return ordered


def _aggregate(call: AggregateCall, rows: List[Dict[str, Any]]) -> Any:
    if call.function == "count":
        if call.column is None:
            return len(rows)
        return sum(1 for row in rows if stringify_value(row.get(call.column)) != "")

    values = [row.get(call.column) for row in rows]

    if call.function in ("sum", "avg"):
        numbers = [n for n in (as_number(v) for v in values) if n is not None]
        if not numbers:
            return None
        total = sum(numbers)
        result = total if call.function == "sum" else total / len(numbers)
        return int(result) if float(result).is_integer() else result

    present = [v for v in values if stringify_value(v) != ""]
    if not present:
        return None
    ordered = sorted(present, key=sort_key)
    return ordered[0] if call.function == "min" else ordered[-1]


class QueryEngine:
    '''
      Evaluates SELECT queries against one project's TabularStore.
      execute() never raises, failures come back in the QueryResult.
    '''

    def __init__(self, store: TabularStore):
        self.store = store

    def execute(self, query: str, allowed_tables: Iterable[str], limit: int = DEFAULT_SQL_LIMIT) -> QueryResult:
        """
        Execute a query.

        Args:
            query: The SELECT statement
            allowed_tables: The tables this query may read
            limit: Row ceiling; an explicit LIMIT in the query can only lower it

        Returns:
            QueryResult with the rows, or with the first validation / execution error
        """
        try:
            with Timer("Query execution") as timer:
                result = self._execute(query, allowed_tables, limit)
        except Exception as e:
            logger.error(f"Query execution failed: {e}", exc_info=True)
            return QueryResult.failure(QueryErrorCode.EXECUTION_FAILED, str(e) or e.__class__.__name__)

        if result.success:
            logger.info(f"Query returned {len(result.rows)} rows in {timer.duration_ms:.2f}ms")
        else:
            logger.info(f"Query rejected ({result.error}) for: {query}")
        return result

    def _execute(self, query: str, allowed_tables: Iterable[str], limit: int) -> QueryResult:
        error = validate_statement(query)
        if error is not None:
            return QueryResult(success=False, error=error)

        match = _FROM_TABLE.search(query)
        if not match:
            return QueryResult.failure(QueryErrorCode.MISSING_FROM, "No FROM <table> clause found")
        table_name = match.group(1).lower()

        allowed = {t.strip().lower() for t in allowed_tables}
        if table_name not in allowed:
            return QueryResult.failure(
                QueryErrorCode.TABLE_NOT_ALLOWED,
                f"Table '{table_name}' is not allowed. Allowed tables: {', '.join(sorted(allowed)) or 'none'}",
            )

        if not self.store.has_table(table_name):
            return QueryResult.failure(QueryErrorCode.TABLE_NOT_FOUND, f"Table '{table_name}' not found")

        try:
            statement = parse_query(query)
        except QueryParseError as e:
            return QueryResult.failure(QueryErrorCode.PARSE_ERROR, str(e))

        if statement.table != table_name:
            return QueryResult.failure(
                QueryErrorCode.PARSE_ERROR,
                f"Expected a single table '{table_name}', parsed '{statement.table}'",
            )

        try:
            table = self.store.get_table(table_name)
        except TableNotFoundError as e:
            # Removed between the check and the read
            return QueryResult.failure(QueryErrorCode.TABLE_NOT_FOUND, str(e))

        ceiling = max(0, min(limit, MAX_SQL_LIMIT))
        effective_limit = ceiling if statement.limit is None else min(statement.limit, ceiling)

        for item in statement.columns:
            column = item.column if isinstance(item, AggregateCall) else item.name
            if column is not None and column not in table.columns:
                return QueryResult.failure(
                    QueryErrorCode.EXECUTION_FAILED,
                    f"Column '{column}' not found in table '{table_name}'",
                )

        return QueryResult(success=True, rows=self._evaluate(statement, table.rows, effective_limit))

    def _evaluate(self, statement: SelectStatement, rows: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
        rows = [dict(row) for row in rows]
        rows = [row for row in rows if all(cond.matches(row) for cond in statement.conditions)]

        if statement.aggregates:
            aggregated = {call.output_name: _aggregate(call, rows) for call in statement.aggregates}
            return [aggregated][:limit]

        if statement.order_by:
            rows = _sort_rows(rows, statement.order_by)

        rows = rows[:limit]

        if statement.is_star:
            return rows
        return [{item.output_name: row.get(item.name, "") for item in statement.columns} for row in rows]
