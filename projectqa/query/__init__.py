from projectqa.query.engine import QueryEngine, QueryError, QueryErrorCode, QueryResult, validate_statement
from projectqa.query.parser import SelectStatement, parse_query

__all__ = [
    "QueryEngine",
    "QueryError",
    "QueryErrorCode",
    "QueryResult",
    "SelectStatement",
    "parse_query",
    "validate_statement",
]
