"""
sql_generator.py
AI agent turning a question into a SELECT query over one table.
"""
import logging
import threading
from typing import Optional, Sequence

from projectqa.ai_workflow.data_model import SqlGenerationResult
from projectqa.ai_workflow.utils.common_utils import clean_sql_response, get_schema_str, regularize_sql_query
from projectqa.ai_workflow.utils.openai_utils import OracleClient
from projectqa.constants import DEFAULT_SQL_LIMIT, MAX_SQL_LIMIT, QUESTION_LOG_PREVIEW_CHARS
from projectqa.errors import OracleUnavailableError
from projectqa.query.engine import validate_statement
from projectqa.tabular.store import Schema
from projectqa.utils import preview

logger = logging.getLogger(__name__)


def get_sql_system_prompt(schemas: Sequence[Schema]) -> str:
    return f"""
You are the SQL Writer. Your job is to write one SQL query that answers the user's question
about spreadsheet data.

Database Schema:
{get_schema_str(schemas)}

Supported SQL (nothing else will run):
- SELECT * or SELECT col1, col2 FROM <table>
- SELECT COUNT(*), COUNT(col), SUM(col), AVG(col), MIN(col), MAX(col) FROM <table>, optionally AS alias.
  Aggregates cannot be mixed with plain columns, there is no GROUP BY.
- WHERE col = 'value' [AND col = 'value' ...]  (equality only, compared case-insensitively)
- ORDER BY col [ASC|DESC][, col [ASC|DESC]]
- LIMIT n  (default {DEFAULT_SQL_LIMIT}, max {MAX_SQL_LIMIT})

Rules:
1. Use exact table and column names from the schema.
2. Query a single table, no JOIN, no subqueries, no semicolon.
3. Prefer simple, readable queries.

Return only the SQL query, nothing else.
"""


def get_sql_user_prompt(question: str, previous_error: Optional[str] = None) -> str:
    if previous_error:
        return (
            f'User Question: "{question}"\n\n'
            f"Previous attempt failed: {previous_error}\n"
            "Please generate a simpler, more direct SQL query."
        )
    return f'User Question: "{question}"\n\nGenerate a SQL query to answer this question.'


def generate_sql_query(question: str,
                       schemas: Sequence[Schema],
                       oracle: OracleClient,
                       previous_error: Optional[str] = None,
                       cancel_event: Optional[threading.Event] = None) -> SqlGenerationResult:
    '''
        Ask the oracle for a query and check it is a read-only SELECT.
        An oracle failure or timeout is a failed attempt, not an exception.
    '''
    try:
        response = oracle.complete(
            get_sql_system_prompt(schemas),
            get_sql_user_prompt(question, previous_error),
            cancel_event,
        )
    except OracleUnavailableError as e:
        logger.warning(f"SQL generation failed for '{preview(question, QUESTION_LOG_PREVIEW_CHARS)}': {e}")
        return SqlGenerationResult(success=False, error=str(e))

    query = regularize_sql_query(clean_sql_response(response))
    if not query:
        return SqlGenerationResult(success=False, error="No SQL query generated")

    error = validate_statement(query)
    if error is not None:
        return SqlGenerationResult(
            success=False,
            query=query,
            error=f"Generated query is not a valid SELECT statement ({error.message})",
        )

    return SqlGenerationResult(success=True, query=query)
