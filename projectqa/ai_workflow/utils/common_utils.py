import json
import logging
import re
from typing import Any, Dict, List, Sequence

from projectqa.ai_workflow.data_model import IterationResult
from projectqa.constants import SQL_RESULT_PREVIEW_ROWS
from projectqa.tabular.store import Schema
from projectqa.utils import stringify_value

logger = logging.getLogger(__name__)

_SQL_FENCE = re.compile(r"```(?:sql)?\s*", re.IGNORECASE)
_EXPLANATION_MARKERS = ("explanation", "note:")


def clean_sql_response(text: str) -> str:
    """
    Turn a model reply into a single line query.

    Drops markdown fences, comment lines and explanation lines.
    """
    if not text:
        return ""
    query = _SQL_FENCE.sub("", text.strip())
    sql_lines = [
        line.strip() for line in query.split("\n")
        if line.strip()
        and not line.strip().startswith("--")
        and not line.strip().startswith("#")
        and not line.strip().lower().startswith(_EXPLANATION_MARKERS)
    ]
    return " ".join(sql_lines).strip()


def regularize_sql_query(query: str) -> str:
    """
    Check and regularize a SQL query.

    Args:
        query: The SQL query to process

    Returns:
        The processed SQL query
    """
    if not query:
        return query

    query = query.strip()

    # A single trailing statement terminator is harmless, anything else is rejected by the engine
    while query.endswith(";"):
        query = query[:-1].rstrip()

    return query


def format_sql_results_for_llm(rows: List[Dict[str, Any]], query: str,
                               max_rows: int = SQL_RESULT_PREVIEW_ROWS) -> str:
    '''
        Format query rows as text for the answering model.
        Shows at most max_rows rows, the total row count is always reported.
    '''
    if not rows:
        return f"SQL Query: {query}\nResult: No data found."

    columns = list(rows[0].keys())
    display_rows = rows[:max_rows]

    formatted = f"SQL Query: {query}\n\n"
    formatted += f"Results: {len(rows)} rows found\n\n"
    formatted += f"Columns: {', '.join(columns)}\n\n"

    formatted += "Sample Data:\n"
    for i, row in enumerate(display_rows):
        formatted += f"Row {i + 1}: "
        formatted += ", ".join(f"{col}: {stringify_value(row.get(col))}" for col in columns)
        formatted += "\n"

    if len(rows) > max_rows:
        formatted += f"\n... and {len(rows) - max_rows} more rows"

    return formatted


def get_schema_str(schemas: Sequence[Schema]) -> str:
    return json.dumps([s.to_dict() for s in schemas], indent=2)


def get_iterations_str(iterations: Sequence[IterationResult]) -> str:
    return "\n\n".join(
        f"Approach {i + 1} ({it.approach.value}): {it.result}"
        for i, it in enumerate(iterations)
    )


def average_confidence(iterations: Sequence[IterationResult]) -> float:
    if not iterations:
        return 0.0
    return sum(it.confidence for it in iterations) / len(iterations)


def clamp_score(value: Any, default: float) -> float:
    '''
        Coerce a model-provided score into [0, 1]. Non numeric values give the default.
    '''
    if isinstance(value, bool):
        return default
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:  # NaN
        return default
    return max(0.0, min(score, 1.0))
