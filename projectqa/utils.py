# ------------------------------
# Services's utils
# ------------------------------

import logging
import math
import re
import time
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Optional

import tiktoken

from projectqa.constants import DEFAULT_EMBEDDING_MODEL, DEFAULT_TOKEN_ENCODING, MAX_IDENTIFIER_LENGTH

logger = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def _get_encoding(model_name: str):
    try:
        return tiktoken.encoding_for_model(model_name)
    except KeyError:
        logger.warning(f"No tiktoken mapping for model '{model_name}', using {DEFAULT_TOKEN_ENCODING}")
        return tiktoken.get_encoding(DEFAULT_TOKEN_ENCODING)


def get_token_count(text: str, model_name: str = DEFAULT_EMBEDDING_MODEL) -> int:
    '''
      Get the token count of the text.
    '''
    if not text:
        return 0
    encoding = _get_encoding(model_name)
    tokens = encoding.encode(text)

    return len(tokens)


def _normalize(name: Any) -> str:
    text = str(name).strip().lower() if name is not None else ""
    text = re.sub(r"[^a-z0-9_]", "_", text)
    text = re.sub(r"_+", "_", text)
    return text.strip("_")


def normalize_table_name(name: Any, index: int = 0) -> str:
    '''
      Normalize a sheet name into a table identifier.
      Lowercase, [a-z0-9_] only, never starts with a digit, at most 63 chars.
      Names that normalize to nothing become "table_<index + 1>".
    '''
    normalized = _normalize(name)
    if not normalized:
        return f"table_{index + 1}"
    if normalized[0].isdigit():
        normalized = f"t_{normalized}"
    return normalized[:MAX_IDENTIFIER_LENGTH].rstrip("_")


def normalize_column_name(name: Any, index: int = 0) -> str:
    '''
      Normalize a spreadsheet header into a column identifier.
      Same rules as table names, empty headers become "col_<index + 1>".
    '''
    normalized = _normalize(name)
    if not normalized:
        return f"col_{index + 1}"
    if normalized[0].isdigit():
        normalized = f"c_{normalized}"
    return normalized[:MAX_IDENTIFIER_LENGTH].rstrip("_")


def is_valid_identifier(name: str) -> bool:
    return (
        bool(name)
        and len(name) <= MAX_IDENTIFIER_LENGTH
        and re.fullmatch(r"[a-z_][a-z0-9_]*", name) is not None
    )


def stringify_value(value: Any) -> str:
    '''
      Render a cell value the way it is compared and displayed.
      Integral floats lose their ".0" so 30.0 from a spreadsheet equals '30' in a query.
    '''
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def as_number(value: Any) -> Optional[float]:
    '''
      Return the numeric value of a cell, or None when it isn't a number.
    '''
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", ""))
        except ValueError:
            return None
    return None


def preview(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class Timer:
    '''
      Measure and log the duration of an operation.

      with Timer("Excel import") as t:
          ...
      t.duration_ms
    '''

    def __init__(self, operation: str):
        self.operation = operation
        self.duration_ms = 0.0
        self._start = 0.0

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        logger.debug(f"{self.operation} completed in {self.duration_ms:.2f}ms")
        return False
