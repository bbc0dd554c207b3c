"""
parser.py
Parses the supported SELECT dialect into a small syntax tree.

    SELECT <select_list> FROM <table>
        [WHERE <cond> (AND <cond>)*]
        [ORDER BY <col> [ASC|DESC] (, <col> [ASC|DESC])*]
        [LIMIT <n>]

<select_list> is * or columns / COUNT|SUM|AVG|MIN|MAX calls with an optional alias.

WHERE conditions that are not `column = value` are kept as UnparsedCondition
and always match. This is a deliberate, documented looseness: a condition the
engine does not understand never removes rows.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from projectqa.constants import SUPPORTED_AGGREGATES
from projectqa.errors import QueryParseError
from projectqa.query.tokenizer import Token, TokenType, tokenize
from projectqa.utils import stringify_value

logger = logging.getLogger(__name__)

# Keywords that end a WHERE clause
_CLAUSE_KEYWORDS = ("order", "limit", "group", "having")

_UNSUPPORTED_CLAUSES = {
    "group": "GROUP BY is not supported",
    "having": "HAVING is not supported",
    "join": "JOIN is not supported",
    "inner": "JOIN is not supported",
    "left": "JOIN is not supported",
    "right": "JOIN is not supported",
    "union": "UNION is not supported",
    "offset": "OFFSET is not supported",
}

_RESERVED = {"select", "from", "where", "and", "or", "order", "by", "limit", "asc", "desc", "as"} | set(_UNSUPPORTED_CLAUSES)


@dataclass(frozen=True)
class ColumnRef:
    name: str
    alias: Optional[str] = None

    @property
    def output_name(self) -> str:
        return self.alias or self.name


@dataclass(frozen=True)
class AggregateCall:
    function: str                   # count | sum | avg | min | max
    column: Optional[str] = None    # None means *
    alias: Optional[str] = None

    @property
    def output_name(self) -> str:
        return self.alias or f"{self.function}({self.column or '*'})"


@dataclass(frozen=True)
class EqualsCondition:
    column: str
    value: str

    def matches(self, row: Dict[str, Any]) -> bool:
        if self.column not in row:
            return False
        return stringify_value(row[self.column]).lower() == self.value.lower()


@dataclass(frozen=True)
class UnparsedCondition:
    text: str

    def matches(self, row: Dict[str, Any]) -> bool:
        return True


Condition = Union[EqualsCondition, UnparsedCondition]
SelectItem = Union[ColumnRef, AggregateCall]


@dataclass(frozen=True)
class OrderItem:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class SelectStatement:
    table: str
    columns: Tuple[SelectItem, ...] = ()        # empty means *
    conditions: Tuple[Condition, ...] = ()
    order_by: Tuple[OrderItem, ...] = ()
    limit: Optional[int] = None

    @property
    def is_star(self) -> bool:
        return not self.columns

    @property
    def aggregates(self) -> List[AggregateCall]:
        return [c for c in self.columns if isinstance(c, AggregateCall)]


def _is_identifier(token: Token) -> bool:
    return token.type == TokenType.QUOTED or (token.type == TokenType.WORD and token.value not in _RESERVED)


class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def expect_word(self, word: str) -> Token:
        if not self.current.is_word(word):
            raise QueryParseError(f"Expected {word.upper()} at position {self.current.position}")
        return self.advance()

    def expect_identifier(self, what: str) -> str:
        token = self.current
        if not _is_identifier(token):
            raise QueryParseError(f"Expected {what} at position {token.position}, got '{token.value}'")
        self.advance()
        return token.value

    def parse(self) -> SelectStatement:
        self.expect_word("select")
        columns = self.parse_select_list()
        self.expect_word("from")
        table = self.expect_identifier("a table name")

        conditions: Tuple[Condition, ...] = ()
        order_by: Tuple[OrderItem, ...] = ()
        limit: Optional[int] = None

        if self.current.is_word("where"):
            self.advance()
            conditions = self.parse_where()
        if self.current.is_word("order"):
            self.advance()
            self.expect_word("by")
            order_by = self.parse_order_by()
        if self.current.is_word("limit"):
            self.advance()
            limit = self.parse_limit()

        token = self.current
        if token.type != TokenType.EOF:
            if token.type == TokenType.WORD and token.value in _UNSUPPORTED_CLAUSES:
                raise QueryParseError(_UNSUPPORTED_CLAUSES[token.value])
            raise QueryParseError(f"Unexpected token '{token.value}' at position {token.position}")

        statement = SelectStatement(
            table=table,
            columns=tuple(columns),
            conditions=conditions,
            order_by=order_by,
            limit=limit,
        )
        if statement.aggregates and len(statement.aggregates) != len(statement.columns):
            raise QueryParseError("Aggregates cannot be mixed with plain columns without GROUP BY")
        return statement

    def parse_select_list(self) -> List[SelectItem]:
        if self.current.is_symbol("*"):
            self.advance()
            return []

        items: List[SelectItem] = [self.parse_select_item()]
        while self.current.is_symbol(","):
            self.advance()
            items.append(self.parse_select_item())
        return items

    def parse_select_item(self) -> SelectItem:
        token = self.current
        if token.type == TokenType.WORD and self.tokens[self.pos + 1].is_symbol("("):
            function = token.value
            if function not in SUPPORTED_AGGREGATES:
                raise QueryParseError(f"Function {function.upper()} is not supported")
            self.advance()
            self.advance()  # (
            if self.current.is_symbol("*"):
                if function != "count":
                    raise QueryParseError(f"{function.upper()}(*) is not supported")
                self.advance()
                column = None
            else:
                column = self.expect_identifier("a column name")
            if not self.current.is_symbol(")"):
                raise QueryParseError(f"Expected ) at position {self.current.position}")
            self.advance()
            return AggregateCall(function=function, column=column, alias=self.parse_alias())

        name = self.expect_identifier("a column name")
        return ColumnRef(name=name, alias=self.parse_alias())

    def parse_alias(self) -> Optional[str]:
        if self.current.is_word("as"):
            self.advance()
            return self.expect_identifier("an alias")
        if _is_identifier(self.current):
            return self.advance().value
        return None

    def parse_where(self) -> Tuple[Condition, ...]:
        segments: List[List[Token]] = [[]]
        depth = 0
        while self.current.type != TokenType.EOF:
            token = self.current
            if depth == 0 and token.type == TokenType.WORD and token.value in _CLAUSE_KEYWORDS:
                break
            if token.is_symbol("("):
                depth += 1
            elif token.is_symbol(")"):
                depth = max(0, depth - 1)
            if depth == 0 and token.is_word("and"):
                segments.append([])
            else:
                segments[-1].append(token)
            self.advance()

        return tuple(_build_condition(segment) for segment in segments)

    def parse_order_by(self) -> Tuple[OrderItem, ...]:
        items: List[OrderItem] = []
        segment: List[Token] = []
        while True:
            token = self.current
            if token.type == TokenType.EOF or token.is_word("limit") or token.is_symbol(","):
                item = _build_order_item(segment)
                if item is not None:
                    items.append(item)
                segment = []
                if not token.is_symbol(","):
                    break
                self.advance()
                continue
            segment.append(token)
            self.advance()
        return tuple(items)

    def parse_limit(self) -> int:
        token = self.advance()
        if token.type != TokenType.NUMBER or "." in token.value:
            raise QueryParseError(f"LIMIT expects a whole number, got '{token.value}'")
        return int(token.value)


def _build_condition(tokens: List[Token]) -> Condition:
    if (
        len(tokens) == 3
        and _is_identifier(tokens[0])
        and tokens[1].is_symbol("=")
        and tokens[2].type in (TokenType.STRING, TokenType.NUMBER, TokenType.QUOTED, TokenType.WORD)
    ):
        value_token = tokens[2]
        if value_token.type == TokenType.NUMBER:
            value = stringify_value(float(value_token.value))
        else:
            value = value_token.value
        return EqualsCondition(column=tokens[0].value, value=value)

    text = " ".join(t.text for t in tokens)
    logger.info(f"Condition '{text}' not understood, treated as always true")
    return UnparsedCondition(text=text)


def _build_order_item(tokens: List[Token]) -> Optional[OrderItem]:
    if len(tokens) == 1 and _is_identifier(tokens[0]):
        return OrderItem(column=tokens[0].value)
    if len(tokens) == 2 and _is_identifier(tokens[0]) and tokens[1].is_word("asc", "desc"):
        return OrderItem(column=tokens[0].value, descending=tokens[1].value == "desc")
    if tokens:
        logger.info(f"ORDER BY item '{' '.join(t.text for t in tokens)}' not understood, ignored")
    return None


def parse_query(query: str) -> SelectStatement:
    """
    Parse a query into a SelectStatement.

    Raises:
        QueryParseError: when the query does not fit the supported grammar
    """
    return _Parser(tokenize(query)).parse()
