"""
tokenizer.py
Splits a query string into tokens for the SELECT parser.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List

from projectqa.errors import QueryParseError


class TokenType(str, Enum):
    WORD = "word"               # keyword or bare identifier, value is lowercased
    QUOTED = "quoted"           # "double quoted" or `backtick` identifier
    STRING = "string"           # 'single quoted' literal, value keeps its case
    NUMBER = "number"
    SYMBOL = "symbol"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    position: int

    def is_word(self, *words: str) -> bool:
        return self.type == TokenType.WORD and self.value in words

    def is_symbol(self, symbol: str) -> bool:
        return self.type == TokenType.SYMBOL and self.value == symbol

    @property
    def text(self) -> str:
        """The token as it would be written back in a query."""
        if self.type == TokenType.STRING:
            return "'" + self.value.replace("'", "''") + "'"
        if self.type == TokenType.QUOTED:
            return f'"{self.value}"'
        return self.value


_TWO_CHAR_SYMBOLS = ("<=", ">=", "<>", "!=", "||")


def tokenize(query: str) -> List[Token]:
    """
    Tokenize a query. Unknown characters become single-character symbols so
    the parser can decide what to do with them.

    Raises:
        QueryParseError: on an unterminated string or quoted identifier
    """
    tokens: List[Token] = []
    i = 0
    n = len(query)

    while i < n:
        ch = query[i]

        if ch.isspace():
            i += 1
            continue

        if ch.isalpha() or ch == "_":
            start = i
            while i < n and (query[i].isalnum() or query[i] == "_"):
                i += 1
            tokens.append(Token(TokenType.WORD, query[start:i].lower(), start))
            continue

        if ch.isdigit() or (ch == "." and i + 1 < n and query[i + 1].isdigit()):
            start = i
            seen_dot = False
            while i < n and (query[i].isdigit() or (query[i] == "." and not seen_dot)):
                if query[i] == ".":
                    seen_dot = True
                i += 1
            tokens.append(Token(TokenType.NUMBER, query[start:i], start))
            continue

        if ch == "'":
            start = i
            i += 1
            chars = []
            while True:
                if i >= n:
                    raise QueryParseError(f"Unterminated string literal at position {start}")
                if query[i] == "'":
                    # '' is an escaped quote
                    if i + 1 < n and query[i + 1] == "'":
                        chars.append("'")
                        i += 2
                        continue
                    i += 1
                    break
                chars.append(query[i])
                i += 1
            tokens.append(Token(TokenType.STRING, "".join(chars), start))
            continue

        if ch in ('"', '`'):
            start = i
            end = query.find(ch, i + 1)
            if end == -1:
                raise QueryParseError(f"Unterminated quoted identifier at position {start}")
            tokens.append(Token(TokenType.QUOTED, query[i + 1:end].lower(), start))
            i = end + 1
            continue

        if query[i:i + 2] in _TWO_CHAR_SYMBOLS:
            tokens.append(Token(TokenType.SYMBOL, query[i:i + 2], i))
            i += 2
            continue

        tokens.append(Token(TokenType.SYMBOL, ch, i))
        i += 1

    tokens.append(Token(TokenType.EOF, "", n))
    return tokens
