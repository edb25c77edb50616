"""Tokenizer for directive expressions.

The whole grammar is scanned by one alternation regex whose named groups
identify the token kind. Keywords are recognized after the fact by looking
identifiers up in ``KEYWORDS``; ``not in`` is folded into a single token.
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator

from lazytree.errors import ExpressionError


class TokenType(Enum):
    NUMBER = auto()
    STRING = auto()
    BOOLEAN = auto()
    NULL = auto()
    IDENTIFIER = auto()

    EQ = auto()
    NEQ = auto()
    LT = auto()
    LTE = auto()
    GT = auto()
    GTE = auto()

    AND = auto()
    OR = auto()
    NOT = auto()
    IN = auto()
    NOT_IN = auto()

    PLUS = auto()
    MINUS = auto()
    MULTIPLY = auto()
    DIVIDE = auto()
    MODULO = auto()
    QUESTION = auto()

    PLACEHOLDER = auto()  # ${
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LBRACE = auto()
    RBRACE = auto()
    COMMA = auto()
    DOT = auto()
    COLON = auto()

    EOF = auto()


TokenValue = str | int | float | bool | None


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: TokenValue
    position: int
    line: int = 1
    column: int = 1

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, pos={self.position})"


class LexerError(ExpressionError):
    """Raised on a character that starts no token."""

    def __init__(self, message: str, position: int, line: int = 1, column: int = 1):
        self.position = position
        self.line = line
        self.column = column
        super().__init__(f"{message} at line {line}, column {column}")


# Symbol spellings, longest first so the alternation prefers them.
SYMBOLS: dict[str, TokenType] = {
    "${": TokenType.PLACEHOLDER,
    "===": TokenType.EQ,
    "!==": TokenType.NEQ,
    "==": TokenType.EQ,
    "!=": TokenType.NEQ,
    "<=": TokenType.LTE,
    ">=": TokenType.GTE,
    "&&": TokenType.AND,
    "||": TokenType.OR,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "!": TokenType.NOT,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.MULTIPLY,
    "/": TokenType.DIVIDE,
    "%": TokenType.MODULO,
    "?": TokenType.QUESTION,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
    ":": TokenType.COLON,
}

KEYWORDS: dict[str, tuple[TokenType, TokenValue]] = {
    "true": (TokenType.BOOLEAN, True),
    "false": (TokenType.BOOLEAN, False),
    "null": (TokenType.NULL, None),
    "undefined": (TokenType.NULL, None),
    "and": (TokenType.AND, "and"),
    "or": (TokenType.OR, "or"),
    "not": (TokenType.NOT, "not"),
    "in": (TokenType.IN, "in"),
}

_SCANNER = re.compile(
    "|".join(
        [
            r"(?P<space>\s+)",
            r"(?P<number>\d+(?:\.\d+)?)",
            r"(?P<string>\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')",
            r"(?P<name>[A-Za-z_]\w*)",
            "(?P<symbol>" + "|".join(re.escape(s) for s in SYMBOLS) + ")",
        ]
    )
)
_FOLLOWING_IN = re.compile(r"\s+in\b", re.IGNORECASE)
_ESCAPE = re.compile(r"\\(.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def _unescape(body: str) -> str:
    return _ESCAPE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


class Lexer:
    """Produces tokens for one expression source.

    Usage:
        tokens = Lexer('..lang === "es" ? "Hola" : "Hello"').tokenize()
    """

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", source)]

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            yield token
            if token.type is TokenType.EOF:
                return

    def tokenize(self) -> list[Token]:
        return list(self)

    def next_token(self) -> Token:
        while self.position < len(self.source):
            match = _SCANNER.match(self.source, self.position)
            if match is None:
                line, column = self._locate(self.position)
                raise LexerError(
                    f"Unexpected character '{self.source[self.position]}'",
                    self.position,
                    line,
                    column,
                )
            start = self.position
            self.position = match.end()
            kind, text = match.lastgroup, match.group()
            if kind == "space":
                continue
            return self._make(kind, text, start)
        return self._token(TokenType.EOF, None, self.position)

    def _make(self, kind: str, text: str, start: int) -> Token:
        if kind == "number":
            return self._token(TokenType.NUMBER, float(text) if "." in text else int(text), start)
        if kind == "string":
            return self._token(TokenType.STRING, _unescape(text[1:-1]), start)
        if kind == "symbol":
            return self._token(SYMBOLS[text], text, start)

        keyword = KEYWORDS.get(text.lower())
        if keyword is None:
            return self._token(TokenType.IDENTIFIER, text, start)
        token_type, value = keyword
        if token_type is TokenType.NOT:
            following = _FOLLOWING_IN.match(self.source, self.position)
            if following:
                self.position = following.end()
                return self._token(TokenType.NOT_IN, "not in", start)
        return self._token(token_type, value, start)

    def _token(self, token_type: TokenType, value: TokenValue, start: int) -> Token:
        line, column = self._locate(start)
        return Token(token_type, value, start, line, column)

    def _locate(self, offset: int) -> tuple[int, int]:
        line = 0
        while line + 1 < len(self._line_starts) and self._line_starts[line + 1] <= offset:
            line += 1
        return line + 1, offset - self._line_starts[line] + 1
