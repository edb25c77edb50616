"""Expression shapes.

A directive's source string is classified once, when first compiled, into
one of three shapes:

- LiteralText: no placeholders and no call; evaluates to the text itself.
- Template: literal text with ``${...}`` placeholders; each placeholder is
  evaluated independently and the pieces are concatenated as strings.
- InlineCode: evaluated as a single expression and may yield any value.
  Used for a lone ``${...}`` spanning the whole source, for sources that
  are a complete call (``fetchUser(${id})``, ``extends("base")``,
  ``int(${n}) + 1``), and for one placeholder combined only with
  arithmetic (``${x} * 2``).

compile_expression() is memoized per source string.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Union

from lazytree.expressions.lexer import LexerError
from lazytree.expressions.parser import ASTNode, ParseError, parse

_CALL_START = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*\s*\(")
_ARITHMETIC_TEXT = re.compile(r"^[\s\d.+\-*/%()]*$")
_OPERATOR = re.compile(r"[+\-*/%]")

COMPILE_CACHE_SIZE = 1024


@dataclass(frozen=True)
class LiteralText:
    text: str


@dataclass(frozen=True)
class Template:
    """Literal strings interleaved with placeholder ASTs."""
    parts: tuple[Union[str, ASTNode], ...]


@dataclass(frozen=True)
class InlineCode:
    ast: ASTNode


ExpressionShape = Union[LiteralText, Template, InlineCode]


@dataclass(frozen=True)
class Slot:
    """A ``${...}`` occurrence found by split_template."""
    inner: str
    start: int
    end: int


def _closing_brace(source: str, start: int) -> int:
    """Index of the brace closing the placeholder whose body starts at ``start``.

    Braces nested inside the body (object literals, inner placeholders) and
    braces inside quoted strings are skipped. Returns -1 when unterminated.
    """
    depth = 1
    quote: str | None = None
    i = start
    while i < len(source):
        ch = source[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def split_template(source: str) -> list[Union[str, Slot]]:
    """Split a source string into literal text and placeholder slots.

    An unterminated ``${`` is kept as literal text.

    Example:
        split_template("Hi ${name}!")
        # -> ["Hi ", Slot("name", 3, 10), "!"]
    """
    pieces: list[Union[str, Slot]] = []
    position = 0
    while True:
        opener = source.find("${", position)
        if opener == -1:
            break
        closer = _closing_brace(source, opener + 2)
        if closer == -1:
            break
        if opener > position:
            pieces.append(source[position:opener])
        pieces.append(Slot(source[opener + 2 : closer], opener, closer + 1))
        position = closer + 1

    if position < len(source):
        pieces.append(source[position:])
    return pieces


def _try_inline(source: str) -> InlineCode | None:
    try:
        return InlineCode(parse(source))
    except (ParseError, LexerError):
        return None


@lru_cache(maxsize=COMPILE_CACHE_SIZE)
def compile_expression(source: str) -> ExpressionShape:
    """Classify and parse a directive source string.

    Raises:
        ParseError: If a placeholder body is not a valid expression
        LexerError: If a placeholder body contains an invalid character
    """
    pieces = split_template(source)
    slots = [piece for piece in pieces if isinstance(piece, Slot)]
    text = [piece for piece in pieces if isinstance(piece, str)]
    stripped = source.strip()

    if len(slots) == 1 and all(not t.strip() for t in text):
        return InlineCode(parse(slots[0].inner))

    if _CALL_START.match(stripped):
        inline = _try_inline(stripped)
        if inline is not None:
            return inline

    if (
        len(slots) == 1
        and all(_ARITHMETIC_TEXT.match(t) for t in text)
        and any(_OPERATOR.search(t) for t in text)
    ):
        inline = _try_inline(stripped)
        if inline is not None:
            return inline

    if not slots:
        return LiteralText(source)

    return Template(
        tuple(piece if isinstance(piece, str) else parse(piece.inner) for piece in pieces)
    )
