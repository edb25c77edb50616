"""Recursive descent parser for directive expressions.

Binary operators are parsed by precedence climbing over ``BINARY_LEVELS``
(loosest first); the ternary sits above them and unary/postfix below.

Name references may carry leading dots: ``.name`` searches outward from
the current scope, ``..name`` starts one level above it, ``...name`` two
levels, and so on. A dotted chain of names (``manager.name``) stays a
single Reference so the whole path is looked up in the tree.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from lazytree.errors import ExpressionError
from lazytree.expressions.lexer import Lexer, Token, TokenType

PRONOUN_FORMS = ("subject", "object", "possessive", "reflexive")

BINARY_LEVELS: list[dict[TokenType, str]] = [
    {TokenType.OR: "||"},
    {TokenType.AND: "&&"},
    {
        TokenType.EQ: "==",
        TokenType.NEQ: "!=",
        TokenType.LT: "<",
        TokenType.LTE: "<=",
        TokenType.GT: ">",
        TokenType.GTE: ">=",
        TokenType.IN: "in",
        TokenType.NOT_IN: "not in",
    },
    {TokenType.PLUS: "+", TokenType.MINUS: "-"},
    {TokenType.MULTIPLY: "*", TokenType.DIVIDE: "/", TokenType.MODULO: "%"},
]

UNARY_OPERATORS = {TokenType.NOT: "!", TokenType.MINUS: "-"}

_LITERAL_TOKENS = (TokenType.NUMBER, TokenType.STRING, TokenType.BOOLEAN, TokenType.NULL)


@dataclass
class ASTNode:
    pass


@dataclass
class Literal(ASTNode):
    value: Any


@dataclass
class Reference(ASTNode):
    """A name looked up in the document tree.

    Attributes:
        parents: Number of parent-traversal markers (leading dots minus one)
        parts: Dotted name segments (``["manager", "name"]``)
        dots: Leading dots as written (0 for a bare name)
    """
    parents: int
    parts: list[str]
    dots: int = 0

    @property
    def name(self) -> str:
        return "." * self.dots + ".".join(self.parts)


@dataclass
class MemberAccess(ASTNode):
    """``.member`` applied to a computed value, e.g. ``fetch(id).name``."""
    object: ASTNode
    member: str


@dataclass
class IndexAccess(ASTNode):
    object: ASTNode
    index: ASTNode


@dataclass
class BinaryOp(ASTNode):
    operator: str
    left: ASTNode
    right: ASTNode


@dataclass
class UnaryOp(ASTNode):
    operator: str
    operand: ASTNode


@dataclass
class Conditional(ASTNode):
    condition: ASTNode
    when_true: ASTNode
    when_false: ASTNode


@dataclass
class FunctionCall(ASTNode):
    """Call by dotted name, e.g. ``fetchUser(id)`` or ``db.users.find(1)``."""
    name: str
    arguments: list[ASTNode] = field(default_factory=list)


@dataclass
class ArrayLiteral(ASTNode):
    elements: list[ASTNode]


@dataclass
class ObjectLiteral(ASTNode):
    pairs: dict[str, ASTNode]


@dataclass
class Pronoun(ASTNode):
    """``:subject`` and friends, resolved from the gender context."""
    form: str


@dataclass
class Placeholder(ASTNode):
    """A ``${...}`` nested inside inline code, e.g. ``add(${x}, ${y})``."""
    expression: ASTNode


class ParseError(ExpressionError):
    def __init__(self, message: str, token: Token):
        self.token = token
        super().__init__(f"{message} at position {token.position}")


class Parser:
    """Parses one expression source into an AST.

    Usage:
        ast = Parser('..lang === "es" ? "Hola" : "Hello"').parse()
    """

    def __init__(self, source: str):
        self.source = source
        self.tokens = Lexer(source).tokenize()
        self.position = 0

    def parse(self) -> ASTNode:
        if self._current().type is TokenType.EOF:
            raise ParseError("Empty expression", self._current())
        ast = self._expression()
        if self._current().type is not TokenType.EOF:
            raise ParseError(f"Unexpected token '{self._current().value}'", self._current())
        return ast

    # Token cursor

    def _current(self) -> Token:
        # The lexer always ends the stream with EOF.
        return self.tokens[min(self.position, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        token = self._current()
        self.position += 1
        return token

    def _accept(self, token_type: TokenType) -> bool:
        if self._current().type is token_type:
            self.position += 1
            return True
        return False

    def _expect(self, token_type: TokenType, message: str) -> Token:
        if self._current().type is not token_type:
            raise ParseError(message, self._current())
        return self._advance()

    # Grammar

    def _expression(self) -> ASTNode:
        condition = self._binary(0)
        if not self._accept(TokenType.QUESTION):
            return condition
        when_true = self._expression()
        self._expect(TokenType.COLON, "Expected ':' in conditional expression")
        return Conditional(condition, when_true, self._expression())

    def _binary(self, level: int) -> ASTNode:
        if level == len(BINARY_LEVELS):
            return self._unary()
        operators = BINARY_LEVELS[level]
        left = self._binary(level + 1)
        while self._current().type in operators:
            operator = operators[self._advance().type]
            left = BinaryOp(operator, left, self._binary(level + 1))
        return left

    def _unary(self) -> ASTNode:
        operator = UNARY_OPERATORS.get(self._current().type)
        if operator is None:
            return self._postfix(self._primary())
        self._advance()
        return UnaryOp(operator, self._unary())

    def _postfix(self, expr: ASTNode) -> ASTNode:
        while True:
            if self._accept(TokenType.DOT):
                member = str(self._expect(TokenType.IDENTIFIER, "Expected identifier after '.'").value)
                if isinstance(expr, Reference):
                    expr = Reference(expr.parents, [*expr.parts, member], expr.dots)
                else:
                    expr = MemberAccess(expr, member)
            elif self._accept(TokenType.LBRACKET):
                index = self._expression()
                self._expect(TokenType.RBRACKET, "Expected ']' after index")
                expr = IndexAccess(expr, index)
            elif (
                self._current().type is TokenType.LPAREN
                and isinstance(expr, Reference)
                and expr.dots == 0
            ):
                self._advance()
                arguments = self._sequence(TokenType.RPAREN, self._expression, "arguments")
                expr = FunctionCall(".".join(expr.parts), arguments)
            else:
                return expr

    def _primary(self) -> ASTNode:
        token = self._current()
        if token.type in _LITERAL_TOKENS:
            self._advance()
            return Literal(token.value)
        if token.type is TokenType.IDENTIFIER:
            self._advance()
            return Reference(0, [str(token.value)])

        parselet = self._PREFIX.get(token.type)
        if parselet is None:
            raise ParseError(f"Unexpected token '{token.value}'", token)
        return parselet(self)

    def _scoped_reference(self) -> Reference:
        dots = 0
        while self._accept(TokenType.DOT):
            dots += 1
        name = self._expect(TokenType.IDENTIFIER, "Expected name after leading '.'")
        return Reference(max(dots - 1, 0), [str(name.value)], dots)

    def _pronoun(self) -> Pronoun:
        colon = self._advance()
        form = str(self._expect(TokenType.IDENTIFIER, "Expected pronoun form after ':'").value)
        if form not in PRONOUN_FORMS:
            raise ParseError(f"Unknown pronoun form '{form}'", colon)
        return Pronoun(form)

    def _placeholder(self) -> Placeholder:
        self._advance()
        inner = self._expression()
        self._expect(TokenType.RBRACE, "Expected '}' to close placeholder")
        return Placeholder(inner)

    def _group(self) -> ASTNode:
        self._advance()
        inner = self._expression()
        self._expect(TokenType.RPAREN, "Expected ')' after expression")
        return inner

    def _array(self) -> ArrayLiteral:
        self._advance()
        return ArrayLiteral(self._sequence(TokenType.RBRACKET, self._expression, "array elements"))

    def _object(self) -> ObjectLiteral:
        self._advance()
        return ObjectLiteral(dict(self._sequence(TokenType.RBRACE, self._object_pair, "object")))

    def _object_pair(self) -> tuple[str, ASTNode]:
        if self._current().type not in (TokenType.STRING, TokenType.IDENTIFIER):
            raise ParseError("Expected string or identifier as object key", self._current())
        key = str(self._advance().value)
        self._expect(TokenType.COLON, "Expected ':' after object key")
        return key, self._expression()

    def _sequence(self, closer: TokenType, item: Callable[[], Any], what: str) -> list:
        """Comma-separated items up to and including ``closer``."""
        items = []
        if self._current().type is not closer:
            items.append(item())
            while self._accept(TokenType.COMMA):
                items.append(item())
        self._expect(closer, f"Expected '{_CLOSERS[closer]}' after {what}")
        return items

    _PREFIX: dict[TokenType, Callable[["Parser"], ASTNode]] = {
        TokenType.DOT: _scoped_reference,
        TokenType.COLON: _pronoun,
        TokenType.PLACEHOLDER: _placeholder,
        TokenType.LPAREN: _group,
        TokenType.LBRACKET: _array,
        TokenType.LBRACE: _object,
    }


_CLOSERS = {TokenType.RPAREN: ")", TokenType.RBRACKET: "]", TokenType.RBRACE: "}"}


def parse(source: str) -> ASTNode:
    """Parse an expression string into its AST root."""
    return Parser(source).parse()
