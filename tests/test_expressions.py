"""Tests for the lazytree expression language.

Tests cover:
- Lexer: Tokenization of expression strings
- Parser: AST generation from tokens
- Compiler: Expression shape classification
- Evaluator: Evaluation against a plain in-memory host
- Built-in functions, resolvers and pronouns
"""

import pytest

from lazytree.errors import (
    EvaluationError,
    ResolverNotFoundError,
    UnresolvedPathError,
)
from lazytree.expressions import (
    ArrayLiteral,
    BinaryOp,
    Conditional,
    EvaluationContext,
    EvaluationHost,
    FunctionCall,
    FunctionCategory,
    FunctionRegistry,
    IndexAccess,
    InlineCode,
    Lexer,
    LexerError,
    Literal,
    LiteralText,
    MemberAccess,
    ObjectLiteral,
    ParseError,
    Placeholder,
    Pronoun,
    Reference,
    ResolverRegistry,
    Slot,
    Template,
    Token,
    TokenType,
    UnaryOp,
    compile_expression,
    evaluate,
    parse,
    split_template,
    stringify,
)
from lazytree.expressions.builtins import register_all_builtins
from lazytree.expressions.pronouns import resolve_pronoun
from lazytree.expressions.resolvers import flatten_resolvers


@pytest.fixture(autouse=True)
def setup_functions():
    """Register built-in functions before each test."""
    FunctionRegistry.clear()
    register_all_builtins()
    yield
    FunctionRegistry.clear()


class DictHost:
    """Evaluation host over a plain nested dict."""

    def __init__(self, data):
        self.data = data
        self.reads = []

    def _lookup(self, path):
        node = self.data
        for segment in path:
            if isinstance(node, dict) and segment in node:
                node = node[segment]
            elif isinstance(node, list) and isinstance(segment, int) and segment < len(node):
                node = node[segment]
            else:
                raise KeyError(path)
        return node

    async def exists(self, path):
        try:
            self._lookup(path)
        except KeyError:
            return False
        return True

    async def read(self, path):
        self.reads.append(path)
        return self._lookup(path)

    async def read_fresh(self, path):
        return await self.read(path)


async def run(source, data=None, path=("result",), resolvers=None, variant_context=None):
    ctx = EvaluationContext(
        path=path,
        host=DictHost(data or {}),
        variant_context=variant_context or {},
        resolvers=ResolverRegistry(resolvers),
    )
    return await evaluate(source, ctx)


# =============================================================================
# Lexer Tests
# =============================================================================


class TestLexer:
    def test_tokenize_numbers(self):
        tokens = Lexer("42 3.14").tokenize()
        assert tokens[0] == Token(TokenType.NUMBER, 42, 0, 1, 1)
        assert tokens[1].value == 3.14
        assert tokens[2].type == TokenType.EOF

    def test_tokenize_strings_with_escapes(self):
        tokens = Lexer(r'"say \"hi\"" ' + "'it\\'s'").tokenize()
        assert tokens[0].value == 'say "hi"'
        assert tokens[1].value == "it's"

    def test_tokenize_keywords(self):
        types = [t.type for t in Lexer("true false null undefined and or not").tokenize()]
        assert types[:-1] == [
            TokenType.BOOLEAN,
            TokenType.BOOLEAN,
            TokenType.NULL,
            TokenType.NULL,
            TokenType.AND,
            TokenType.OR,
            TokenType.NOT,
        ]

    def test_strict_equality_operators(self):
        types = [t.type for t in Lexer("a === b !== c").tokenize()]
        assert types[1] == TokenType.EQ
        assert types[3] == TokenType.NEQ

    def test_not_in_is_one_token(self):
        tokens = Lexer("x not in items").tokenize()
        assert tokens[1].type == TokenType.NOT_IN

    def test_placeholder_opener(self):
        types = [t.type for t in Lexer("${x}").tokenize()]
        assert types == [TokenType.PLACEHOLDER, TokenType.IDENTIFIER, TokenType.RBRACE, TokenType.EOF]

    def test_unexpected_character(self):
        with pytest.raises(LexerError) as exc_info:
            Lexer("a # b").tokenize()
        assert exc_info.value.column == 3


# =============================================================================
# Parser Tests
# =============================================================================


class TestParser:
    def test_precedence(self):
        ast = parse("1 + 2 * 3")
        assert ast == BinaryOp("+", Literal(1), BinaryOp("*", Literal(2), Literal(3)))

    def test_dotted_reference(self):
        assert parse("manager.name") == Reference(0, ["manager", "name"])

    def test_parent_references(self):
        assert parse(".name") == Reference(0, ["name"], 1)
        assert parse("..name") == Reference(1, ["name"], 2)
        assert parse("...company.name") == Reference(2, ["company", "name"], 3)
        assert parse("...company.name").name == "...company.name"

    def test_dotted_call(self):
        ast = parse('db.users.find(1, "x")')
        assert ast == FunctionCall("db.users.find", [Literal(1), Literal("x")])

    def test_member_access_on_call(self):
        ast = parse("fetchUser(1).name")
        assert ast == MemberAccess(FunctionCall("fetchUser", [Literal(1)]), "name")

    def test_index_access(self):
        assert parse("items[0]") == IndexAccess(Reference(0, ["items"]), Literal(0))

    def test_ternary(self):
        ast = parse('lang == "es" ? "Hola" : "Hello"')
        assert isinstance(ast, Conditional)
        assert ast.when_true == Literal("Hola")
        assert ast.when_false == Literal("Hello")

    def test_unary(self):
        assert parse("!done") == UnaryOp("!", Reference(0, ["done"]))
        assert parse("-x") == UnaryOp("-", Reference(0, ["x"]))

    def test_literals(self):
        assert parse("[1, 2]") == ArrayLiteral([Literal(1), Literal(2)])
        assert parse('{a: 1, "b": 2}') == ObjectLiteral({"a": Literal(1), "b": Literal(2)})

    def test_pronoun(self):
        assert parse(":subject") == Pronoun("subject")

    def test_unknown_pronoun(self):
        with pytest.raises(ParseError):
            parse(":nominative")

    def test_embedded_placeholder(self):
        ast = parse("add(${x}, 1)")
        assert ast == FunctionCall("add", [Placeholder(Reference(0, ["x"])), Literal(1)])

    def test_empty_expression(self):
        with pytest.raises(ParseError):
            parse("   ")

    def test_trailing_tokens(self):
        with pytest.raises(ParseError):
            parse("a b")


# =============================================================================
# Compiler Tests
# =============================================================================


class TestCompileExpression:
    def test_plain_text(self):
        assert compile_expression("Hello world") == LiteralText("Hello world")

    def test_lone_placeholder_is_inline(self):
        shape = compile_expression("  ${price * 2}  ")
        assert isinstance(shape, InlineCode)

    def test_template(self):
        shape = compile_expression("Hi ${name}!")
        assert isinstance(shape, Template)
        assert shape.parts[0] == "Hi "
        assert shape.parts[2] == "!"

    def test_two_placeholders_with_operator_stay_template(self):
        assert isinstance(compile_expression("${a} + ${b}"), Template)

    def test_placeholder_with_arithmetic_is_inline(self):
        assert isinstance(compile_expression("${x} * 2"), InlineCode)

    def test_bare_call_is_inline(self):
        assert isinstance(compile_expression('extends("base")'), InlineCode)
        assert isinstance(compile_expression("fetchUser(${id})"), InlineCode)

    def test_call_like_text_that_does_not_parse(self):
        shape = compile_expression("note (see below) and more")
        assert isinstance(shape, LiteralText)

    def test_memoized(self):
        assert compile_expression("${a} and ${b}") is compile_expression("${a} and ${b}")

    def test_split_template_nested_braces(self):
        pieces = split_template('x ${coalesce({"a": 1}, 2)} y')
        assert pieces[0] == "x "
        assert isinstance(pieces[1], Slot)
        assert pieces[1].inner == 'coalesce({"a": 1}, 2)'
        assert pieces[2] == " y"

    def test_unterminated_placeholder_is_text(self):
        assert split_template("cost ${oops") == ["cost ${oops"]

    def test_invalid_placeholder_body(self):
        with pytest.raises(ParseError):
            compile_expression("Hi ${name +}")


# =============================================================================
# Evaluator Tests
# =============================================================================


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_literal_text(self):
        assert await run("just text") == "just text"

    @pytest.mark.asyncio
    async def test_template_stringifies(self):
        data = {"a": 5, "b": 5}
        assert await run("${a} + ${b}", data) == "5 + 5"

    @pytest.mark.asyncio
    async def test_inline_arithmetic(self):
        assert await run("${x} * 2", {"x": 5}) == 10

    @pytest.mark.asyncio
    async def test_inline_returns_raw_value(self):
        data = {"items": [1, 2, 3]}
        assert await run("${items}", data) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_template_renders_containers_as_json(self):
        data = {"tags": ["a", "b"], "on": True, "none": None}
        assert await run("${tags}|${on}|${none}", data) == '["a", "b"]|true|'

    @pytest.mark.asyncio
    async def test_integer_division_stays_integral(self):
        assert await run("${10 / 2}") == 5
        assert await run("${7 / 2}") == 3.5

    @pytest.mark.asyncio
    async def test_division_by_zero(self):
        with pytest.raises(EvaluationError):
            await run("${1 / 0}")

    @pytest.mark.asyncio
    async def test_string_concatenation(self):
        assert await run('${"n=" + n}', {"n": 3}) == "n=3"

    @pytest.mark.asyncio
    async def test_ternary_and_comparison(self):
        data = {"lang": "es"}
        assert await run('${lang === "es" ? "Hola" : "Hello"}', data) == "Hola"

    @pytest.mark.asyncio
    async def test_logical_operators_return_operands(self):
        assert await run('${nickname || "anon"}', {"nickname": ""}) == "anon"
        assert await run("${a && b}", {"a": 1, "b": 2}) == 2

    @pytest.mark.asyncio
    async def test_membership(self):
        data = {"role": "admin", "roles": ["admin", "owner"]}
        assert await run("${role in roles}", data) is True
        assert await run('${"guest" not in roles}', data) is True

    @pytest.mark.asyncio
    async def test_member_and_index_access(self):
        data = {"user": {"tags": ["x", "y"]}}
        assert await run("${user.tags[1]}", data) == "y"
        assert await run("${user.tags.length}", data) == 2

    @pytest.mark.asyncio
    async def test_fallback_search_prefers_innermost(self):
        data = {"name": "root", "a": {"name": "inner", "b": {}}}
        assert await run("${name}", data, path=("a", "b", "result")) == "inner"
        assert await run("${name}", data, path=("a", "result")) == "inner"
        assert await run("${name}", data, path=("result",)) == "root"

    @pytest.mark.asyncio
    async def test_parent_reference(self):
        data = {"a": {"name": "A", "b": {"name": "B", "c": {"name": "C"}}}}
        path = ("a", "b", "c", "d")
        assert await run("${..name}", data, path=path) == "B"
        assert await run("${...name}", data, path=path) == "A"

    @pytest.mark.asyncio
    async def test_unresolved_reference(self):
        with pytest.raises(UnresolvedPathError) as exc_info:
            await run("${missing}", {"a": 1})
        assert exc_info.value.name == "missing"

    @pytest.mark.asyncio
    async def test_sync_and_async_resolvers(self):
        async def fetch_user(user_id):
            return {"id": user_id, "name": "Ada"}

        resolvers = {"fetchUser": fetch_user, "math": {"double": lambda x: x * 2}}
        assert await run("fetchUser(${id}).name", {"id": 7}, resolvers=resolvers) == "Ada"
        assert await run("${math.double(4)}", resolvers=resolvers) == 8

    @pytest.mark.asyncio
    async def test_resolver_shadows_builtin(self):
        resolvers = {"upper": lambda s: "custom"}
        assert await run('${upper("x")}', resolvers=resolvers) == "custom"

    @pytest.mark.asyncio
    async def test_unknown_function(self):
        with pytest.raises(ResolverNotFoundError) as exc_info:
            await run("${nope(1)}")
        assert exc_info.value.name == "nope"

    @pytest.mark.asyncio
    async def test_raising_resolver_is_wrapped(self):
        def boom():
            raise RuntimeError("kaput")

        with pytest.raises(EvaluationError) as exc_info:
            await run("${boom()}", resolvers={"boom": boom})
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.path == ("result",)

    @pytest.mark.asyncio
    async def test_fresh_reads_absolute_path(self):
        data = {"config": {"rate": 3}}
        assert await run('${fresh("config.rate")}', data, path=("a", "b")) == 3

    @pytest.mark.asyncio
    async def test_pronouns(self):
        template = "${:subject} lost ${:possessive} keys"
        assert await run(template, variant_context={"gender": "f"}) == "she lost her keys"
        assert await run(template) == "they lost their keys"


# =============================================================================
# Built-in Function Tests
# =============================================================================


class TestBuiltins:
    @pytest.mark.asyncio
    async def test_string_functions(self):
        assert await run('${upper("abc")}') == "ABC"
        assert await run('${capitalize("hello world")}') == "Hello world"
        assert await run('${join(["a", "b"], "-")}') == "a-b"
        assert await run('${replace("a.b", ".", "/")}') == "a/b"

    @pytest.mark.asyncio
    async def test_math_functions(self):
        assert await run("${round(2.5)}") == 3
        assert await run("${round(-2.5)}") == -3
        assert await run("${round(3.14159, 2)}") == 3.14
        assert await run("${max(1, null, 4)}") == 4

    @pytest.mark.asyncio
    async def test_logic_functions(self):
        assert await run('${coalesce(null, "", "x")}') == ""
        assert await run('${if(1 > 2, "yes", "no")}') == "no"

    @pytest.mark.asyncio
    async def test_coercion_functions(self):
        assert await run('${int("42px")}') == 42
        assert await run('${int("px")}') is None
        assert await run('${float("3.5kg")}') == 3.5
        assert await run('${bool("off")}') is False
        assert await run('${bool("yes")}') is True
        assert await run('${json("{\\"a\\": 1}").a}') == 1

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        with pytest.raises(EvaluationError):
            await run('${json("{oops")}')

    def test_categories(self):
        coercion = {f.name for f in FunctionRegistry.list_by_category(FunctionCategory.COERCION)}
        assert coercion == {"int", "float", "bool", "json", "string"}

    def test_export_documentation(self):
        docs = FunctionRegistry.export_documentation()
        assert "upper" in docs["functions"]
        assert "math" in docs["byCategory"]

    def test_unknown_function_lookup(self):
        with pytest.raises(ValueError):
            FunctionRegistry.get("nope")

    def test_stringify(self):
        assert stringify(None) == ""
        assert stringify(False) == "false"
        assert stringify(2.0) == "2"
        assert stringify({"a": "é"}) == '{"a": "é"}'


# =============================================================================
# Resolver Registry and Pronoun Tests
# =============================================================================


class TestResolverRegistry:
    def test_flatten(self):
        fn = lambda: None  # noqa: E731
        assert flatten_resolvers({"db": {"users": {"find": fn}}}) == {"db.users.find": fn}

    def test_flatten_rejects_non_callables(self):
        with pytest.raises(TypeError):
            flatten_resolvers({"db": {"users": 3}})

    def test_decorator(self):
        registry = ResolverRegistry()

        @registry.resolver("greet")
        def greet(name):
            return f"Hello {name}"

        assert "greet" in registry
        assert registry.get("greet")("Ada") == "Hello Ada"
        assert registry.list_registered() == ["greet"]

    def test_missing_resolver(self):
        with pytest.raises(KeyError):
            ResolverRegistry().get("nope")


class TestPronouns:
    def test_gender_forms(self):
        assert resolve_pronoun("object", "m") == "him"
        assert resolve_pronoun("reflexive", "f") == "herself"

    def test_defaults(self):
        assert resolve_pronoun("subject") == "they"
        assert resolve_pronoun("subject", "q") == "they"
        assert resolve_pronoun("subject", "m", "en-GB") == "he"
        assert resolve_pronoun("subject", "m", "fr") == "he"

    def test_host_protocol(self):
        assert isinstance(DictHost({}), EvaluationHost)
