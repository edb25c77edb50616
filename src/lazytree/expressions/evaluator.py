"""Evaluator for the lazytree expression language.

Walks the AST and computes the result. Name references and ``fresh()``
calls go back through the host engine so that reading one value may
materialize others; calls dispatch to the engine's resolver registry
first and the built-in FunctionRegistry second.
"""

import inspect
import logging
import operator
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, runtime_checkable

from lazytree.errors import (
    EvaluationError,
    LazyTreeError,
    ResolverNotFoundError,
    UnresolvedPathError,
)
from lazytree.expressions.builtins import stringify
from lazytree.expressions.compiler import (
    ExpressionShape,
    InlineCode,
    LiteralText,
    Template,
    compile_expression,
)
from lazytree.expressions.functions import FunctionRegistry
from lazytree.expressions.parser import (
    ASTNode,
    ArrayLiteral,
    BinaryOp,
    Conditional,
    FunctionCall,
    IndexAccess,
    Literal,
    MemberAccess,
    ObjectLiteral,
    Placeholder,
    Pronoun,
    Reference,
    UnaryOp,
)
from lazytree.expressions.pronouns import pronoun_for
from lazytree.expressions.resolvers import ResolverRegistry
from lazytree.expressions.scope import ScopedName, candidate_paths
from lazytree.paths import TreePath, parse_path

logger = logging.getLogger(__name__)

FRESH = "fresh"


@runtime_checkable
class EvaluationHost(Protocol):
    """What the evaluator needs from the engine that owns the tree."""

    async def exists(self, path: TreePath) -> bool:
        """Whether a value (static or directive) lives at ``path``."""
        ...

    async def read(self, path: TreePath) -> Any:
        """Materialized value at ``path``, recording a dependency edge."""
        ...

    async def read_fresh(self, path: TreePath) -> Any:
        """Value at ``path`` re-evaluated without consulting the cache."""
        ...


@dataclass
class EvaluationContext:
    """Context for evaluating one directive.

    Attributes:
        path: Path of the property being materialized
        host: Engine used for reading referenced paths
        variant_context: Effective variant context at ``path``
        resolvers: Caller-supplied resolver functions
    """

    path: TreePath
    host: EvaluationHost
    variant_context: Mapping[str, Any] = field(default_factory=dict)
    resolvers: ResolverRegistry = field(default_factory=ResolverRegistry)


class Evaluator:
    """Evaluates compiled expressions against a context.

    Usage:
        ctx = EvaluationContext(path=("total",), host=tree)
        result = await Evaluator(ctx).run(compile_expression("${price} * 2"))
    """

    def __init__(self, context: EvaluationContext):
        self.context = context

    async def run(self, shape: ExpressionShape) -> Any:
        """Evaluate a compiled expression shape."""
        if isinstance(shape, LiteralText):
            return shape.text

        if isinstance(shape, InlineCode):
            return await self.evaluate(shape.ast)

        if isinstance(shape, Template):
            rendered: list[str] = []
            for part in shape.parts:
                if isinstance(part, str):
                    rendered.append(part)
                else:
                    rendered.append(stringify(await self.evaluate(part)))
            return "".join(rendered)

        raise EvaluationError(f"Unknown expression shape: {type(shape).__name__}")

    async def evaluate(self, node: ASTNode) -> Any:
        """Evaluate an AST node and return the result."""
        method_name = f"_eval_{type(node).__name__.lower()}"
        method = getattr(self, method_name, None)

        if method is None:
            raise EvaluationError(f"Unknown node type: {type(node).__name__}")

        return await method(node)

    async def _eval_literal(self, node: Literal) -> Any:
        return node.value

    async def _eval_placeholder(self, node: Placeholder) -> Any:
        return await self.evaluate(node.expression)

    async def _eval_pronoun(self, node: Pronoun) -> str:
        return pronoun_for(node.form, self.context.variant_context)

    async def _eval_reference(self, node: Reference) -> Any:
        """Evaluate a name reference through the scoped name search."""
        name = ScopedName(node.parents, tuple(node.parts), node.name)
        candidates = candidate_paths(name, self.context.path)
        host = self.context.host

        for candidate in candidates:
            if await host.exists(candidate):
                return await host.read(candidate)

        # items.length: the tail names a member of a list or scalar value
        if len(node.parts) > 1:
            head = Reference(node.parents, node.parts[:-1], node.dots)
            try:
                obj = await self._eval_reference(head)
            except UnresolvedPathError:
                pass
            else:
                if obj is not None and not isinstance(obj, Mapping):
                    return self._member(obj, node.parts[-1])

        raise UnresolvedPathError(node.name, self.context.path, candidates)

    async def _eval_memberaccess(self, node: MemberAccess) -> Any:
        """Evaluate member access on a computed value."""
        return self._member(await self.evaluate(node.object), node.member)

    @staticmethod
    def _member(obj: Any, member: str) -> Any:
        if obj is None:
            return None

        if isinstance(obj, Mapping):
            return obj.get(member)

        if member == "length" and isinstance(obj, (str, list, tuple)):
            return len(obj)

        return getattr(obj, member, None)

    async def _eval_indexaccess(self, node: IndexAccess) -> Any:
        obj = await self.evaluate(node.object)
        index = await self.evaluate(node.index)
        if isinstance(obj, Mapping):
            return obj.get(index)
        if isinstance(obj, (list, tuple, str)) and _is_number(index) and isinstance(index, int):
            return obj[index] if -len(obj) <= index < len(obj) else None
        return None

    async def _eval_conditional(self, node: Conditional) -> Any:
        branch = node.when_true if truthy(await self.evaluate(node.condition)) else node.when_false
        return await self.evaluate(branch)

    async def _eval_binaryop(self, node: BinaryOp) -> Any:
        op = node.operator
        left = await self.evaluate(node.left)

        # && and || short-circuit and yield an operand, not a bool
        if op == "&&":
            return await self.evaluate(node.right) if truthy(left) else left
        if op == "||":
            return left if truthy(left) else await self.evaluate(node.right)

        right = await self.evaluate(node.right)
        handler = _BINARY.get(op)
        if handler is None:
            raise EvaluationError(f"Unknown operator: {op}")
        return handler(left, right)

    async def _eval_unaryop(self, node: UnaryOp) -> Any:
        operand = await self.evaluate(node.operand)
        if node.operator == "!":
            return not truthy(operand)
        if node.operator != "-":
            raise EvaluationError(f"Unknown unary operator: {node.operator}")
        if operand is None or _is_number(operand):
            return None if operand is None else -operand
        raise EvaluationError(f"Cannot negate non-numeric value: {operand!r}")

    async def _eval_functioncall(self, node: FunctionCall) -> Any:
        """Evaluate a call: instance resolvers, then built-ins, then fresh()."""
        func_name = node.name
        resolvers = self.context.resolvers

        if func_name in resolvers:
            fn = resolvers.get(func_name)
        elif FunctionRegistry.is_registered(func_name):
            fn = FunctionRegistry.get(func_name).implementation
        elif func_name == FRESH:
            return await self._call_fresh(node)
        else:
            raise ResolverNotFoundError(func_name, self.context.path)

        args = [await self.evaluate(arg) for arg in node.arguments]

        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                result = await result
        except LazyTreeError:
            raise
        except Exception as e:
            raise EvaluationError(
                f"Error calling {func_name}: {e}", self.context.path, cause=e
            ) from e

        logger.debug("Resolver %s returned %r", func_name, result)
        return result

    async def _call_fresh(self, node: FunctionCall) -> Any:
        """fresh(path) re-reads an absolute path, bypassing the cache."""
        if len(node.arguments) != 1:
            raise EvaluationError(
                f"{FRESH}() takes exactly one path argument", self.context.path
            )
        target = await self.evaluate(node.arguments[0])
        if not isinstance(target, str):
            raise EvaluationError(
                f"{FRESH}() expects a path string, got {type(target).__name__}",
                self.context.path,
            )
        return await self.context.host.read_fresh(parse_path(target))

    async def _eval_arrayliteral(self, node: ArrayLiteral) -> list[Any]:
        return [await self.evaluate(elem) for elem in node.elements]

    async def _eval_objectliteral(self, node: ObjectLiteral) -> dict[str, Any]:
        return {key: await self.evaluate(value) for key, value in node.pairs.items()}


# Operator semantics. Null propagates through arithmetic, sorts first in
# comparisons, and is only equal to itself.


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def truthy(value: Any) -> bool:
    """Expression truthiness: null, false, 0 and empty containers are false."""
    return bool(value)


def _type_names(left: Any, right: Any) -> str:
    return f"{type(left).__name__} and {type(right).__name__}"


def _equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is right
    if _is_number(left) and _is_number(right):
        return float(left) == float(right)
    return left == right


def _ordering(compare: Callable[[int, int], bool]) -> Callable[[Any, Any], bool]:
    def apply(left: Any, right: Any) -> bool:
        if left is None or right is None:
            rank = (left is not None) - (right is not None)
            return compare(rank, 0)
        same_kind = (_is_number(left) and _is_number(right)) or (
            isinstance(left, str) and isinstance(right, str)
        )
        if not same_kind:
            raise EvaluationError(f"Cannot compare {_type_names(left, right)}")
        return compare((left > right) - (left < right), 0)

    return apply


def _contains(item: Any, collection: Any) -> bool:
    if collection is None:
        return False
    if isinstance(collection, str):
        return item is not None and str(item) in collection
    if isinstance(collection, (list, tuple, Mapping)):
        return item in collection
    raise EvaluationError(f"'in' operator requires collection, got {type(collection).__name__}")


def _add(left: Any, right: Any) -> Any:
    """Numbers add; a string on either side concatenates; lists join."""
    if left is None or right is None:
        return None
    if isinstance(left, str) or isinstance(right, str):
        return stringify(left) + stringify(right)
    if (_is_number(left) and _is_number(right)) or (
        isinstance(left, list) and isinstance(right, list)
    ):
        return left + right
    raise EvaluationError(f"Cannot add {_type_names(left, right)}")


def _divide(left: int | float, right: int | float) -> int | float:
    if right == 0:
        raise EvaluationError("Division by zero")
    quotient = left / right
    if isinstance(left, int) and isinstance(right, int) and quotient.is_integer():
        return int(quotient)
    return quotient


def _modulo(left: int | float, right: int | float) -> int | float:
    if right == 0:
        raise EvaluationError("Modulo by zero")
    return left % right


def _numeric(verb: str, fn: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    def apply(left: Any, right: Any) -> Any:
        if left is None or right is None:
            return None
        if not (_is_number(left) and _is_number(right)):
            raise EvaluationError(f"Cannot {verb} {_type_names(left, right)}")
        return fn(left, right)

    return apply


_BINARY: dict[str, Callable[[Any, Any], Any]] = {
    "==": _equals,
    "!=": lambda left, right: not _equals(left, right),
    "<": _ordering(operator.lt),
    "<=": _ordering(operator.le),
    ">": _ordering(operator.gt),
    ">=": _ordering(operator.ge),
    "in": _contains,
    "not in": lambda left, right: not _contains(left, right),
    "+": _add,
    "-": _numeric("subtract", operator.sub),
    "*": _numeric("multiply", operator.mul),
    "/": _numeric("divide", _divide),
    "%": _numeric("modulo", _modulo),
}


async def evaluate(source: str, context: EvaluationContext) -> Any:
    """Compile (memoized) and evaluate an expression string.

    Args:
        source: The directive's expression text
        context: Path, host engine, variant context and resolvers

    Returns:
        The evaluated value

    Example:
        total = await evaluate("${price * quantity}", ctx)
    """
    return await Evaluator(context).run(compile_expression(source))
