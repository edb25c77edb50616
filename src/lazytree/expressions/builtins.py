"""Built-in expression functions.

Each function below is declared with ``@builtin`` into a module catalog;
register_all_builtins() copies the catalog into the FunctionRegistry.
LazyTree fills in any that are missing on construction.
"""

import functools
import json
import math
import re
from typing import Any, Callable

from lazytree.expressions.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionRegistry,
)

_CATALOG: list[FunctionDefinition] = []

_FALSE_WORDS = frozenset({"false", "no", "off", "disabled", "0", ""})
_LEADING_INT = re.compile(r"\s*[+-]?\d+")
_LEADING_FLOAT = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

STRING = FunctionCategory.STRING
MATH = FunctionCategory.MATH
COLLECTION = FunctionCategory.COLLECTION
LOGIC = FunctionCategory.LOGIC
COERCION = FunctionCategory.COERCION


def builtin(name: str, category: FunctionCategory, *examples: str) -> Callable:
    """Declare the decorated function as built-in ``name``."""

    def decorator(fn: Callable) -> Callable:
        _CATALOG.append(FunctionDefinition(name, category, fn, examples=list(examples)))
        return fn

    return decorator


def register_all_builtins() -> None:
    for func_def in _CATALOG:
        FunctionRegistry.register(func_def)


def ensure_builtins() -> None:
    """Register every built-in that is missing, keeping custom registrations."""
    for func_def in _CATALOG:
        if not FunctionRegistry.is_registered(func_def.name):
            FunctionRegistry.register(func_def)


def stringify(value: Any) -> str:
    """Render a value for template output.

    None renders as an empty string, booleans as true/false, integral
    floats without a fraction, and containers as JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _non_null(values: tuple) -> list:
    return [v for v in values if v is not None]


def _numeric(fn: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Lift a one-argument numeric function so None passes through."""

    @functools.wraps(fn)
    def lifted(value):
        return None if value is None else fn(value)

    return lifted


# String

@builtin("len", STRING, 'len(..title) > 40 ? "long" : "short"')
def length(value: Any) -> int:
    """Length of a string, array or object; 0 for anything else."""
    return len(value) if isinstance(value, (str, list, tuple, dict)) else 0


@builtin("isEmpty", STRING, "isEmpty(nickname) ? name : nickname")
def is_empty(value: Any) -> bool:
    """True for null, blank strings and empty collections."""
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return value is None


@builtin("concat", STRING, 'concat(first, " ", last)')
def concat(*values: Any) -> str:
    """Join every argument as text, skipping nulls."""
    return "".join(map(str, _non_null(values)))


@builtin("trim", STRING, "trim(${title})")
def trim(value: Any) -> str:
    """Strip surrounding whitespace."""
    return _text(value).strip()


@builtin("upper", STRING, "upper(code)")
def upper(value: Any) -> str:
    """Uppercase a string."""
    return _text(value).upper()


@builtin("lower", STRING, "lower(email)")
def lower(value: Any) -> str:
    """Lowercase a string."""
    return _text(value).lower()


@builtin("capitalize", STRING, "capitalize(${:subject})")
def capitalize(value: Any) -> str:
    """Uppercase the first character, leaving the rest untouched."""
    text = _text(value)
    return text[:1].upper() + text[1:]


@builtin("replace", STRING, 'replace(slug, "-", " ")')
def replace(value: Any, old: Any, new: Any) -> str:
    """Replace every occurrence of a substring."""
    return _text(value).replace(str(old), str(new))


@builtin("join", STRING, 'join(tags, " / ")')
def join(values: Any, separator: str = ", ") -> str:
    """Join array elements with a separator."""
    return str(separator).join(_text(v) for v in values or ())


# Math

@builtin("abs", MATH, "abs(delta)")
@_numeric
def absolute(value):
    """Absolute value."""
    return abs(value)


@builtin("round", MATH, "round(${price} * 1.2, 2)")
def round_half_up(value: float | None, decimals: int = 0) -> float | int | None:
    """Round half away from zero to a number of decimal places."""
    if value is None:
        return None
    scale = 10 ** int(decimals)
    magnitude = math.floor(abs(value) * scale + 0.5) / scale
    result = math.copysign(magnitude, value)
    return int(result) if not decimals else result


@builtin("floor", MATH, "floor(total / pageSize)")
@_numeric
def floor(value):
    """Round down to an integer."""
    return math.floor(value)


@builtin("ceil", MATH, "ceil(total / pageSize)")
@_numeric
def ceil(value):
    """Round up to an integer."""
    return math.ceil(value)


@builtin("min", MATH, "min(limit, 100)")
def minimum(*values: Any) -> Any:
    """Smallest non-null argument."""
    return min(_non_null(values), default=None)


@builtin("max", MATH, "max(0, balance)")
def maximum(*values: Any) -> Any:
    """Largest non-null argument."""
    return max(_non_null(values), default=None)


# Collection

@builtin("contains", COLLECTION, 'contains(roles, "admin")')
def contains(collection: Any, item: Any) -> bool:
    """Whether a collection holds an item, or a string a substring."""
    if collection is None:
        return False
    if isinstance(collection, str):
        return item is not None and str(item) in collection
    return item in collection


@builtin("size", COLLECTION, "size(..employees)")
def size(collection: Any) -> int:
    """Number of elements; 0 for null."""
    return 0 if collection is None else len(collection)


@builtin("first", COLLECTION, "first(items).name")
def first(collection: Any) -> Any:
    """First element, or null when empty."""
    return collection[0] if collection else None


@builtin("last", COLLECTION, "last(history)")
def last(collection: Any) -> Any:
    """Last element, or null when empty."""
    return collection[-1] if collection else None


@builtin("keys", COLLECTION, 'join(keys(..settings), ", ")')
def keys(mapping: Any) -> list:
    """Keys of an object; [] for anything else."""
    return list(mapping) if isinstance(mapping, dict) else []


# Logic

@builtin("coalesce", LOGIC, 'coalesce(nickname, name, "Anonymous")')
def coalesce(*values: Any) -> Any:
    """First non-null argument."""
    return next((v for v in values if v is not None), None)


@builtin("if", LOGIC, 'if(count == 1, "item", "items")')
def if_then(condition: Any, then: Any, otherwise: Any = None) -> Any:
    """``then`` when the condition is truthy, else ``otherwise``."""
    return then if condition else otherwise


# Coercion

def _leading(pattern: re.Pattern, value: Any) -> str | None:
    text = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
    match = pattern.match(text)
    return match.group() if match else None


@builtin("int", COERCION, "int(${count}) + 1")
def to_int(value: Any) -> int | None:
    """Leading integer of a value; null when there is none."""
    if value is None:
        return 0
    if isinstance(value, (bool, int, float)):
        return math.trunc(value)
    digits = _leading(_LEADING_INT, value)
    return None if digits is None else int(digits)


@builtin("float", COERCION, "float(${price}) * 1.2")
def to_float(value: Any) -> float | None:
    """Leading number of a value; null when there is none."""
    if value is None:
        return 0.0
    if isinstance(value, (bool, int, float)):
        return float(value)
    digits = _leading(_LEADING_FLOAT, value)
    return None if digits is None else float(digits)


@builtin("bool", COERCION, 'bool(${flag}) ? "on" : "off"')
def to_bool(value: Any) -> bool:
    """Truthiness where "false", "no", "off", "disabled", "0" and "" are false."""
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_WORDS
    return bool(value)


@builtin("json", COERCION, "json(${payload}).id")
def parse_json(value: Any) -> Any:
    """Parse JSON text; non-strings pass through unchanged."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        preview = value if len(value) <= 100 else value[:100] + "..."
        raise ValueError(f"Failed to parse JSON: {e.msg}. Input: {preview}") from e


builtin("string", COERCION, "string(enabled)")(stringify)
