"""Function registry for the expression language.

Built-in functions are callable from any expression, e.g. ``upper(name)``
or ``int(${count}) + 1``. Resolvers supplied by the caller live on each
LazyTree (see lazytree.expressions.resolvers) and shadow these.
"""

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class FunctionCategory(Enum):
    STRING = "string"
    MATH = "math"
    COLLECTION = "collection"
    LOGIC = "logic"
    COERCION = "coercion"


@dataclass(frozen=True)
class FunctionParameter:
    """One parameter of a function, as read from its Python signature."""

    name: str
    required: bool = True
    default: Any = None
    variadic: bool = False

    @classmethod
    def from_signature(cls, param: inspect.Parameter) -> "FunctionParameter":
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return cls(param.name, required=False, variadic=True)
        if param.default is inspect.Parameter.empty:
            return cls(param.name)
        return cls(param.name, required=False, default=param.default)


@dataclass
class FunctionDefinition:
    """A named function callable from expressions.

    The description defaults to the first line of the implementation's
    docstring.
    """

    name: str
    category: FunctionCategory
    implementation: Callable[..., Any]
    description: str = ""
    examples: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.description:
            doc = inspect.getdoc(self.implementation) or ""
            self.description = doc.split("\n", 1)[0]

    @property
    def parameters(self) -> list[FunctionParameter]:
        signature = inspect.signature(self.implementation)
        return [FunctionParameter.from_signature(p) for p in signature.parameters.values()]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "description": self.description,
            "parameters": [
                {"name": p.name, "required": p.required, "variadic": p.variadic}
                for p in self.parameters
            ],
            "examples": list(self.examples),
        }


class FunctionRegistry:
    """Process-wide table of expression functions.

    Example:
        FunctionRegistry.register(FunctionDefinition("shout", FunctionCategory.STRING, shout))
        FunctionRegistry.get("shout").implementation("hi")
    """

    _functions: dict[str, FunctionDefinition] = {}

    @classmethod
    def register(cls, func_def: FunctionDefinition) -> None:
        cls._functions[func_def.name] = func_def

    @classmethod
    def get(cls, name: str) -> FunctionDefinition:
        """Look up a function.

        Raises:
            ValueError: If no function has that name
        """
        try:
            return cls._functions[name]
        except KeyError:
            raise ValueError(f"Unknown function: {name}") from None

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._functions

    @classmethod
    def list_all(cls) -> list[FunctionDefinition]:
        return list(cls._functions.values())

    @classmethod
    def list_by_category(cls, category: FunctionCategory) -> list[FunctionDefinition]:
        return [f for f in cls._functions.values() if f.category is category]

    @classmethod
    def export_documentation(cls) -> dict[str, Any]:
        """Dump every function, keyed by name and grouped by category."""
        by_category: dict[str, list[str]] = {}
        for func_def in cls._functions.values():
            by_category.setdefault(func_def.category.value, []).append(func_def.name)
        return {
            "functions": {name: f.to_dict() for name, f in cls._functions.items()},
            "byCategory": by_category,
        }

    @classmethod
    def clear(cls) -> None:
        """Drop every registration; used by tests."""
        cls._functions.clear()
