"""Resolver registry for lazytree.

Resolvers are caller-supplied functions that expressions call by dotted
name (``fetchUser(${id})``, ``db.users.find(1)``). Each LazyTree owns its
own registry; nested mappings are flattened into dotted names when
registered.
"""

from collections.abc import Callable, Mapping
from typing import Any

# Resolver signature: (*args) -> value | Awaitable[value]
ResolverFn = Callable[..., Any]


def flatten_resolvers(
    resolvers: Mapping[str, Any], prefix: str = ""
) -> dict[str, ResolverFn]:
    """Flatten ``{"db": {"users": {"find": fn}}}`` into ``{"db.users.find": fn}``.

    Raises:
        TypeError: If a leaf is neither callable nor a mapping
    """
    flat: dict[str, ResolverFn] = {}
    for key, value in resolvers.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if callable(value):
            flat[name] = value
        elif isinstance(value, Mapping):
            flat.update(flatten_resolvers(value, name))
        else:
            raise TypeError(
                f"Resolver '{name}' must be callable or a mapping of resolvers, "
                f"got {type(value).__name__}"
            )
    return flat


class ResolverRegistry:
    """Registry of resolver functions for one engine instance.

    Example:
        registry = ResolverRegistry({"db": {"users": {"find": find_user}}})

        @registry.resolver("extends")
        async def extends(name):
            ...
    """

    def __init__(self, resolvers: Mapping[str, Any] | None = None):
        self._resolvers: dict[str, ResolverFn] = {}
        if resolvers:
            self.update(resolvers)

    def register(self, name: str, fn: ResolverFn) -> None:
        """Register (or replace) a resolver by dotted name."""
        if not callable(fn):
            raise TypeError(f"Resolver '{name}' must be callable")
        self._resolvers[name] = fn

    def update(self, resolvers: Mapping[str, Any]) -> None:
        """Register every resolver in a (possibly nested) mapping."""
        self._resolvers.update(flatten_resolvers(resolvers))

    def get(self, name: str) -> ResolverFn:
        """Get a resolver by name.

        Raises:
            KeyError: If no resolver has that name
        """
        return self._resolvers[name]

    def is_registered(self, name: str) -> bool:
        return name in self._resolvers

    def list_registered(self) -> list[str]:
        """List all registered resolver names."""
        return sorted(self._resolvers)

    def resolver(self, name: str) -> Callable[[ResolverFn], ResolverFn]:
        """Decorator to register a resolver function.

        Usage:
            @tree.resolvers.resolver("greet")
            def greet(name):
                return f"Hello {name}"
        """

        def decorator(fn: ResolverFn) -> ResolverFn:
            self.register(name, fn)
            return fn

        return decorator

    def __contains__(self, name: object) -> bool:
        return name in self._resolvers

    def __len__(self) -> int:
        return len(self._resolvers)
