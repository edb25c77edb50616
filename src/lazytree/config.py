"""Engine configuration."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from lazytree.variants import DEFAULT_DECLARATION_KEY, VariantContext

DEFAULT_MAX_EVALUATION_DEPTH = 10

# on_error(error, path) -> fallback value, or raise to propagate
ErrorHandler = Callable[[Exception, str], Any]

_MISSING: Any = object()


@dataclass
class EngineOptions:
    """Construction options for a LazyTree.

    Attributes:
        base_context: Variant context applied at the root
        max_evaluation_depth: Bound on nested expression evaluations
        on_error: Handler receiving (error, dotted path); its return value
            is materialized in place of the failed evaluation
        resolvers: Mapping (possibly nested) of resolver functions
        fallback: Value returned by get() for missing paths instead of
            raising; a callable is called (and awaited) per miss. Unset by
            default; get(fallback=...) overrides it per call
        context_key: Key of context-declaration mappings in the tree
        inherit_dimensions: Treat scalar ``lang``/``gender``/``form``/``version``
            properties as context declarations for their subtree
    """

    base_context: VariantContext = field(default_factory=VariantContext)
    max_evaluation_depth: int = DEFAULT_MAX_EVALUATION_DEPTH
    on_error: ErrorHandler | None = None
    resolvers: Mapping[str, Any] = field(default_factory=dict)
    fallback: Any = _MISSING
    context_key: str = DEFAULT_DECLARATION_KEY
    inherit_dimensions: bool = True

    def __post_init__(self) -> None:
        self.base_context = VariantContext.coerce(self.base_context)
        if self.max_evaluation_depth < 1:
            raise ValueError(
                f"max_evaluation_depth must be at least 1, got {self.max_evaluation_depth}"
            )

    @property
    def has_fallback(self) -> bool:
        return self.fallback is not _MISSING

    def with_overrides(self, **overrides: Any) -> EngineOptions:
        """Copy of these options with the given fields replaced."""
        return replace(self, **overrides) if overrides else self

    @classmethod
    def from_env(cls, **overrides: Any) -> EngineOptions:
        """Create options from environment variables.

        Recognized:
        1. LAZYTREE_MAX_DEPTH: maximum evaluation depth
        2. LAZYTREE_CONTEXT: base context as ``lang=es,form=formal``
        3. LAZYTREE_CONTEXT_KEY: context declaration key

        Explicit keyword overrides win over the environment.
        """
        values: dict[str, Any] = {}

        max_depth = os.environ.get("LAZYTREE_MAX_DEPTH")
        if max_depth:
            values["max_evaluation_depth"] = int(max_depth)

        context = os.environ.get("LAZYTREE_CONTEXT")
        if context:
            pairs = [pair for pair in context.split(",") if pair.strip()]
            values["base_context"] = VariantContext.from_pairs(pairs)

        context_key = os.environ.get("LAZYTREE_CONTEXT_KEY")
        if context_key:
            values["context_key"] = context_key

        values.update(overrides)
        return cls(**values)
