"""Exception hierarchy for lazytree.

Every error raised by the engine derives from LazyTreeError. Failures that
happen while evaluating one expression share the ExpressionError base,
which carries the path of the directive being materialized and the
original cause.
"""

from typing import Any, Sequence

from lazytree.paths import TreePath, format_path


class LazyTreeError(Exception):
    """Base class for all lazytree errors."""


class ExpressionError(LazyTreeError):
    """An expression could not be evaluated.

    Attributes:
        path: Path of the directive whose evaluation failed (None until the
            engine attaches it)
        cause: The underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        path: TreePath | None = None,
        cause: BaseException | None = None,
    ):
        self.message = message
        self.path = path
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message} (at '{format_path(self.path)}')"


class UnresolvedPathError(ExpressionError):
    """A referenced name has no value anywhere in scope."""

    def __init__(
        self,
        name: str,
        path: TreePath | None = None,
        searched: Sequence[TreePath] = (),
    ):
        self.name = name
        self.searched = tuple(searched)
        message = f"Unresolved reference '{name}'"
        if self.searched:
            tried = ", ".join(format_path(p) for p in self.searched)
            message += f" (searched: {tried})"
        super().__init__(message, path)


class ResolverNotFoundError(ExpressionError):
    """A called function is absent from the resolver registry."""

    def __init__(self, name: str, path: TreePath | None = None):
        self.name = name
        super().__init__(f"Unknown resolver: {name}", path)


class EvaluationError(ExpressionError):
    """Inline code raised while executing."""


class OutOfBoundsParentReferenceError(ExpressionError):
    """A parent reference climbs above the available ancestors."""

    def __init__(
        self,
        name: str,
        levels: int,
        available: int,
        path: TreePath | None = None,
    ):
        self.name = name
        self.levels = levels
        self.available = available
        super().__init__(
            f"Parent reference '{name}' goes beyond root "
            f"(requires {levels} parent levels, only {available} available)",
            path,
        )


class CircularDependencyError(LazyTreeError):
    """A path was read while its own evaluation was still in progress.

    Attributes:
        chain: The evaluation stack from the outermost read to the
            re-entered path
    """

    kind = "dependency"

    def __init__(self, chain: Sequence[TreePath]):
        self.chain = tuple(chain)
        rendered = " -> ".join(format_path(p) for p in self.chain)
        super().__init__(f"Circular {self.kind} detected: {rendered}")


class CircularReferenceError(CircularDependencyError):
    """A self-directive merge re-entered itself."""

    kind = "self-reference"


class MaxDepthExceededError(LazyTreeError):
    """Nested evaluation went deeper than the configured maximum."""

    def __init__(self, max_depth: int, chain: Sequence[TreePath]):
        self.max_depth = max_depth
        self.chain = tuple(chain)
        super().__init__(
            f"Maximum evaluation depth of {max_depth} exceeded at "
            f"'{format_path(self.chain[-1]) if self.chain else '(root)'}'"
        )


class ReservedKeyError(LazyTreeError):
    """The terminal key of a write collides with an engine method name."""

    def __init__(self, key: Any):
        self.key = key
        super().__init__(f"'{key}' is a reserved name and cannot be set")
