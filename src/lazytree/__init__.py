"""lazytree: lazy, variant-aware expression expansion over tree data."""

from lazytree.config import DEFAULT_MAX_EVALUATION_DEPTH, EngineOptions
from lazytree.engine import LazyTree
from lazytree.errors import (
    CircularDependencyError,
    CircularReferenceError,
    EvaluationError,
    ExpressionError,
    LazyTreeError,
    MaxDepthExceededError,
    OutOfBoundsParentReferenceError,
    ReservedKeyError,
    ResolverNotFoundError,
    UnresolvedPathError,
)
from lazytree.expressions import FunctionRegistry, LexerError, ParseError
from lazytree.paths import TreePath, format_path, parse_path
from lazytree.storage import (
    FileStorage,
    InMemoryStorage,
    StorageBackend,
    StorageError,
    StorageNotFoundError,
    VariantNotAllowedError,
)
from lazytree.variants import VariantCandidate, VariantContext, resolve

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_MAX_EVALUATION_DEPTH",
    "EngineOptions",
    "LazyTree",
    # Errors
    "CircularDependencyError",
    "CircularReferenceError",
    "EvaluationError",
    "ExpressionError",
    "LazyTreeError",
    "LexerError",
    "MaxDepthExceededError",
    "OutOfBoundsParentReferenceError",
    "ParseError",
    "ReservedKeyError",
    "ResolverNotFoundError",
    "UnresolvedPathError",
    # Expressions
    "FunctionRegistry",
    # Paths
    "TreePath",
    "format_path",
    "parse_path",
    # Storage
    "FileStorage",
    "InMemoryStorage",
    "StorageBackend",
    "StorageError",
    "StorageNotFoundError",
    "VariantNotAllowedError",
    # Variants
    "VariantCandidate",
    "VariantContext",
    "resolve",
]
