"""Evaluation engine: the LazyTree cache manager and its building blocks.

This module provides:
- LazyTree: lazy, cached, variant-aware reads and invalidating writes
- EvaluationCache / DependencyGraph: per-path memoization and read edges
- deep_merge / merge_self_directive: self-directive merging
"""

from lazytree.engine.cache import (
    CacheEntry,
    CacheState,
    DependencyEdge,
    DependencyGraph,
    EvaluationCache,
)
from lazytree.engine.merge import deep_merge, merge_self_directive
from lazytree.engine.tree import MISSING, RESERVED_KEYS, FrameKind, LazyTree

__all__ = [
    # Cache
    "CacheEntry",
    "CacheState",
    "DependencyEdge",
    "DependencyGraph",
    "EvaluationCache",
    # Merge
    "deep_merge",
    "merge_self_directive",
    # Tree
    "MISSING",
    "RESERVED_KEYS",
    "FrameKind",
    "LazyTree",
]
