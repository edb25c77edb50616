"""Evaluation cache and dependency graph.

Both are keyed by TreePath tuples. The cache holds one entry per path that
needed work to produce (directives, self-directive merges and composite
mappings); static scalars are read straight from the tree.
"""

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lazytree.paths import TreePath, is_descendant


class CacheState(Enum):
    """Lifecycle of a cache entry."""

    UNEVALUATED = "unevaluated"
    IN_PROGRESS = "in_progress"
    MATERIALIZED = "materialized"
    ERROR = "error"


@dataclass
class CacheEntry:
    state: CacheState = CacheState.UNEVALUATED
    value: Any = None
    error: BaseException | None = None


@dataclass(frozen=True)
class DependencyEdge:
    """``dependent``'s evaluation read ``source``."""

    dependent: TreePath
    source: TreePath


def _overlaps(source: TreePath, changed: TreePath) -> bool:
    """A read of ``source`` observes a change at ``changed``."""
    return (
        source == changed
        or is_descendant(source, changed)
        or is_descendant(changed, source)
    )


class DependencyGraph:
    """Edges discovered while evaluating, used only for invalidation."""

    def __init__(self) -> None:
        # dicts keep insertion order so traversal is deterministic
        self._sources: dict[TreePath, dict[TreePath, None]] = {}
        self._dependents: dict[TreePath, dict[TreePath, None]] = {}

    def record(self, dependent: TreePath, source: TreePath) -> None:
        if dependent == source:
            return
        self._sources.setdefault(dependent, {})[source] = None
        self._dependents.setdefault(source, {})[dependent] = None

    def clear_sources(self, dependent: TreePath) -> None:
        """Drop every edge from ``dependent`` before it is re-evaluated."""
        for source in self._sources.pop(dependent, {}):
            dependents = self._dependents.get(source)
            if dependents is None:
                continue
            dependents.pop(dependent, None)
            if not dependents:
                del self._dependents[source]

    def dependents_of(self, changed: Iterable[TreePath]) -> list[TreePath]:
        """Transitive dependents of the changed paths, breadth-first, deduplicated.

        A dependent is affected when it read the changed path itself, a
        path below it, or a container holding it.
        """
        seen = set(changed)
        queue = deque(seen)
        found: list[TreePath] = []

        while queue:
            path = queue.popleft()
            for source, dependents in list(self._dependents.items()):
                if not _overlaps(source, path):
                    continue
                for dependent in dependents:
                    if dependent in seen:
                        continue
                    seen.add(dependent)
                    found.append(dependent)
                    queue.append(dependent)

        return found

    def edges(self) -> list[DependencyEdge]:
        return [
            DependencyEdge(dependent, source)
            for dependent, sources in self._sources.items()
            for source in sources
        ]

    def clear(self) -> None:
        self._sources.clear()
        self._dependents.clear()

    def __len__(self) -> int:
        return sum(len(sources) for sources in self._sources.values())


class EvaluationCache:
    """Per-path cache entries plus the dependency graph they produced."""

    def __init__(self) -> None:
        self._entries: dict[TreePath, CacheEntry] = {}
        self.graph = DependencyGraph()

    def get(self, path: TreePath) -> CacheEntry | None:
        return self._entries.get(path)

    def state(self, path: TreePath) -> CacheState:
        entry = self._entries.get(path)
        return entry.state if entry is not None else CacheState.UNEVALUATED

    def begin(self, path: TreePath) -> None:
        """Mark ``path`` in progress and forget the edges of its last evaluation."""
        self.graph.clear_sources(path)
        self._entries[path] = CacheEntry(CacheState.IN_PROGRESS)

    def materialize(self, path: TreePath, value: Any) -> None:
        self._entries[path] = CacheEntry(CacheState.MATERIALIZED, value=value)

    def fail(self, path: TreePath, error: BaseException) -> None:
        self._entries[path] = CacheEntry(CacheState.ERROR, error=error)

    def reset(self, path: TreePath) -> None:
        self._entries.pop(path, None)

    def discard_settled(self, path: TreePath) -> None:
        """Drop a materialized or failed entry; in-progress entries stay."""
        entry = self._entries.get(path)
        if entry is not None and entry.state is not CacheState.IN_PROGRESS:
            del self._entries[path]

    def invalidate(self, path: TreePath) -> list[TreePath]:
        """Drop settled entries at, below and above ``path``.

        Containers above the path hold composite values that embed it, so
        they go too. Returns the dropped paths.
        """
        dropped = [
            cached
            for cached, entry in self._entries.items()
            if entry.state is not CacheState.IN_PROGRESS
            and (
                cached == path
                or is_descendant(cached, path)
                or is_descendant(path, cached)
            )
        ]
        for cached in dropped:
            del self._entries[cached]
        return dropped

    def clear(self) -> None:
        self._entries.clear()
        self.graph.clear()

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)
